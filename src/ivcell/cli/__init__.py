"""
Command-line interface for ivcell.

- Starting a server that owns the IviumSoft driver backend
- Monitoring a session (driver, device, cell, live potential)

Examples
--------
Serve the mock backend:
```bash
$ ivcell server -n mock
```

Monitor a session against it, switching the cell on:
```bash
$ ivcell monitor --cell-on
```

Or without a separate server process:
```bash
$ ivcell monitor --mock --duration 10
```

CLI Tree
--------

```
$ ivcell --tree
cli
└── monitor
└── server
```
"""

from .base import cli, tree_option

__all__ = ["cli", "tree_option"]
