# -*- coding: utf-8 -*-
"""
Utility functions and constants for ivcell.

- Default connection, polling and logging settings
- Loguru log sinks for client and server processes
- Error formatting for server -> client error responses

Examples
--------
Starting a client log on stdout only:
```python
from ivcell.util import start_client_log
start_client_log(log_to_file=False, log_to_stdout=True)
```

See Also
--------
ivcell.util.logging : Logging configuration
ivcell.util.defaults : Default values
"""

from .defaults import (
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_POLL_PERIOD,
    DEFAULT_PORT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    POTENTIAL_DECIMALS,
    SINGLE_LINE_ERR_LOG,
)
from .logging import (
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_dir,
    log_default_path_client,
    log_default_path_server,
    shutdown_client_log,
    start_client_log,
    start_server_log,
)

__all__ = [
    "DEFAULT_HOST_ADDR",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_POLL_PERIOD",
    "DEFAULT_PORT",
    "DEFAULT_RETRIES",
    "DEFAULT_TIMEOUT",
    "POTENTIAL_DECIMALS",
    "SINGLE_LINE_ERR_LOG",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "log_default_dir",
    "log_default_path_client",
    "log_default_path_server",
    "shutdown_client_log",
    "start_client_log",
    "start_server_log",
]
