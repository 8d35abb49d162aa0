"""
ivcell - session control for an IviumSoft-driven electrochemistry instrument.

Subpackages
-----------
session
    Session state machine, failure classifier, measurement poller, teardown hook.
server
    ZeroMQ client/server exposing the driver operations.
device
    Driver backends (`MockIviumDriver`) and their exceptions.
types
    Messages, command constants, protocols.
util
    Defaults and logging.
cli
    `ivcell` command line.
"""

from ._version import __version__
