"""Command strings shared by client and server, and failure category tags."""

import types

CONSTS = types.SimpleNamespace()

# general server comms
CONSTS.COMMS = types.SimpleNamespace()
CONSTS.COMMS.PING = "ping"
CONSTS.COMMS.PONG = "pong"
CONSTS.COMMS.ECHO = "echo"
CONSTS.COMMS.SHUTDOWN = "shutdown"
CONSTS.COMMS.CLIENT_SYNC = "client_sync"
CONSTS.COMMS.GET_SERVER_LOG_PATH = "get_server_log_path"

# driver (IviumSoft) handle
CONSTS.DRIVER = types.SimpleNamespace()
CONSTS.DRIVER.OPEN = "driver_open"
CONSTS.DRIVER.CLOSE = "driver_close"

# instrument link
CONSTS.DEVICE = types.SimpleNamespace()
CONSTS.DEVICE.CONNECT = "device_connect"
CONSTS.DEVICE.DISCONNECT = "device_disconnect"

# cell relay
CONSTS.CELL = types.SimpleNamespace()
CONSTS.CELL.ON = "cell_on"
CONSTS.CELL.OFF = "cell_off"

# direct mode reads
CONSTS.DIRECT = types.SimpleNamespace()
CONSTS.DIRECT.GET_POTENTIAL = "direct_get_potential"

# failure categories carried by ErrorResponse.tag
CONSTS.ERR = types.SimpleNamespace()
CONSTS.ERR.DEVICE_ABSENT = "device_absent"
CONSTS.ERR.DRIVER_ABSENT = "driver_absent"
CONSTS.ERR.OTHER = "other"
