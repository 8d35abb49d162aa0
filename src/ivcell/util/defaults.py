# -*- coding: utf-8 -*-

import tempfile

DEFAULT_HOST_ADDR = "127.0.0.1"
DEFAULT_PORT = 8860
DEFAULT_RETRIES = 3  # Number of times to retry a failed req operation
DEFAULT_TIMEOUT = 5  # seconds
DEFAULT_LOGLEVEL = "INFO"
TEMP_DIR = tempfile.gettempdir()
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line for err comms

DEFAULT_POLL_PERIOD = 2.0  # seconds between potential reads
POTENTIAL_DECIMALS = 8
