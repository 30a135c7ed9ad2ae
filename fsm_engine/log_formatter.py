"""
Console logging for state machine output.
"""

import logging
import re
import sys
from datetime import datetime
from typing import Optional, TextIO


class MachineContextFilter(logging.Filter):
    """Add the machine name parsed from ``[SM:name]`` lines to log records"""

    PATTERN = re.compile(r'\[SM:([^\]]+)\] (\w+):')

    def filter(self, record):
        match = self.PATTERN.search(record.getMessage())
        if match:
            record.machine = match.group(1)
            record.sm_event = match.group(2)
        else:
            record.machine = ""
            record.sm_event = ""
        return True


class MachineLogFormatter(logging.Formatter):
    """Colour transition lines green, blocked lines yellow and errors red"""

    GREEN = '\033[32m'
    RED = '\033[31m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True, stream: Optional[TextIO] = None):
        super().__init__()
        stream = stream or sys.stderr
        self.use_color = use_color and hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record):
        msg = record.getMessage()
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        timestamp_ms = f"{timestamp},{int(record.msecs):03d}"
        line = f"{timestamp_ms} - {record.name} - {record.levelname} - {msg}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"

        if not self.use_color:
            return line

        event = getattr(record, 'sm_event', '')
        if record.levelno >= logging.ERROR:
            color = self.RED
        elif record.levelno >= logging.WARNING or event == 'BLOCKED':
            color = self.YELLOW
        elif event in ('TRANSITION', 'INIT'):
            color = self.GREEN
        elif record.levelno == logging.DEBUG:
            color = self.CYAN
        else:
            return line
        return f"{color}{line}{self.RESET}"


def setup_logging(level: str = "INFO",
                  stream: Optional[TextIO] = None,
                  use_color: bool = True) -> logging.Handler:
    """
    Attach a console handler to the ``fsm_engine`` logger.

    Returns the handler so callers can remove it again.
    """
    stream = stream or sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setLevel(getattr(logging, level))
    handler.setFormatter(MachineLogFormatter(use_color=use_color, stream=stream))
    handler.addFilter(MachineContextFilter())

    logger = logging.getLogger("fsm_engine")
    logger.setLevel(getattr(logging, level))
    logger.addHandler(handler)
    return handler
