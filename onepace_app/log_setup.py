import logging
import sys
from collections import deque
from pathlib import Path
from datetime import datetime, timezone
from typing import Deque, List, Optional

LOGGER_NAME = "onepace_app"

# Sits between INFO (20) and WARNING (30)
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

RUN_LOG_FORMAT = '[%(asctime)s] [%(levelname)-7s] %(message)s'
RUN_LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
DEFAULT_RUN_LOG_LINES = 1000


class RunLogHandler(logging.Handler):
    """Keeps the most recent formatted run-log lines in memory for a display layer to read."""

    def __init__(self, max_lines: int = DEFAULT_RUN_LOG_LINES, level: int = logging.INFO):
        super().__init__(level=level)
        self.lines: Deque[str] = deque(maxlen=max_lines)
        self.setFormatter(logging.Formatter(RUN_LOG_FORMAT, datefmt=RUN_LOG_DATEFMT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.lines.append(self.format(record))
        except Exception:
            self.handleError(record)

    def get_lines(self) -> List[str]:
        return list(self.lines)

    def clear(self) -> None:
        self.lines.clear()


def setup_logging(log_level_console=logging.INFO, log_file=None, run_log: Optional[RunLogHandler] = None):
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(logging.DEBUG)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    # Console
    log_fmt_console = RUN_LOG_FORMAT
    if log_level_console <= logging.DEBUG:
        log_fmt_console = '%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s'

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level_console)
    console_formatter = logging.Formatter(log_fmt_console, datefmt=RUN_LOG_DATEFMT)
    console_handler.setFormatter(console_formatter)
    log.addHandler(console_handler)

    if run_log is not None:
        log.addHandler(run_log)

    # File
    if log_file:
        try:
            log_file_path = Path(log_file).resolve()
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, mode='a', encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter('%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s', datefmt='%Y-%m-%d %H:%M:%S%z')
            file_handler.setFormatter(file_formatter)
            log.addHandler(file_handler)
            log.info(f"--- Log session started: {datetime.now(timezone.utc).isoformat()} ---")
            log.info(f"Command: {' '.join(sys.argv)}")
        except Exception as e:
            log.error(f"Failed to configure file logging to '{log_file}': {e}")
    return log
