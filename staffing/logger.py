import logging
import sys

from staffing.config import LOG_LEVEL, LOG_PATH

FILE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
CONSOLE_FORMAT = "[%(levelname)s] %(message)s"


def _configure(target: logging.Logger) -> logging.Logger:
    target.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    if target.handlers:
        return target

    LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(LOG_PATH, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    target.addHandler(file_handler)
    target.addHandler(console_handler)
    return target


logger = _configure(logging.getLogger("staffing"))
