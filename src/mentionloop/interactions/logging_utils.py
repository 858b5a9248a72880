import logging
import os
import sys
from .config import Config


LOGGER_NAME = "mentionloop.interactions"

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_CYAN = "\033[36m"
_MAGENTA = "\033[35m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[31m",
}


def _stream_supports_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    force = os.getenv("FORCE_COLOR", "").strip().lower()
    if force in {"1", "true", "yes"}:
        return True
    return bool(sys.stderr.isatty())


class ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = _COLORS.get(record.levelname.upper(), "")
        if not color:
            return message

        # Tag pipeline phases so a long-running console is easy to scan.
        if "LLM request" in message:
            return f"{_BOLD}{_CYAN}[LLM REQUEST] {message}{_RESET}"
        if "LLM response" in message:
            return f"{_BOLD}{_MAGENTA}[LLM RESPONSE] {message}{_RESET}"
        if "Decision candidate_id=" in message:
            return f"{_BOLD}{_CYAN}[DECISION] {message}{_RESET}"
        if "Dispatched reply" in message:
            return f"{_BOLD}{_GREEN}[DISPATCHED] {message}{_RESET}"
        if "skip candidate_id=" in message:
            return f"{_DIM}{color}{message}{_RESET}"
        if "Sleeping seconds=" in message:
            return f"{_DIM}{color}{message}{_RESET}"
        if record.levelno == logging.WARNING:
            return f"{_BOLD}{_YELLOW}{message}{_RESET}"
        return f"{color}{message}{_RESET}"


def setup_logging(cfg: Config) -> logging.Logger:
    level = getattr(logging, cfg.log_level, logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    fmt = "%(asctime)sZ %(levelname)s %(message)s"
    datefmt = "%Y-%m-%dT%H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    stream_handler = logging.StreamHandler()
    if _stream_supports_color():
        stream_handler.setFormatter(ColorFormatter(fmt=fmt, datefmt=datefmt))
    else:
        stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if cfg.log_path:
        cfg.log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(cfg.log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
