import logging
import os


def get_logger(name: str) -> logging.Logger:
    """Named component logger writing to stderr, level from LOG_LEVEL."""
    log = logging.getLogger(name)
    if not log.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
        log.addHandler(h)
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    log.setLevel(getattr(logging, level, logging.INFO))
    return log
