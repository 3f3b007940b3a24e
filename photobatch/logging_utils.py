from __future__ import annotations

import logging
from pathlib import Path

LOGFILE_NAME = "photobatch.log"
# urllib3 and google-auth log every request and token refresh at DEBUG.
NOISY_LOGGERS = ("urllib3", "google.auth", "google_auth_oauthlib", "PIL")

_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(message)s"


def setup_logging(*, log_dir: Path | None = None, verbose: bool = True) -> logging.Logger:
    """
    Set up logging for photobatch.

    Args:
        log_dir: Optional directory to write photobatch.log to
        verbose: If True (default), show DEBUG level logs. If False, only show INFO and above.
    """
    logger = logging.getLogger("photobatch")
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(ch)

    if log_dir is not None:
        attach_log_file(logger, log_dir)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.propagate = False
    return logger


def attach_log_file(logger: logging.Logger, log_dir: Path) -> Path:
    """
    Adds a photobatch.log handler under `log_dir` if one is not already present.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    logfile = (log_dir / LOGFILE_NAME).resolve()
    for h in logger.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename) == logfile:
            return logfile

    fh = logging.FileHandler(logfile, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(fh)
    return logfile


def get_logger(logger: logging.Logger | None = None) -> logging.Logger:
    return logger if logger is not None else logging.getLogger("photobatch")
