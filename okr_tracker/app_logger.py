import logging
from typing import Optional

from okr_tracker.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging() -> logging.Logger:
    level = getattr(logging, LOG_LEVEL, logging.INFO)

    logger = logging.getLogger("okr_tracker")
    logger.setLevel(level)

    # Avoid duplicate console handlers on Streamlit reruns
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = logging.getLogger("okr_tracker")
    if not name:
        return base
    if name.startswith("okr_tracker."):
        name = name[len("okr_tracker."):]
    return base.getChild(name)


logger = setup_logging()
