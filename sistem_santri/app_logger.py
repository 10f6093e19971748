import logging
import os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
BASE_NAME = "sistem_santri"


def setup_logging():
    logging.basicConfig(level=getattr(logging, _DEFAULT_LEVEL, logging.INFO), format=LOG_FORMAT)

    logger = logging.getLogger(BASE_NAME)
    logger.setLevel(getattr(logging, _DEFAULT_LEVEL, logging.INFO))

    # Hindari handler ganda saat modul di-import ulang
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(LOG_FORMAT))
        ch.setLevel(logger.level)
        logger.addHandler(ch)

    logger.propagate = False
    return logger


def get_logger(name=None):
    base = logging.getLogger(BASE_NAME)
    if not name or name == BASE_NAME:
        return base
    if name.startswith(BASE_NAME + "."):
        name = name[len(BASE_NAME) + 1:]
    return base.getChild(name)


logger = setup_logging()
