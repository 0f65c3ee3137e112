import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """
    Stdout logger shared by the pipeline, the stages and the CLIs.
    Level comes from the argument, then RAG_LOG_LEVEL, then INFO.
    """
    logger = logging.getLogger(name or "ragpipe")
    if logger.handlers:
        return logger
    logger.setLevel((level or os.getenv("RAG_LOG_LEVEL") or "INFO").upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
