# app/core/logging_config.py
import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the API process or a worker process.

    Modules only ever call logging.getLogger(__name__); handlers live here.
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)

    # rq logs every job start/finish at INFO, which drowns scoring logs
    logging.getLogger("rq.worker").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
