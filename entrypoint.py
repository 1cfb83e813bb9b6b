import os

import uvicorn

from constants import APP_ENV, SERVER_HOST, SERVER_PORT, SERVER_RELOAD, SERVER_WORKERS
from logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def main():
    setup_logging(log_level=os.getenv("LOG_LEVEL", "DEBUG"), log_file=os.getenv("LOG_FILE", None))
    # uvicorn ignores workers when reloading
    workers = 1 if SERVER_RELOAD else SERVER_WORKERS
    logger.info(
        f"Starting vanishing-rooms ({APP_ENV}) on {SERVER_HOST}:{SERVER_PORT}, "
        f"workers={workers}, reload={SERVER_RELOAD}"
    )
    uvicorn.run("app:app", host=SERVER_HOST, port=SERVER_PORT, reload=SERVER_RELOAD, workers=workers)


if __name__ == "__main__":
    main()
