import uvicorn
from constants import HOST, LOG_FILE, LOG_LEVEL, PORT, RELAY_MODE, RELOAD
from logging_config import get_logger, setup_logging

# Setup logging before uvicorn imports app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def main():
    logger.info(f"Starting signaling server on {HOST}:{PORT} (relay mode: {RELAY_MODE})")
    # log_config=None keeps uvicorn on the handlers installed above
    uvicorn.run("app:app", host=HOST, port=PORT, reload=RELOAD, log_config=None)


if __name__ == "__main__":
    main()
