import uvicorn
import os
from constants import HOST, PORT, LOG_LEVEL, LOG_FILE
from logging_config import setup_logging, get_logger

# Same settings app.py uses, so importing the app later doesn't change the level
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

logger = get_logger(__name__)

if __name__ == "__main__":
    reload = os.getenv("RELOAD", "false").lower() == "true"
    logger.info(f"Starting chat server on {HOST}:{PORT}")
    uvicorn.run("app:asgi_app", host=HOST, port=PORT, reload=reload)
