# =============================================
# File: app/utils/logging.py
# Purpose: Logging configuration (loguru file sink)
# =============================================
import os

from loguru import logger

def configure() -> None:
    logger.add(os.getenv("LOG_FILE", "logs/app.log"), rotation="10 MB", level=os.getenv("LOG_LEVEL", "INFO").upper())
