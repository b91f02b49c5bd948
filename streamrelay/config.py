"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
# Load .env from cwd, then project root .env
load_dotenv()
load_dotenv(BASE_DIR.parent / ".env")

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
# CORS: comma-separated origins, "*" allows any
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Completion webhook; notifications are skipped when unset
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "").strip()
WEBHOOK_TIMEOUT_SEC = float(os.getenv("WEBHOOK_TIMEOUT_SEC", "10"))
TEST_WEBHOOK_INTERVAL_SEC = float(os.getenv("TEST_WEBHOOK_INTERVAL_SEC", "60"))
WEBHOOK_WORKERS = int(os.getenv("WEBHOOK_WORKERS", "4"))

# Timeouts (seconds). Source and upload are read timeouts on a socket.
CONNECT_TIMEOUT_SEC = float(os.getenv("CONNECT_TIMEOUT_SEC", "30"))
SOURCE_TIMEOUT_SEC = float(os.getenv("SOURCE_TIMEOUT_SEC", "1200"))
UPLOAD_TIMEOUT_SEC = float(os.getenv("UPLOAD_TIMEOUT_SEC", "1800"))

# Transfer
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", str(1024 * 1024)))
FALLBACK_CONTENT_TYPE = os.getenv("FALLBACK_CONTENT_TYPE", "video/mp4")
UPLOAD_MAX_ATTEMPTS = int(os.getenv("UPLOAD_MAX_ATTEMPTS", "5"))
UPLOAD_BACKOFF_SEC = float(os.getenv("UPLOAD_BACKOFF_SEC", "2"))
UPLOAD_MAX_BACKOFF_SEC = float(os.getenv("UPLOAD_MAX_BACKOFF_SEC", "60"))
# Each in-flight relay holds one worker thread for its whole transfer
MAX_CONCURRENT_RELAYS = int(os.getenv("MAX_CONCURRENT_RELAYS", "64"))

# Task retention
TASK_RETENTION_SEC = float(os.getenv("TASK_RETENTION_SEC", str(24 * 3600)))
CLEANUP_INTERVAL_SEC = float(os.getenv("CLEANUP_INTERVAL_SEC", "300"))

# Health
COLD_START_SEC = float(os.getenv("COLD_START_SEC", "60"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
