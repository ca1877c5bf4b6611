"""Application configuration. Loads from environment and .env file."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
# Load .env from cwd, then backend/.env, then project root .env
load_dotenv()
load_dotenv(BASE_DIR / ".env")
load_dotenv(BASE_DIR.parent / ".env")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Size tiers (bytes). The hosting platform caps request bodies, so image and
# document uploads above MAX_SERVER_UPLOAD_BYTES are rejected before any work.
MAX_SERVER_UPLOAD_BYTES = int(float(os.getenv("MAX_SERVER_UPLOAD_MB", "4.5")) * 1024 * 1024)
MEDIA_SERVER_MAX_BYTES = int(float(os.getenv("MEDIA_SERVER_MAX_MB", "4")) * 1024 * 1024)
# Media above this never leaves the client; the local engine is bounded by memory.
CLIENT_MEDIA_MAX_BYTES = int(float(os.getenv("CLIENT_MEDIA_MAX_MB", "2048")) * 1024 * 1024)

# Image options (env overrides)
MAX_IMAGE_DIMENSION = int(os.getenv("MAX_IMAGE_DIMENSION", "10000"))
SVG_DEFAULT_SIZE = int(os.getenv("SVG_DEFAULT_SIZE", "2000"))
DEFAULT_QUALITY = int(os.getenv("DEFAULT_QUALITY", "90"))
AVIF_DEFAULT_QUALITY = int(os.getenv("AVIF_DEFAULT_QUALITY", "60"))
WEBP_EFFORT = int(os.getenv("WEBP_EFFORT", "4"))

# Timeouts (seconds)
PROCESSING_TIMEOUT = float(os.getenv("PROCESSING_TIMEOUT", "60"))
MEDIA_TIMEOUT = float(os.getenv("MEDIA_TIMEOUT", "1800"))
URL_DOWNLOAD_TIMEOUT = int(os.getenv("URL_DOWNLOAD_TIMEOUT", "60"))
URL_DOWNLOAD_MAX_MB = int(os.getenv("URL_DOWNLOAD_MAX_MB", "100"))
URL_DOWNLOAD_MAX_BYTES = URL_DOWNLOAD_MAX_MB * 1024 * 1024

# Diagnostic mode: include internal exception details in error responses
DEBUG = _env_bool("DEBUG")

# Client side: server location and the local transcoding engine
API_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000").rstrip("/")
API_TIMEOUT = float(os.getenv("API_TIMEOUT", "120"))
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
ENGINE_LOAD_SHARE = 10  # percent of reported progress reserved for engine loading

# Server (for uvicorn)
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
# CORS: comma-separated origins, e.g. "http://localhost:5173,http://127.0.0.1:5173"
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("fileconv")
