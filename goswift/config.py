# goswift/config.py
import os

# load .env first
from dotenv import load_dotenv
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


APP_VERSION = "1.0.0"

# --- database ----------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "").strip() or f"sqlite:///{os.path.join(BASE_DIR, 'goswift.db')}"
DB_SSLMODE = os.getenv("DB_SSLMODE", "").strip()

# --- http --------------------------------
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173").split(",")
    if o.strip()
]
SITE_URL = os.getenv("SITE_URL", "http://localhost:8000").rstrip("/")

# --- uploads -----------------------------
UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(BASE_DIR, "uploads"))
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", str(5 * 1024 * 1024)))

# --- accounts ----------------------------
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "168"))
SESSION_COOKIE = "goswift_session"
AUTO_VERIFY_USERS = _flag("AUTO_VERIFY_USERS", "true")
AUTO_VERIFY_VEHICLES = _flag("AUTO_VERIFY_VEHICLES", "false")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "").strip()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

# --- listings ----------------------------
TRIPS_PER_PAGE = int(os.getenv("TRIPS_PER_PAGE", "20"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
