import os
import pathlib

import pytz
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = pathlib.Path(__file__).parent.parent
# Timezone used for page render timestamps
TIMEZONE = pytz.timezone(os.getenv("WIKI_TIMEZONE", "UTC"))

# MySQL configuration
MYSQL_HOST = os.getenv("MYSQL_HOST", "")
MYSQL_PORT = int(os.getenv("MYSQL_PORT", 3306))
MYSQL_USER = os.getenv("MYSQL_USER", "root")
MYSQL_PASSWORD = os.getenv("MYSQL_PASSWORD", "root")
MYSQL_DATABASE = os.getenv("MYSQL_DATABASE", "wiki")
MYSQL_URL = f"mysql+pymysql://{MYSQL_USER}:{MYSQL_PASSWORD}@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DATABASE}"

# Database URL, SQLite unless MySQL is configured
DATABASE_URL = os.getenv("DATABASE_URL") or (
    MYSQL_URL if MYSQL_HOST else f"sqlite:///{BASE_DIR / 'wiki.db'}"
)

# Storage configuration
STORAGE_TIMEOUT = float(os.getenv("STORAGE_TIMEOUT", 10))
STARTUP_TIMEOUT = float(os.getenv("STARTUP_TIMEOUT", 30))

# Web service configuration
WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
WEB_PORT = int(os.getenv("WEB_PORT", 8080))
HTTP_INSTANCES = int(os.getenv("HTTP_INSTANCES", 2))

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
