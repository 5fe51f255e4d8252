import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR}/sections.db")
# seconds a SQLite writer waits for the database lock
SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

# DEV ONLY default: override SECRET_KEY in any real deployment.
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE = timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Enrollment policy
# Older revisions refused a second section of the same course; off by default.
ONE_SECTION_PER_COURSE = os.getenv("ONE_SECTION_PER_COURSE", "0") == "1"

# Group formation
DEFAULT_MIN_GROUP_SIZE = 2
DEFAULT_MAX_GROUP_SIZE = 4
MAX_AUTO_GROUP_SIZE = 20
GROUP_NAME_PREFIX = "Group"
