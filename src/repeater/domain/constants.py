"""Centralized constants for repeater.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

from pathlib import Path

# ---------- Storage ----------
APP_NAME = "repeater"
DB_FILE_NAME = "cards.db"
DATA_SUBDIR = Path(".local/share") / APP_NAME  # relative to the home directory
DEFAULT_POOL_SIZE = 5
BUSY_TIMEOUT = 5.0  # seconds

# ---------- Identity ----------
DIGEST_SIZE = 32  # bytes, hex-encoded to 64 characters
APOSTROPHES = frozenset("'’ʼʻ‛＇")
SIGN_TOKENS = frozenset("+-")

# ---------- FSRS ----------
# FSRS-5 default weights (w0..w18).
FSRS_DEFAULT_WEIGHTS = (
    0.40255,
    1.18385,
    3.173,
    15.69105,
    7.1949,
    0.5345,
    1.4604,
    0.0046,
    1.54575,
    0.1192,
    1.01925,
    1.9395,
    0.11,
    0.29605,
    2.2698,
    0.2315,
    2.9898,
    0.51655,
    0.6621,
)
FSRS_DECAY = -0.5
FSRS_FACTOR = 0.9 ** (1 / FSRS_DECAY) - 1
DEFAULT_DESIRED_RETENTION = 0.9
DEFAULT_MINIMUM_INTERVAL = 0  # days
DEFAULT_MAXIMUM_INTERVAL = 36500  # days
STABILITY_MIN = 0.01
DIFFICULTY_MIN = 1.0
DIFFICULTY_MAX = 10.0

# ---------- Stats ----------
UPCOMING_WEEK_DAYS = 7
UPCOMING_MONTH_DAYS = 30
DAY_FORMAT = "%Y-%m-%d"

# ---------- Cloze ----------
CLOZE_OPEN = "["
CLOZE_CLOSE = "]"
CLOZE_MASK_CHAR = "_"
CLOZE_MIN_MASK = 3
