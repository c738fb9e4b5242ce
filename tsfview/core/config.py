import logging
import os

ENGINE_API_URL = (
    os.environ.get("ENGINE_API_URL")
    or os.environ.get("BACKEND_URL")
    or "http://localhost:8000"
).rstrip("/")

# Fetch layer
FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", 20.0))
FETCH_MAX_ATTEMPTS = int(os.environ.get("FETCH_MAX_ATTEMPTS", 3))
FETCH_JITTER = 0.2
FETCH_BACKOFF_RANGE = (0.2, 0.6)
FETCH_WORKERS = 8
CACHE_MAXSIZE = int(os.environ.get("CACHE_MAXSIZE", 256))

# Query service
VIEWS_SCOPE = "global"
PAGE_SIZE = 20000
IDS_LIMIT = 2000

# Calendar window
PREROLL_DAYS = 7
DEFAULT_MONTHS = 1
MAX_MONTHS = 3

# Chart geometry
Y_PAD_RATIO = 0.08
TICK_TARGET = 6
CHART_WIDTH = 1400
CHART_HEIGHT = 560
CHART_PADDING = {"top": 32, "right": 24, "bottom": 120, "left": 80}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
