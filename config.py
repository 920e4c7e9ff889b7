import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Paths ─────────────────────────────────────────────────────────────────────
ROOT_DIR = Path(os.getenv("ISITHOT_ROOT", Path(__file__).resolve().parent))

STATIONS_FILE = Path(os.getenv("STATIONS_FILE", ROOT_DIR / "www" / "locations.json"))
LATEST_OBS_FILE = Path(os.getenv("LATEST_OBS_FILE", ROOT_DIR / "data" / "latest" / "latest-all.csv"))
FEED_DIR = Path(os.getenv("FEED_DIR", ROOT_DIR / "data" / "latest"))
HIST_DIR = Path(os.getenv("HIST_DIR", ROOT_DIR / "data" / "hist"))
HEATMAP_DIR = Path(os.getenv("HEATMAP_DIR", ROOT_DIR / "databackup"))
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", ROOT_DIR / "www" / "output"))
LOG_DIR = Path(os.getenv("LOG_DIR", ROOT_DIR / "data" / "logs"))

# ── Climatology ───────────────────────────────────────────────────────────────
WINDOW_DAYS = int(os.getenv("WINDOW_DAYS", "7"))  # half-width, days either side of today
QUANTILES = [0.05, 0.10, 0.40, 0.50, 0.60, 0.90, 0.95]
VARIABLES = ["Tmax", "Tmin", "Tavg"]

# Sentinel outer breaks so the lowest and highest bins are always closed
CATEGORY_FLOOR = -100.0
CATEGORY_CEILING = 100.0

# The median is reported but never used as a category break
EXCLUDED_BREAK = "50%"

# Summarising sub-daily feed readings into a daily max/min
FEED_SUMMARY_HOURS = 24
FEED_DATE_LAG_HOURS = 12  # observation date = local date this many hours before the latest reading

# ── Run ───────────────────────────────────────────────────────────────────────
MAX_CONCURRENT_STATIONS = int(os.getenv("MAX_CONCURRENT_STATIONS", "4"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ── Feed collector ────────────────────────────────────────────────────────────
# {id} is the BOM product/station identifier, e.g. "IDN60901.94768"
BOM_FEED_URL_TEMPLATE = os.getenv(
    "BOM_FEED_URL_TEMPLATE",
    "http://www.bom.gov.au/fwo/{product}/{id}.json",
)
FEED_TIMEOUT_SECONDS = float(os.getenv("FEED_TIMEOUT_SECONDS", "15"))
FEED_USER_AGENT = "IsItHot/1.0 (climatology-batch)"


def quantile_label(q: float) -> str:
    """0.05 → "5%"."""
    return f"{round(q * 100):d}%"


QUANTILE_LABELS = [quantile_label(q) for q in QUANTILES]
