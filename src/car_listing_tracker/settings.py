"""Runtime settings for the car listing tracker."""

# --- Storage ---
DATA_DIR = "data"
CONFIG_PATH = "tracked-models.toml"

# --- Pagination caps ---
DEFAULT_MAX_VEHICLES = 250  # target listing count per (source, model)
MAX_PAGES = 100  # high enough to reach DEFAULT_MAX_VEHICLES on every source

# --- Polite crawling ---
RATE_LIMIT_SECONDS = 3.0  # minimum delay between queries in one session
STATUS_CHECK_DELAY = 3.0  # delay between listing revisits
AUDIT_DELAY = 2.0
SETTLE_DELAY = 1.0  # after a page render, before reading the DOM
LOAD_MORE_DELAY = 3.0  # after clicking "load more" / "next page"

# --- Timeouts ---
NAVIGATION_TIMEOUT = 30_000  # ms, Playwright page.goto()
SELECTOR_TIMEOUT = 10_000  # ms, Playwright wait_for_selector()
HTTP_TIMEOUT = 30  # seconds, API requests

# --- Browser ---
HEADLESS = True
BROWSER_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
]
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
BROWSER_CONTEXT = {
    "viewport": {"width": 1920, "height": 1080},
    "ignore_https_errors": True,
    "user_agent": USER_AGENT,
}

# --- Validation policy ---
MIN_YEAR = 1990
MIN_INVALID_LISTINGS = 3
MIN_SUCCESS_RATE = 80

# --- Metrics ---
DATE_AGGREGATION_THRESHOLD = 90

# --- Misc ---
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
