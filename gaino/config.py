# Configuration for the portfolio sync client

# Remote document store (app-private folder of the file storage API)
DRIVE_BASE_URL = "https://www.googleapis.com"
APP_DATA_SPACE = "appDataFolder"
PORTFOLIO_FILE_NAME = "portfolio.json"
PORTFOLIO_MIME_TYPE = "application/json"

# Request timeouts in seconds
DRIVE_TIMEOUT = 30
PRICES_TIMEOUT = 10
OAUTH_TIMEOUT = 10

# OAuth token exchange for the app-data scope
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com"
DRIVE_APPDATA_SCOPE = "https://www.googleapis.com/auth/drive.appdata"
TOKEN_EXPIRY_MARGIN = 60  # refresh this many seconds before expiry

# Local cache files, relative to the data directory
PORTFOLIO_CACHE_FILE = "portfolio_cache.json"
PRICE_CACHE_FILE = "prices_cache.json"
DEFAULT_DATA_DIR = "~/.gaino"

# Price feed
PRICE_TAB = "stocks"
PRICE_CACHE_TTL = 90  # seconds

# Portfolio document defaults
SCHEMA_VERSION = 1
DEFAULT_CURRENCY = "INR"
DEFAULT_KIND = "stock"
DEFAULT_CLIENT_ID = "gaino-python"

SAVE_FAILED_MESSAGE = "Save failed (conflict or offline)"

# Environment variable names
ENV_DATA_DIR = "GAINO_DATA_DIR"
ENV_PRICES_BASE_URL = "GAINO_PRICES_BASE_URL"
ENV_ACCESS_TOKEN = "GAINO_DRIVE_ACCESS_TOKEN"
ENV_OAUTH_CLIENT_ID = "GAINO_OAUTH_CLIENT_ID"
ENV_OAUTH_CLIENT_SECRET = "GAINO_OAUTH_CLIENT_SECRET"
ENV_OAUTH_REFRESH_TOKEN = "GAINO_OAUTH_REFRESH_TOKEN"
ENV_CLIENT_ID = "GAINO_CLIENT_ID"
