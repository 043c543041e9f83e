"""Constants for Gmail Auto Reply."""

from pathlib import Path

# --- Config paths ---
CONFIG_DIR = Path.home() / ".gmail-auto-reply"
CREDENTIALS_PATH = CONFIG_DIR / "credentials.json"
TOKEN_PATH = CONFIG_DIR / "token.json"
DB_PATH = CONFIG_DIR / "auto_reply.db"
ENV_PATH = CONFIG_DIR / ".env"

# --- Gmail API ---
SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
]
HISTORY_PAGE_SIZE = 500  # history records per list page
HISTORY_TYPES = ["messageAdded"]
OUTGOING_LABELS = ("DRAFT", "SENT")
HTTP_TIMEOUT = 30  # seconds, socket timeout for Gmail requests

# --- Self-reply marker ---
AUTO_REPLY_HEADER = "X-Auto-Reply"
AUTO_REPLY_HEADER_VALUE = "true"

# --- Timing defaults (seconds) ---
POLL_INTERVAL = 15
REAPER_INTERVAL = 3600
DEDUP_TTL = 3600
SENDER_COOLDOWN = 3600
RATE_WINDOW = 3600
CALL_TIMEOUT = 30

# --- Per-user defaults ---
DEFAULT_CATEGORIES = ["Business Inquiry", "Pricing Question", "Partnership"]
DEFAULT_MIN_CONFIDENCE = 0.7
DEFAULT_MAX_REPLIES_PER_HOUR = 20

# --- Classification categories ---
CATEGORIES = [
    "Business Inquiry",
    "Pricing Question",
    "Support Request",
    "Partnership",
    "Personal",
    "Spam",
]

# --- Keyword relevance allow-list ---
BUSINESS_KEYWORDS = [
    "price",
    "pricing",
    "cost",
    "how much",
    "quote",
    "gmail agent",
    "website",
    "chatbot",
    "automation",
    "partnership",
    "collaboration",
    "service",
    "inquiry",
]

# --- Gemini ---
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_MODEL = "gemini-2.0-flash"
ANALYSIS_BODY_LIMIT = 2000  # characters of body sent for classification

# --- Bookkeeping limits ---
HISTORY_LIMIT = 1000  # auto-reply records kept
ACTIVITY_LIMIT = 100  # activity events kept in memory
