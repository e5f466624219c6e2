import os

# Remote store
DEFAULT_API_BASE_URL = "http://localhost:8000"
POSTS_PATH = "/forum-posts"
REPLIES_PATH = "/forum-replies"
ME_PATH = "/me"
LOGIN_PATH = "/login"


def get_api_base_url() -> str:
    """Base URL of the remote store, always carrying a scheme."""
    url = os.environ.get("FORUM_API_BASE_URL", "").strip()
    if not url:
        return DEFAULT_API_BASE_URL
    if url.startswith(("http://", "https://")):
        return url.rstrip("/")
    return f"http://{url}".rstrip("/")


# Cache TTL Settings (in seconds)
POSTS_CACHE_TTL = 300  # 5 minutes
POSTS_LISTING_KEY = "posts:unfiltered"

# Search
SEARCH_DEBOUNCE_SECONDS = 0.4

# Categories and sorting
CATEGORIES = ["Beginner", "Stocks", "Investing", "General", "News", "Other"]
DEFAULT_CATEGORY = "General"
ALL_CATEGORIES = "all"
SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"
SORT_MOST_REPLIED = "most-replied"

# Best-effort author fields while the identity is unresolved
PLACEHOLDER_UID = "temp-uid"
PLACEHOLDER_EMAIL = "temp@email.com"
TEMP_ID_PREFIX = "temp"

# Local storage keys
LOCAL_STORAGE_PATH = os.environ.get("FORUM_LOCAL_STORAGE", "forum_local.db")
AUTH_TOKEN_KEY = "authToken"
USER_KEY = "user"
SESSION_KEYS = (AUTH_TOKEN_KEY, USER_KEY)
DRAFT_KEY_PREFIX = "draft"

# Reference store
SECRET_KEY = os.environ.get("FORUM_SECRET_KEY", "your-secret-key-change-this")
DB_PATH = os.environ.get("FORUM_DB_PATH", "forum.db")
ACCESS_TOKEN_EXPIRE_MINUTES = 60
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000

# Validation Constants
POST_TITLE_MIN_LENGTH = 5
POST_TITLE_MAX_LENGTH = 200
POST_CONTENT_MIN_LENGTH = 10
REPLY_CONTENT_MIN_LENGTH = 3
MAX_TAGS = 10
