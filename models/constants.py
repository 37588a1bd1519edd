# =============================================================================
# Constants and Configuration for Nine Picture Grid
# =============================================================================

import os
from typing import Dict, Any

# Backend (Supabase) storage configuration
STORAGE_BUCKET = "nine-picture-grid-images"
BACKEND_HOST_FRAGMENT = "supabase"      # Substring that marks backend traffic
SUPABASE_SECRETS_SECTION = "supabase"   # [supabase] block in .streamlit/secrets.toml

# Grid layout
GRID_SIZE = 9
GRID_COLUMNS = 3
SLOT_PREFIX = "slot-"

# Debug console
MAX_DEBUG_LOGS = 1000
MAX_NETWORK_RECORDS = 500
DEBUG_LOGGER_NAME = "gridapp.debug"
CONSOLE_COLLAPSED_HEIGHT = 300
CONSOLE_EXPANDED_HEIGHT = 900

# Sessions this close to expiry are refreshed before use
SESSION_REFRESH_MARGIN_SECONDS = 60

# Upload options sent with every image upload
IMAGE_UPLOAD_OPTIONS: Dict[str, Any] = {
    "cacheControl": "max-age=31536000, public, immutable",
    "upsert": True,
}
IMAGE_URL_QUALITY = 80

# Auth
MIN_PASSWORD_LENGTH = 6

# Local persistence (browser localStorage stand-in)
DATA_DIR = os.environ.get("GRIDAPP_DATA_DIR", "data")
LOCAL_STORE_FILE = "local_storage.json"
IMAGES_KEY = "gridImages"
DESCRIPTION_KEY = "gridDescription"

# Log type presentation: color, icon and the Streamlit alert used to render it
LOG_TYPE_STYLES: Dict[str, Dict[str, str]] = {
    "error":   {"color": "#b91c1c", "background": "#fef2f2", "icon": "🚨", "alert": "error"},
    "warning": {"color": "#a16207", "background": "#fefce8", "icon": "⚠️", "alert": "warning"},
    "success": {"color": "#15803d", "background": "#f0fdf4", "icon": "✅", "alert": "success"},
    "info":    {"color": "#1d4ed8", "background": "#eff6ff", "icon": "ℹ️", "alert": "info"},
}
