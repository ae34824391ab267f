"""
Shared constants used across the platform.
"""

# Catalog manifest
LIBRARY_VERSION = 1
LIBRARY_METADATA_FILENAME = "library.json"
DEFAULT_ALBUM_NAME = "Unknown Album"
DEFAULT_MIME_TYPE = "audio/flac"

# Audio formats (MIME type -> download extension)
MIME_EXTENSIONS = {
    "audio/flac": "flac",
    "audio/x-flac": "flac",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/aac": "aac",
    "audio/ogg": "ogg",
    "audio/opus": "opus",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
}

# Storage settings
DEFAULT_STREAM_CHUNK_SIZE = 64 * 1024  # bytes
DEFAULT_PRESIGNED_URL_EXPIRY = 3600  # seconds
CLOUDFLARE_R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"
AWS_S3_ENDPOINT_TEMPLATE = "https://s3.{region}.amazonaws.com"

# Catalog
SEARCH_RESULT_LIMIT = 50
RECENTLY_PLAYED_LIMIT = 20

# Playback
DEFAULT_VOLUME = 0.7
VOLUME_STEP = 0.1
LOAD_TIMEOUT_SEC = 5.0
PREVIOUS_RESTART_THRESHOLD_SEC = 3.0
SKIP_BUTTON_SEC = 10.0
SKIP_KEY_SEC = 5.0
UNMUTE_DELAY_SEC = 0.1
SEARCH_DEBOUNCE_SEC = 0.3
# Open product question: a one-track queue wraps onto itself even with repeat off.
WRAP_SINGLE_TRACK_QUEUE = True

# Session persistence
SNAPSHOT_INTERVAL_SEC = 2.0
DEFAULT_SCOPE = "default"

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/cadence"
DEFAULT_DATABASE_FILENAME = "catalog.db"

# Network settings
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_SERVER_PORT = 5005
DEFAULT_SERVER_URL = "http://localhost:5005"
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
