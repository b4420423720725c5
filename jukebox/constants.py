"""Central constants for Jukebox.

Only put small, stable primitives here – avoid runtime/config dependent values.
"""

# Resilient transport
HTTP_TIMEOUT_SECONDS: float = 30.0
HTTP_MAX_ATTEMPTS: int = 3
HTTP_BACKOFF_UNIT_MS: int = 1000

# Token lifecycle
TOKEN_SAFETY_MARGIN_SECONDS: int = 5 * 60
DEFAULT_TOKEN_LIFETIME_SECONDS: int = 3600

# Playback reconciliation
DEVICE_SETTLE_DELAY_MS: int = 1000
PREVIOUS_RESTART_THRESHOLD_MS: int = 3000

# Persisted state layout (opaque string-keyed store)
ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
TOKEN_EXPIRY_KEY = "token_expiry"
USER_ID_KEY = "user_id"
SESSION_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, TOKEN_EXPIRY_KEY, USER_ID_KEY)

# Music Service
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
SPOTIFY_ACCOUNTS_URL = "https://accounts.spotify.com"
SPOTIFY_SCOPES = (
    "user-read-email",
    "user-read-private",
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "streaming",
    "playlist-read-private",
    "playlist-read-collaborative",
    "user-library-read",
    "user-top-read",
    "user-read-recently-played",
    "user-follow-read",
)
