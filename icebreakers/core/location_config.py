# --------------------------------------------------
# RADIUS
# --------------------------------------------------

DEFAULT_RADIUS_FT = 50
MAX_RADIUS_FT = 100

# --------------------------------------------------
# PRESENCE
# --------------------------------------------------

# How long a presence record stays fresh after an accepted ping
FRESHNESS_SECONDS = 10 * 60

# Geohash length stored on every presence record
GEOHASH_PRECISION = 10

# Max rows read per geohash range scan
RANGE_SCAN_LIMIT = 200

# --------------------------------------------------
# PING THROTTLE
# --------------------------------------------------

THROTTLE_SECONDS = 20
THROTTLE_DISTANCE_M = 3
MAX_ACCURACY_M = 500

# --------------------------------------------------
# CROWD ALERTS
# --------------------------------------------------

CROWD_ALERT_MIN_USERS = 8
COOLDOWN_SECONDS = 30 * 60

# sender + this many nearby users get re-evaluated after one ping
IMPACTED_LIMIT = 30

FINGERPRINT_SAMPLE_SIZE = 10

# --------------------------------------------------
# BATCHING
# --------------------------------------------------

# profile lookups are split into chunks of this size
PROFILE_BATCH_LIMIT = 10

# Expo accepts at most 100 messages per request
PUSH_CHUNK_SIZE = 100

# --------------------------------------------------
# PERMISSIONS
# --------------------------------------------------

ALLOWED_PERMISSION_STATUS = ("always", "while_in_use", "denied", "unknown")
ALLOWED_SOURCES = ("foreground", "background")
ALLOWED_PLATFORMS = ("ios", "android")
