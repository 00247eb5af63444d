"""
Application-wide constants for the Avigate backend.

This module contains all shared constants used across the application.
"""

# ========= Cache Configuration =========
# Key prefixes are namespaced by entity; TTLs are in seconds
USER_LOCATION_KEY_PREFIX = "user:location:"
USER_LOCATION_TTL = 300

ACTIVE_JOURNEY_KEY_PREFIX = "user:journey:"
ACTIVE_JOURNEY_TTL = 3600

JOURNEY_TRACKING_KEY_PREFIX = "journey:tracking:"
JOURNEY_TRACKING_TTL = 7200

DEFAULT_CACHE_TTL = 300
SMART_ROUTE_CACHE_PREFIX = "routes:smart"
SMART_ROUTE_CACHE_TTL = 300

# ========= Rate Limiting =========
THROTTLE_KEY_PREFIX = "throttle:"
# Stricter limit for endpoints that send OTP messages
OTP_RATE_LIMIT_MAX = 5
OTP_RATE_LIMIT_WINDOW = 60
RATE_LIMIT_EXCLUDED_PATHS = {"/health", "/metrics", "/docs", "/openapi.json", "/redoc"}

# ========= OTP Configuration =========
OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
OTP_RESEND_COOLDOWN_SECONDS = 60

# ========= Legal Documents =========
CURRENT_TERMS_VERSION = "2.0"
CURRENT_PRIVACY_VERSION = "2.0"
LEGAL_LAST_UPDATED = "November 2025"

# ========= Test Accounts =========
# Accounts used by app store reviewers and QA; they skip OTP delivery
TEST_ACCOUNTS = {
    "testuser1@avigate.co": {
        "first_name": "Test",
        "last_name": "User One",
        "google_id": None,
    },
    "testuser2@avigate.co": {
        "first_name": "Test",
        "last_name": "User Two",
        "google_id": None,
    },
    "googletest@avigate.co": {
        "first_name": "Google",
        "last_name": "Tester",
        "google_id": "test_google_id_123",
    },
    "appletest@avigate.co": {
        "first_name": "Apple",
        "last_name": "Tester",
        "google_id": None,
    },
}
TEST_SETTINGS = {
    "bypass_otp": True,
    "bypass_email_verification": True,
    "bypass_phone_verification": True,
}

# ========= Google Sign-In =========
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ["accounts.google.com", "https://accounts.google.com"]
GOOGLE_ALGORITHMS = ["RS256"]

# ========= Admin Session Configuration =========
ADMIN_SESSION_KEY_PREFIX = "admin_session:"
ADMIN_SESSIONS_KEY_PREFIX = "admin_sessions:"

# Session TTL strategy
# - "sliding": TTL is extended on activity
# - "absolute": Session expires after fixed time no matter what
ADMIN_SESSION_TTL_STRATEGY = "sliding"
# Update last_seen_at at most every N seconds
ADMIN_SESSION_SLIDING_REFRESH_INTERVAL = 300
# Absolute max session lifetime, enforced even with sliding TTL
ADMIN_SESSION_ABSOLUTE_MAX_TTL = 12 * 3600

ADMIN_MAX_FAILED_ATTEMPTS = 5
ADMIN_LOCKOUT_MINUTES = 30
ADMIN_REFRESH_COOKIE = "admin_refresh_token"

# ========= Community =========
TRENDING_WINDOW_DAYS = 7
ALERT_POST_TYPES = {"traffic_update", "route_alert"}

# ========= Routing =========
EARTH_RADIUS_M = 6371000
WALKING_SPEED_MPS = 1.4
AVERAGE_TRANSIT_SPEED_KMH = 30
NEAREST_START_RADIUS_KM = 2.0
NEAREST_END_RADIUS_KM = 0.5
WALKING_MAX_RADIUS_KM = 2.0
OKADA_BASE_FARE = 100
OKADA_FARE_PER_KM = 50

# ========= Location Sharing =========
EVENT_SHARE_EXPIRY_HOURS = 6
