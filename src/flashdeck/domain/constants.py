"""Centralized constants for flashdeck.

Scheduling constants and session defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 3  # SM-2 uses 6; kept at 3 for stored-schedule compatibility
INTRADAY_DELAY_MINUTES = 10

# ---------- Rating buttons ----------
RATING_TO_QUALITY = {
    1: 0,  # Again -> complete blackout
    2: 3,  # Hard -> correct with serious difficulty
    3: 4,  # Good -> correct after hesitation
    4: 5,  # Easy -> perfect response
}
FALLBACK_QUALITY = 3

# ---------- Session quotas ----------
DEFAULT_REVIEW_CAP = 10
DEFAULT_LEARN_CAP = 20
QUOTA_WINDOW_HOURS = 24

# ---------- HTTP card store ----------
REQUEST_TIMEOUT = 30.0

# ---------- Session API ----------
SESSION_IDLE_TIMEOUT = 2 * 60 * 60  # seconds
MAX_SESSIONS = 256
