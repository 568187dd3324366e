"""Centralized constants for the flashdeck application.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 3.0
EASY_BONUS = 1.3
PASSING_QUALITY = 3
FIRST_SUCCESS_INTERVAL = 1  # days
SECOND_SUCCESS_INTERVAL = 3  # days
FAILURE_INTERVAL = 1  # days

# ---------- Card maturity ----------
MASTERED_INTERVAL_THRESHOLD = 21  # interval > 21 days is mastered

# ---------- Review history ----------
MAX_HISTORY_DAYS = 90
ROLLING_WINDOW_RADIUS = 3  # 3 days each side -> 7-day window

# ---------- Streaks ----------
STREAK_MILESTONES = (7, 14, 30, 60, 100, 180, 365)

# ---------- Statistics ----------
DEFAULT_FORECAST_DAYS = 7
DEFAULT_INSIGHT_LIMIT = 5

# ---------- Persistent store ----------
READ_CACHE_TTL = 5.0  # seconds
WRITE_DEBOUNCE = 0.1  # seconds
ASSUMED_CAPACITY_BYTES = 5 * 1024 * 1024
HEALTH_WARNING_PERCENTAGE = 80
QUOTA_CLEANUP_DAYS = 30
AVAILABILITY_PROBE_KEY = "__storage_test__"

# ---------- Storage keys ----------
DEFAULT_KEY_PREFIX = "flashdeck"
SCHEMA_VERSION = 1
EXPORT_VERSION = 1

# ---------- Packs ----------
PACK_COLORS = (
    "#3B82F6",  # Blue
    "#10B981",  # Green
    "#F59E0B",  # Amber
    "#EF4444",  # Red
    "#8B5CF6",  # Purple
    "#EC4899",  # Pink
    "#06B6D4",  # Cyan
    "#6B7280",  # Gray
)
DEFAULT_PACKS = (
    ("All Cards", "#3B82F6"),
    ("Recently Added", "#10B981"),
)
