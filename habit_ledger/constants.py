"""
Application constants.
Default configuration values, recurrence kinds and ledger id prefixes.
"""

# Recurrence kinds
RECURRENCE_DAILY = "daily"
RECURRENCE_WEEKLY = "weekly"  # Alias of daily, no weekly reset window
RECURRENCE_ONCE = "once"
RECURRENCE_STREAK = "streak"
RECURRENCE_KINDS = (
    RECURRENCE_DAILY,
    RECURRENCE_WEEKLY,
    RECURRENCE_ONCE,
    RECURRENCE_STREAK,
)

# Recorded on the bonus entry instead of the task's own kind
RECURRENCE_STREAK_BONUS = "streak_bonus"

# Ledger entry id prefixes
ONCE_PREFIX = "ONCE_"
STREAK_BONUS_PREFIX = "STREAK_BONUS_"
ID_SEPARATOR = "_"

DEFAULT_REQUIRED_DAYS = 1

# Notifications
NOTIFICATION_STREAK_BONUS_AWARDED = "streak_bonus_awarded"
PERSISTENCE_FAILURE_MESSAGE = "Failed to save progress. Please check internet connection."

# Database
DEFAULT_DATABASE_URL = "sqlite:///./habit_ledger.db"

# Security
DEFAULT_API_KEY = "your-secret-key-change-me"

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/habit-ledger"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"
DEFAULT_LOG_FILE = "app.log"

# Reconciliation audit
DEFAULT_AUDIT_TIME = "03:00"

# CORS
CORS_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
]
