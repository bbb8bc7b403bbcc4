"""Application-wide constants."""

# Defaults
DEFAULT_DATABASE_URL = "sqlite:///data/eventthreads.db"
DEFAULT_API_SERVER_HOST = "0.0.0.0"
DEFAULT_API_SERVER_PORT = 5000

# Thread lifetimes offered to creators, in hours
DEFAULT_THREAD_DURATIONS = [1, 2, 4, 8]

# Chat
SYSTEM_AUTHOR = "System"
JOIN_NOTICE_TEMPLATE = "{name} joined the thread"

# Fallback display name for users with no stored record
GUEST_NAME_PREFIX = "User_"
GUEST_NAME_SUFFIX_LENGTH = 4

# Usernames nobody may register
RESERVED_USERNAMES = frozenset({SYSTEM_AUTHOR.lower()})
