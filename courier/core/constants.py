"""Application-wide constants.

This module centralizes magic numbers and configuration constants
that are used across multiple modules. For environment-specific
configuration, see config.py. Runtime-tunable limits (message length,
group size) live in the MessagingSettings row instead.
"""

# =============================================================================
# Pagination Defaults
# =============================================================================

# Default page size for conversation lists
DEFAULT_PAGE_SIZE: int = 20

# Default page size for conversation messages
CONVERSATION_MESSAGES_PAGE_SIZE: int = 50

# Maximum page size to prevent abuse
MAX_PAGE_SIZE: int = 100

# Search result caps
CONVERSATION_SEARCH_LIMIT: int = 20
MESSAGE_SEARCH_LIMIT: int = 50

# =============================================================================
# Content Limits
# =============================================================================

# Denormalized last-message preview on conversations
LAST_MESSAGE_PREVIEW_LENGTH: int = 100

# Notification message preview length
NOTIFICATION_PREVIEW_MAX_LENGTH: int = 50

# Replacement content for soft-deleted messages
DELETED_MESSAGE_TOMBSTONE: str = "[Message deleted]"

# =============================================================================
# Messaging Settings Defaults
# =============================================================================

DEFAULT_MESSAGING_ENABLED: bool = True
DEFAULT_MAX_MESSAGE_LENGTH: int = 2000
DEFAULT_MAX_GROUP_PARTICIPANTS: int = 50
DEFAULT_MESSAGE_RETENTION_DAYS: int = 90

# =============================================================================
# Do Not Disturb
# =============================================================================

DND_DEFAULT_START: str = "00:00"
DND_DEFAULT_END: str = "23:59"
