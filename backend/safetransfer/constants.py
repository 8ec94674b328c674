"""
SafeTransfer Global Constants

Centralized location for system-wide constants used across the compliance core.
Regulatory figures (ceiling, rolling window) are NOT here; they live in Settings.
"""

from datetime import date, datetime, timezone


# Timestamp Functions
def get_current_timestamp() -> datetime:
    """Get current timestamp with UTC timezone.

    Returns:
        datetime: Current UTC timestamp
    """
    return datetime.now(timezone.utc)


def get_current_date() -> date:
    """Get today's date in UTC."""
    return get_current_timestamp().date()


# Application Constants
APP_NAME = "SafeTransfer Core"
APP_VERSION = "1.0.0"

SUPPORTED_LOCALES = ("en", "es", "it")

# Identity documents accepted at the counter
DOCUMENT_TYPES = ("passport", "id_card", "residence_permit", "drivers_license")

# Money-transfer networks an agent may operate
TRANSFER_SYSTEMS = (
    "western_union",
    "ria",
    "moneygram",
    "monty",
    "mondial_bony",
    "itransfer",
)

# Sanitized field length limits
MAX_DOCUMENT_NUMBER_LENGTH = 30
MAX_FISCAL_CODE_LENGTH = 16
MAX_PHONE_LENGTH = 25
MAX_EMAIL_LENGTH = 100
MAX_NAME_LENGTH = 150

MIN_SEARCH_TERM_LENGTH = 2
MAX_PLAUSIBLE_AGE = 120

# Free-text fields that get the security check on each form
CLIENT_FREE_TEXT_FIELDS = ("full_name", "address", "city", "notes")
TRANSFER_FREE_TEXT_FIELDS = (
    "recipient_name",
    "recipient_relationship",
    "purpose",
    "notes",
)

# Authority error fragments
CLIENT_ALREADY_EXISTS = "CLIENT_ALREADY_EXISTS"
ALREADY_EXISTS_MARKER = "already exists in your business"
