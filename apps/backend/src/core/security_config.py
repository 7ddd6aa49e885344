"""Security configuration constants for the EDEN API.

This module centralizes:
- Keys that must be redacted from structured logs
- Which error-response fields each environment may expose
"""

# Matched as substrings against lower-cased log keys. Chat session ids are
# opaque and stay readable in logs.
SENSITIVE_KEYS: set[str] = {
    # Credentials
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "apikey",
    "jwt",
    "csrf",
    "bearer",
    "cookie",
    "x-api-key",
    # Personal data that may appear in forwarded headers or payloads
    "email",
    "phone",
    "address",
    "credit_card",
    "card_number",
    "cvv",
    "bank_account",
}

# Production error responses only ever contain these fields
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

# Development adds diagnostics on top of the production set
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Return the error response fields allowed in ``environment``."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted.

    Args:
        key: The key name to check

    Returns:
        True if the key should be redacted, False otherwise
    """
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
