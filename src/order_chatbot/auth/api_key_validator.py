"""API key validation for the admin endpoints.

Keys are compared in constant time against the configured set.
"""

import hmac


def parse_api_keys(raw: str | None) -> list[str]:
    """Split a comma-separated key list, dropping blanks.

    Args:
        raw: Value such as the ADMIN_API_KEY environment variable

    Returns:
        list: Non-empty, stripped keys
    """
    if not raw:
        return []
    return [key.strip() for key in raw.split(",") if key.strip()]


class APIKeyValidator:
    """Validates API keys presented to admin endpoints."""

    def __init__(self, api_keys: list[str]) -> None:
        """Initialize validator with list of valid API keys.

        Args:
            api_keys: List of valid API key strings

        Raises:
            ValueError: If api_keys list is empty
        """
        if not api_keys:
            raise ValueError("At least one API key must be provided")

        self.api_keys = frozenset(api_keys)

    def validate(self, api_key: str) -> bool:
        """Validate an API key.

        Args:
            api_key: The API key to validate

        Returns:
            bool: True if valid, False otherwise
        """
        candidate = api_key.encode()
        return any(hmac.compare_digest(candidate, key.encode()) for key in self.api_keys)
