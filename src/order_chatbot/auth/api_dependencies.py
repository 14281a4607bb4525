"""FastAPI dependencies guarding the admin endpoints."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Header, HTTPException

from order_chatbot.auth.api_key_validator import APIKeyValidator


def check_api_key(x_api_key: str | None, validator: APIKeyValidator) -> str:
    """Validate the X-API-Key header value.

    Args:
        x_api_key: Header value, None when absent
        validator: Validator holding the accepted keys

    Returns:
        str: The validated API key

    Raises:
        HTTPException: 401 if the key is missing or not accepted
    """
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    if not validator.validate(x_api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")

    return x_api_key


def require_api_key(validator: APIKeyValidator) -> Callable[..., str]:
    """Build a FastAPI dependency checking X-API-Key against validator."""

    def dependency(x_api_key: Annotated[str | None, Header()] = None) -> str:
        return check_api_key(x_api_key, validator)

    return dependency
