"""FastAPI authentication dependencies for the adsync API."""
import hmac
import os
from typing import Annotated

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader


API_KEY_HEADER = "X-ADSYNC-API-KEY"
API_KEY_ENV = "ADSYNC_API_KEY"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _configured_key() -> str:
    expected_key = os.getenv(API_KEY_ENV)
    if not expected_key:
        raise RuntimeError(f"{API_KEY_ENV} environment variable not configured")
    return expected_key


async def require_api_key(
    api_key: Annotated[str | None, Security(api_key_header)] = None
) -> str:
    """Validate the operator API key sent with every sync, refresh or classify call.

    Args:
        api_key: Value of the X-ADSYNC-API-KEY header, if present

    Returns:
        Validated API key

    Raises:
        HTTPException: 401 if the key is missing or does not match
        RuntimeError: If ADSYNC_API_KEY is not set on the server
    """
    expected_key = _configured_key()

    # Same 401 for missing and wrong keys
    if not api_key or not hmac.compare_digest(api_key.encode(), expected_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    return api_key
