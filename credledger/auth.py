"""
Request authentication for the API.

Two independent checks:
- X-API-Key: optional deployment gate. If API_TOKEN is unset it is disabled;
  if set, mutating endpoints require it (header only, no query param).
- Operation signature: establishes the caller identity the registry sees.
  There is no other way to act as an address.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from .config import Settings, get_settings
from .errors import SignatureError
from .models import SignedRequest
from .signing import ReplayGuard, verify_operation

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_token(
    api_key: Optional[str] = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> bool:
    """
    Verify API token if configured.

    Raises:
        HTTPException: 401 if a token is configured and missing or wrong
    """
    if not settings.api_token:
        return True

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API token required. Provide via X-API-Key header.",
            headers={"WWW-Authenticate": "X-API-Key"},
        )

    if api_key != settings.api_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
            headers={"WWW-Authenticate": "X-API-Key"},
        )

    return True


def authenticate_operation(
    operation: str,
    request: SignedRequest,
    registry: str,
    settings: Settings,
    guard: Optional[ReplayGuard],
) -> str:
    """
    Recover the caller of a signed request.

    Returns:
        Caller checksum address

    Raises:
        HTTPException: 401 for any signature problem
    """
    try:
        return verify_operation(
            operation=operation,
            registry=registry,
            caller=request.caller,
            params=request.params(),
            signed_at=request.signed_at,
            nonce=request.nonce,
            signature=request.signature,
            ttl_seconds=settings.signature_ttl_seconds,
            guard=guard,
        )
    except SignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{SignatureError.code}: {e}",
        ) from e
