"""
Signed operation requests.

The HTTP service has no sessions: a mutating request names its caller and
carries an EIP-191 (personal_sign) signature over a canonical message. The
address recovered from the signature must equal the caller. Messages carry
a signing time and a nonce so a captured request cannot be replayed, and
name the registry owner so it cannot be replayed against another deployment.
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from .errors import SignatureError
from .identity import canonical_json, normalize_address

# Allowed clock skew for signatures dated in the future.
MAX_FUTURE_SKEW_SECONDS = 60


def build_operation_message(
    operation: str,
    registry: str,
    caller: str,
    params: dict[str, Any],
    signed_at: int,
    nonce: str,
) -> str:
    # This string must stay stable: wallets sign it byte for byte.
    return (
        "credledger operation\n"
        f"Operation: {operation}\n"
        f"Registry: {normalize_address(registry)}\n"
        f"Caller: {normalize_address(caller)}\n"
        f"Params: {canonical_json(params).decode('utf-8')}\n"
        f"Signed At: {int(signed_at)}\n"
        f"Nonce: {nonce}\n"
    )


@dataclass(frozen=True)
class SignedOperation:
    caller: str
    signature: str
    signed_at: int
    nonce: str


def sign_operation(
    private_key: str,
    operation: str,
    params: dict[str, Any],
    registry: str,
    signed_at: Optional[int] = None,
    nonce: Optional[str] = None,
) -> SignedOperation:
    """Client-side helper: sign an operation with a local key."""
    account = Account.from_key(private_key)
    signed_at = int(time.time()) if signed_at is None else int(signed_at)
    nonce = nonce or secrets.token_urlsafe(16)
    message = build_operation_message(operation, registry, account.address, params, signed_at, nonce)
    signed = account.sign_message(encode_defunct(text=message))
    signature = signed.signature.hex()
    if not signature.startswith("0x"):
        signature = f"0x{signature}"
    return SignedOperation(
        caller=account.address,
        signature=signature,
        signed_at=signed_at,
        nonce=nonce,
    )


class ReplayGuard:
    """
    Remembers (caller, nonce) pairs for as long as their signatures are fresh.
    """

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._seen: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def remember(self, caller: str, nonce: str, signed_at: int, now: int) -> None:
        """
        Raises:
            SignatureError: if the pair was already used
        """
        with self._lock:
            cutoff = now - self.ttl_seconds - MAX_FUTURE_SKEW_SECONDS
            self._seen = {k: ts for k, ts in self._seen.items() if ts >= cutoff}
            key = (caller, nonce)
            if key in self._seen:
                raise SignatureError("Nonce already used")
            self._seen[key] = signed_at


def verify_operation(
    *,
    operation: str,
    registry: str,
    caller: str,
    params: dict[str, Any],
    signed_at: int,
    nonce: str,
    signature: str,
    ttl_seconds: int,
    guard: Optional[ReplayGuard] = None,
    now: Optional[int] = None,
) -> str:
    """
    Check a signed operation and return the caller's checksum address.

    Raises:
        SignatureError: malformed, stale, replayed or mismatched signature
    """
    try:
        caller = normalize_address(caller)
    except ValueError as e:
        raise SignatureError(str(e)) from e

    now_ts = int(time.time()) if now is None else int(now)
    if signed_at < now_ts - ttl_seconds:
        raise SignatureError("Signature expired")
    if signed_at > now_ts + MAX_FUTURE_SKEW_SECONDS:
        raise SignatureError("Signature dated in the future")
    if not nonce:
        raise SignatureError("Nonce required")

    message = build_operation_message(operation, registry, caller, params, signed_at, nonce)
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        raise SignatureError(f"Invalid signature: {e}") from e
    if recovered != caller:
        raise SignatureError("Signature does not match caller")

    if guard is not None:
        guard.remember(caller, nonce, signed_at, now_ts)
    return caller
