"""
Verification engine.

A read-only view over the ledger: the verdict is a pure function of the
credential record, the current time and (in live mode) the issuer's current
authorization. An unknown hash is a negative verdict, not an error.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .identity import ZERO_ADDRESS
from .records import Credential


class VerificationMode(str, Enum):
    """How far verification trusts the issuer allow-list."""

    # Authorization was checked at issuance; later removal does not matter.
    HISTORICAL = "historical"
    # The issuer must still be on the allow-list at verification time.
    LIVE = "live"


class CredentialStatus(str, Enum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    REVOKED = "revoked"
    EXPIRED = "expired"
    ISSUER_UNAUTHORIZED = "issuer_unauthorized"


@dataclass(frozen=True)
class VerificationResult:
    is_valid: bool
    issuer: str
    subject: str
    issued_at: int
    expires_at: int
    metadata_uri: str
    status: CredentialStatus

    def to_dict(self) -> dict[str, Any]:
        """Wire form consumed by verifiers."""
        return {
            "isValid": self.is_valid,
            "issuer": self.issuer,
            "subject": self.subject,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
            "metadataURI": self.metadata_uri,
        }


NOT_FOUND_RESULT = VerificationResult(
    is_valid=False,
    issuer=ZERO_ADDRESS,
    subject=ZERO_ADDRESS,
    issued_at=0,
    expires_at=0,
    metadata_uri="",
    status=CredentialStatus.NOT_FOUND,
)


def credential_status(
    credential: Optional[Credential],
    now: int,
    mode: VerificationMode = VerificationMode.HISTORICAL,
    is_issuer: Optional[Callable[[str], bool]] = None,
) -> CredentialStatus:
    if credential is None:
        return CredentialStatus.NOT_FOUND
    if credential.revoked:
        return CredentialStatus.REVOKED
    if credential.expires_at <= now:
        return CredentialStatus.EXPIRED
    if mode == VerificationMode.LIVE:
        if is_issuer is None:
            raise ValueError("live verification needs an is_issuer lookup")
        if not is_issuer(credential.issuer):
            return CredentialStatus.ISSUER_UNAUTHORIZED
    return CredentialStatus.VALID


def verify_credential(
    credential: Optional[Credential],
    now: int,
    mode: VerificationMode = VerificationMode.HISTORICAL,
    is_issuer: Optional[Callable[[str], bool]] = None,
) -> VerificationResult:
    """
    Produce the verdict for a credential record (or None for an unknown hash).

    Args:
        credential: ledger record, or None if the hash is not in the ledger
        now: current time in unix seconds
        mode: issuer trust model
        is_issuer: live allow-list lookup, required in LIVE mode

    Returns:
        VerificationResult; fields are zero/empty when the hash is unknown
    """
    status = credential_status(credential, now, mode, is_issuer)
    if credential is None:
        return NOT_FOUND_RESULT
    return VerificationResult(
        is_valid=status == CredentialStatus.VALID,
        issuer=credential.issuer,
        subject=credential.subject,
        issued_at=credential.issued_at,
        expires_at=credential.expires_at,
        metadata_uri=credential.metadata_uri,
        status=status,
    )
