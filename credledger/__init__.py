"""
credledger

Credential registry anchored to an EVM IdentityRegistry contract: an
owner-managed issuer allow-list, a DID directory, an append-only credential
ledger with one-way revocation, and a verification engine.

Usage:
    # Hash a credential payload
    credledger hash payload.json

    # Verify a credential on-chain
    credledger verify 0x... --check-metadata

    # Run the HTTP API over an in-process registry
    REGISTRY_OWNER=0x... credledger serve
"""

__version__ = "0.1.0"

from .clock import FixedClock, SystemClock
from .errors import (
    AlreadyRegistered,
    AlreadyRevoked,
    DuplicateCredential,
    InvalidExpiry,
    NotAuthorized,
    NotAuthorizedIssuer,
    NotFound,
    RegistryError,
    Unauthorized,
)
from .identity import CredentialPayload, create_credential_hash
from .records import Credential, DIDRecord, Issuer
from .registry import CredentialRegistry
from .state import RegistryState
from .verification import CredentialStatus, VerificationMode, VerificationResult

__all__ = [
    "__version__",
    "CredentialRegistry",
    "RegistryState",
    "SystemClock",
    "FixedClock",
    "CredentialPayload",
    "create_credential_hash",
    "Credential",
    "DIDRecord",
    "Issuer",
    "VerificationMode",
    "VerificationResult",
    "CredentialStatus",
    "RegistryError",
    "Unauthorized",
    "NotAuthorizedIssuer",
    "NotAuthorized",
    "NotFound",
    "DuplicateCredential",
    "AlreadyRegistered",
    "AlreadyRevoked",
    "InvalidExpiry",
]
