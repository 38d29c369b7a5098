"""
Registry error taxonomy.

Every write-path error is raised before state is touched. None of these
are worth retrying: the same call against the same state fails the same way.
"""

from typing import Optional


class RegistryError(Exception):
    """Base class for registry failures."""

    code = "registry_error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        identity: Optional[str] = None,
        credential_hash: Optional[str] = None,
    ):
        self.message = message
        self.operation = operation
        self.identity = identity
        self.credential_hash = credential_hash
        super().__init__(f"{operation}: {message}")

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "code": self.code,
            "message": self.message,
            "operation": self.operation,
            "identity": self.identity,
            "credential_hash": self.credential_hash,
        }


class Unauthorized(RegistryError):
    """Caller lacks the role the operation requires."""

    code = "unauthorized"


class NotAuthorizedIssuer(Unauthorized):
    """Caller is not on the issuer allow-list."""

    code = "not_authorized_issuer"


class NotAuthorized(Unauthorized):
    """Caller is not the original issuer of the credential."""

    code = "not_authorized"


class NotFound(RegistryError):
    code = "not_found"


class DuplicateCredential(RegistryError):
    code = "duplicate_credential"


class AlreadyRegistered(RegistryError):
    code = "already_registered"


class AlreadyRevoked(RegistryError):
    code = "already_revoked"


class InvalidExpiry(RegistryError):
    code = "invalid_expiry"


class SignatureError(Exception):
    """Operation signature is malformed, expired, replayed or from someone else."""

    code = "invalid_signature"
