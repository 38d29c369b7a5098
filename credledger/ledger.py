"""
Credential ledger: issuance, revocation and the subject index.
"""

import dataclasses
from typing import Optional, Union

from .clock import Clock
from .errors import (
    AlreadyRevoked,
    DuplicateCredential,
    InvalidExpiry,
    NotAuthorized,
    NotAuthorizedIssuer,
    NotFound,
)
from .identity import hash_to_hex, normalize_address, parse_hash
from .issuers import IssuerRegistry
from .records import Credential
from .state import RegistryState


class CredentialLedger:
    """
    Append-only mapping of credential hash to issuance record.

    Issuance is the only path that adds records. Revocation flips a
    one-way flag and only the recorded issuer may do it.
    """

    def __init__(self, state: RegistryState, clock: Clock, issuers: IssuerRegistry):
        self.state = state
        self.clock = clock
        self.issuers = issuers

    def issue_credential(
        self,
        caller: str,
        credential_hash: Union[str, bytes],
        subject: str,
        credential_type: str,
        expires_at: int,
        metadata_uri: str,
    ) -> Credential:
        issuer = normalize_address(caller)
        key = parse_hash(credential_hash)
        subject = normalize_address(subject)

        if not self.issuers.is_issuer(issuer):
            raise NotAuthorizedIssuer(
                "only authorized issuers can call this",
                operation="issue_credential",
                identity=issuer,
                credential_hash=hash_to_hex(key),
            )
        if key in self.state.credentials:
            raise DuplicateCredential(
                "credential already exists",
                operation="issue_credential",
                identity=issuer,
                credential_hash=hash_to_hex(key),
            )
        now = self.clock.now()
        if int(expires_at) <= now:
            raise InvalidExpiry(
                f"expiry {int(expires_at)} is not after issuance time {now}",
                operation="issue_credential",
                identity=issuer,
                credential_hash=hash_to_hex(key),
            )

        record = Credential(
            hash=key,
            issuer=issuer,
            subject=subject,
            credential_type=credential_type,
            issued_at=now,
            expires_at=int(expires_at),
            metadata_uri=metadata_uri,
        )
        # Record before index: any hash listed for a subject must resolve.
        self.state.credentials[key] = record
        self.state.subject_index[subject] = self.state.subject_index.get(subject, ()) + (key,)
        return record

    def revoke_credential(self, caller: str, credential_hash: Union[str, bytes]) -> Credential:
        caller = normalize_address(caller)
        key = parse_hash(credential_hash)
        current = self.state.credentials.get(key)

        if current is None:
            raise NotFound(
                "credential not found",
                operation="revoke_credential",
                identity=caller,
                credential_hash=hash_to_hex(key),
            )
        if current.issuer != caller:
            raise NotAuthorized(
                "only the original issuer can revoke",
                operation="revoke_credential",
                identity=caller,
                credential_hash=hash_to_hex(key),
            )
        if current.revoked:
            raise AlreadyRevoked(
                "credential already revoked",
                operation="revoke_credential",
                identity=caller,
                credential_hash=hash_to_hex(key),
            )

        record = dataclasses.replace(current, revoked=True, revoked_at=self.clock.now())
        self.state.credentials[key] = record
        return record

    def find_credential(self, credential_hash: Union[str, bytes]) -> Optional[Credential]:
        return self.state.credentials.get(parse_hash(credential_hash))

    def get_credential(self, credential_hash: Union[str, bytes]) -> Credential:
        key = parse_hash(credential_hash)
        record = self.state.credentials.get(key)
        if record is None:
            raise NotFound(
                "credential not found",
                operation="get_credential",
                credential_hash=hash_to_hex(key),
            )
        return record

    def get_credentials_by_subject(self, subject: str) -> tuple[bytes, ...]:
        return self.state.subject_index.get(normalize_address(subject), ())
