"""
Credential registry - the single writer over issuer, DID and credential state.

Every mutation runs under one write lock, which gives the same total order
of writes a chain gives by sequencing transactions. Reads never take the lock.
"""

import threading
from typing import Callable, Optional, Union

import structlog

from .clock import Clock, SystemClock
from .did import DIDDirectory
from .errors import RegistryError
from .identity import hash_to_hex, normalize_address
from .issuers import IssuerRegistry
from .ledger import CredentialLedger
from .records import Credential, DIDRecord, EventKind, Issuer, RegistryEvent
from .state import RegistryState
from .verification import VerificationMode, VerificationResult, verify_credential

logger = structlog.get_logger()

EventListener = Callable[[RegistryEvent], None]


class CredentialRegistry:
    """
    Issues, revokes and verifies credentials.

    Args:
        state: injected registry state (owner, allow-list, records)
        clock: time source for issuance, revocation and expiry
        verification_mode: issuer trust model used by verify_credential
    """

    def __init__(
        self,
        state: RegistryState,
        clock: Optional[Clock] = None,
        verification_mode: VerificationMode = VerificationMode.HISTORICAL,
    ):
        self.state = state
        self.clock = clock or SystemClock()
        self.verification_mode = VerificationMode(verification_mode)

        self.issuers = IssuerRegistry(state, self.clock)
        self.dids = DIDDirectory(state, self.clock)
        self.ledger = CredentialLedger(state, self.clock, self.issuers)

        self._write_lock = threading.RLock()
        self._listeners: list[EventListener] = []

        logger.info(
            "registry_initialized",
            owner=state.owner,
            verification_mode=self.verification_mode.value,
            credentials=len(state.credentials),
        )

    @classmethod
    def create(
        cls,
        owner: str,
        clock: Optional[Clock] = None,
        verification_mode: VerificationMode = VerificationMode.HISTORICAL,
    ) -> "CredentialRegistry":
        """New registry with a fresh state owned by `owner`."""
        clock = clock or SystemClock()
        return cls(RegistryState.genesis(owner, clock.now()), clock, verification_mode)

    @property
    def owner(self) -> str:
        return self.state.owner

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> None:
        """Deliver every future committed write to `listener`, in order."""
        with self._write_lock:
            self._listeners.append(listener)

    def events_since(self, sequence: int) -> list[RegistryEvent]:
        """Committed events with a sequence number above `sequence`."""
        events = list(self.state.events)
        return [event for event in events if event.sequence > sequence]

    def _commit(self, kind: EventKind, caller: str, record: object) -> RegistryEvent:
        event = RegistryEvent(
            sequence=self.state.last_sequence + 1,
            kind=kind,
            timestamp=self.clock.now(),
            caller=caller,
            record=record,
        )
        self.state.events.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # Listeners mirror the ledger; they cannot veto a committed write.
                logger.error(
                    "event_listener_error",
                    sequence=event.sequence,
                    kind=event.kind.value,
                    error=str(e),
                )
        return event

    def _rejected(self, error: RegistryError) -> None:
        logger.warning("operation_rejected", **error.to_dict())

    # ------------------------------------------------------------------
    # Issuer allow-list
    # ------------------------------------------------------------------

    def add_issuer(self, caller: str, address: str) -> Optional[Issuer]:
        with self._write_lock:
            try:
                record = self.issuers.add_issuer(caller, address)
            except RegistryError as e:
                self._rejected(e)
                raise
            if record is None:
                logger.debug("issuer_already_authorized", address=normalize_address(address))
                return None
            self._commit(EventKind.ISSUER_ADDED, normalize_address(caller), record)
        logger.info("issuer_added", address=record.address)
        return record

    def remove_issuer(self, caller: str, address: str) -> Optional[Issuer]:
        with self._write_lock:
            try:
                record = self.issuers.remove_issuer(caller, address)
            except RegistryError as e:
                self._rejected(e)
                raise
            if record is None:
                logger.debug("issuer_not_authorized", address=normalize_address(address))
                return None
            self._commit(EventKind.ISSUER_REMOVED, normalize_address(caller), record)
        logger.info("issuer_removed", address=record.address)
        return record

    def is_issuer(self, address: str) -> bool:
        return self.issuers.is_issuer(address)

    def list_issuers(self, include_removed: bool = False) -> list[Issuer]:
        return self.issuers.list_issuers(include_removed)

    # ------------------------------------------------------------------
    # DID directory
    # ------------------------------------------------------------------

    def register_did(self, caller: str, document: str) -> DIDRecord:
        with self._write_lock:
            try:
                record = self.dids.register_did(caller, document)
            except RegistryError as e:
                self._rejected(e)
                raise
            self._commit(EventKind.DID_REGISTERED, record.owner, record)
        logger.info("did_registered", owner=record.owner)
        return record

    def set_did_active(self, caller: str, active: bool) -> Optional[DIDRecord]:
        with self._write_lock:
            try:
                record = self.dids.set_did_active(caller, active)
            except RegistryError as e:
                self._rejected(e)
                raise
            if record is None:
                return None
            self._commit(EventKind.DID_STATUS_CHANGED, record.owner, record)
        logger.info("did_status_changed", owner=record.owner, active=record.active)
        return record

    def get_did(self, address: str) -> DIDRecord:
        return self.dids.get_did(address)

    # ------------------------------------------------------------------
    # Credential ledger
    # ------------------------------------------------------------------

    def issue_credential(
        self,
        caller: str,
        credential_hash: Union[str, bytes],
        subject: str,
        credential_type: str,
        expires_at: int,
        metadata_uri: str,
    ) -> Credential:
        with self._write_lock:
            try:
                record = self.ledger.issue_credential(
                    caller, credential_hash, subject, credential_type, expires_at, metadata_uri
                )
            except RegistryError as e:
                self._rejected(e)
                raise
            self._commit(EventKind.CREDENTIAL_ISSUED, record.issuer, record)
        logger.info(
            "credential_issued",
            credential_hash=record.hash_hex,
            issuer=record.issuer,
            subject=record.subject,
            credential_type=record.credential_type,
            expires_at=record.expires_at,
        )
        return record

    def revoke_credential(self, caller: str, credential_hash: Union[str, bytes]) -> Credential:
        with self._write_lock:
            try:
                record = self.ledger.revoke_credential(caller, credential_hash)
            except RegistryError as e:
                self._rejected(e)
                raise
            self._commit(EventKind.CREDENTIAL_REVOKED, record.issuer, record)
        logger.info(
            "credential_revoked",
            credential_hash=record.hash_hex,
            issuer=record.issuer,
            revoked_at=record.revoked_at,
        )
        return record

    def get_credential(self, credential_hash: Union[str, bytes]) -> Credential:
        return self.ledger.get_credential(credential_hash)

    def get_credentials_by_subject(self, subject: str) -> tuple[bytes, ...]:
        return self.ledger.get_credentials_by_subject(subject)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_credential(
        self,
        credential_hash: Union[str, bytes],
        mode: Optional[VerificationMode] = None,
    ) -> VerificationResult:
        """Validity verdict for a hash; unknown hashes are simply invalid."""
        result = verify_credential(
            self.ledger.find_credential(credential_hash),
            now=self.clock.now(),
            mode=mode or self.verification_mode,
            is_issuer=self.issuers.is_issuer,
        )
        logger.debug(
            "credential_verified",
            credential_hash=credential_hash if isinstance(credential_hash, str) else hash_to_hex(credential_hash),
            status=result.status.value,
        )
        return result
