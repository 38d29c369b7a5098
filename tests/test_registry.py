"""
Tests for the credential registry: allow-list, DID directory, ledger and events.
"""

import threading

import pytest

from credledger.errors import (
    AlreadyRegistered,
    AlreadyRevoked,
    DuplicateCredential,
    InvalidExpiry,
    NotAuthorized,
    NotAuthorizedIssuer,
    NotFound,
    Unauthorized,
)
from credledger.records import Credential, EventKind
from credledger.state import RegistryState
from credledger.verification import CredentialStatus

ONE_YEAR = 365 * 86_400

H1 = "0x" + "a1" * 32
H2 = "0x" + "b2" * 32
H3 = "0x" + "c3" * 32


class TestIssuerAllowList:
    """Owner-controlled issuer authorization."""

    def test_owner_is_seeded_as_issuer(self, registry, owner) -> None:
        assert registry.owner == owner
        assert registry.is_issuer(owner)

    def test_add_then_remove(self, registry, owner, issuer) -> None:
        """is_issuer is false before add and false again after remove."""
        assert not registry.is_issuer(issuer)

        registry.add_issuer(owner, issuer)
        assert registry.is_issuer(issuer)

        registry.remove_issuer(owner, issuer)
        assert not registry.is_issuer(issuer)

    def test_add_is_idempotent(self, registry, owner, issuer) -> None:
        first = registry.add_issuer(owner, issuer)
        second = registry.add_issuer(owner, issuer)

        assert first is not None and first.authorized
        assert second is None
        assert registry.is_issuer(issuer)

    def test_remove_unknown_is_noop(self, registry, owner, stranger) -> None:
        assert registry.remove_issuer(owner, stranger) is None
        assert not registry.is_issuer(stranger)

    def test_non_owner_cannot_add(self, registry, issuer, stranger) -> None:
        with pytest.raises(Unauthorized) as exc_info:
            registry.add_issuer(stranger, issuer)

        assert exc_info.value.code == "unauthorized"
        assert exc_info.value.identity == stranger
        assert not registry.is_issuer(issuer)

    def test_authorized_issuer_cannot_manage_list(self, issuing_registry, issuer, stranger) -> None:
        with pytest.raises(Unauthorized):
            issuing_registry.add_issuer(issuer, stranger)

    def test_lowercase_addresses_are_normalized(self, registry, owner, issuer) -> None:
        registry.add_issuer(owner.lower(), issuer.lower())
        assert registry.is_issuer(issuer)

    def test_list_issuers(self, registry, owner, issuer, other_issuer) -> None:
        registry.add_issuer(owner, issuer)
        registry.add_issuer(owner, other_issuer)
        registry.remove_issuer(owner, other_issuer)

        active = {record.address for record in registry.list_issuers()}
        everyone = {record.address for record in registry.list_issuers(include_removed=True)}

        assert active == {owner, issuer}
        assert everyone == {owner, issuer, other_issuer}

    def test_invalid_address_rejected(self, registry, owner) -> None:
        with pytest.raises(ValueError):
            registry.add_issuer(owner, "not-an-address")


class TestDIDDirectory:
    """One immutable DID document per address."""

    def test_register_and_get(self, registry, clock, subject) -> None:
        record = registry.register_did(subject, '{"id":"did:ethr:x"}')

        assert record.owner == subject
        assert record.active
        assert record.created_at == clock.now()
        assert registry.get_did(subject) == record

    def test_second_registration_rejected(self, registry, subject) -> None:
        """Re-registering fails and the original document is untouched."""
        registry.register_did(subject, "first")

        with pytest.raises(AlreadyRegistered) as exc_info:
            registry.register_did(subject, "second")

        assert "DID already registered" in str(exc_info.value)
        assert registry.get_did(subject).document == "first"

    def test_get_unknown_did(self, registry, stranger) -> None:
        with pytest.raises(NotFound):
            registry.get_did(stranger)

    def test_set_active(self, registry, subject) -> None:
        registry.register_did(subject, "doc")

        changed = registry.set_did_active(subject, False)
        assert changed is not None and not changed.active
        assert registry.set_did_active(subject, False) is None
        assert registry.get_did(subject).document == "doc"

    def test_set_active_without_record(self, registry, stranger) -> None:
        with pytest.raises(NotFound):
            registry.set_did_active(stranger, False)


class TestIssuance:
    """Credential issuance preconditions and effects."""

    def test_issue_records_all_fields(self, issuing_registry, clock, issuer, subject) -> None:
        expires_at = clock.now() + ONE_YEAR
        record = issuing_registry.issue_credential(
            issuer, H1, subject, "Bachelor's Degree", expires_at, "ipfs://QmTest123"
        )

        assert isinstance(record, Credential)
        assert record.hash_hex == H1
        assert record.issuer == issuer
        assert record.subject == subject
        assert record.credential_type == "Bachelor's Degree"
        assert record.issued_at == clock.now()
        assert record.expires_at == expires_at
        assert record.metadata_uri == "ipfs://QmTest123"
        assert not record.revoked
        assert record.revoked_at is None

    def test_non_issuer_rejected(self, registry, clock, stranger, subject) -> None:
        with pytest.raises(NotAuthorizedIssuer) as exc_info:
            registry.issue_credential(stranger, H1, subject, "Degree", clock.now() + ONE_YEAR, "")

        assert isinstance(exc_info.value, Unauthorized)
        assert registry.verify_credential(H1).status == CredentialStatus.NOT_FOUND

    def test_duplicate_hash_rejected(self, issuing_registry, clock, issuer, subject, stranger) -> None:
        """A second issuance with the same hash fails and leaves the original alone."""
        original = issuing_registry.issue_credential(
            issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "ipfs://a"
        )
        clock.advance(10)

        with pytest.raises(DuplicateCredential):
            issuing_registry.issue_credential(
                issuer, H1, stranger, "Other", clock.now() + 2 * ONE_YEAR, "ipfs://b"
            )

        assert issuing_registry.get_credential(H1) == original
        assert issuing_registry.get_credentials_by_subject(stranger) == ()

    def test_authorization_checked_before_duplicate(self, issuing_registry, clock, issuer, subject, stranger) -> None:
        issuing_registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "")

        with pytest.raises(NotAuthorizedIssuer):
            issuing_registry.issue_credential(stranger, H1, subject, "Degree", clock.now() + ONE_YEAR, "")

    @pytest.mark.parametrize("offset", [0, -1, -ONE_YEAR])
    def test_expiry_must_be_in_future(self, issuing_registry, clock, issuer, subject, offset) -> None:
        with pytest.raises(InvalidExpiry):
            issuing_registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + offset, "")

        assert issuing_registry.get_credentials_by_subject(subject) == ()

    def test_bad_hash_rejected(self, issuing_registry, clock, issuer, subject) -> None:
        with pytest.raises(ValueError):
            issuing_registry.issue_credential(issuer, "0x1234", subject, "Degree", clock.now() + 1, "")

    def test_subject_listing_in_issuance_order(self, issuing_registry, clock, issuer, subject) -> None:
        for h in (H2, H1, H3):
            issuing_registry.issue_credential(issuer, h, subject, "Degree", clock.now() + ONE_YEAR, "")
            clock.advance(1)

        listed = issuing_registry.get_credentials_by_subject(subject)

        assert [f"0x{h.hex()}" for h in listed] == [H2, H1, H3]

    def test_failed_issuance_not_listed(self, issuing_registry, clock, issuer, subject) -> None:
        issuing_registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "")
        with pytest.raises(DuplicateCredential):
            issuing_registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "")
        with pytest.raises(InvalidExpiry):
            issuing_registry.issue_credential(issuer, H2, subject, "Degree", clock.now(), "")

        assert len(issuing_registry.get_credentials_by_subject(subject)) == 1

    def test_unknown_subject_has_empty_listing(self, registry, stranger) -> None:
        assert registry.get_credentials_by_subject(stranger) == ()

    def test_removed_issuer_cannot_issue(self, issuing_registry, clock, owner, issuer, subject) -> None:
        issuing_registry.remove_issuer(owner, issuer)

        with pytest.raises(NotAuthorizedIssuer):
            issuing_registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "")


class TestRevocation:
    """One-way revocation by the original issuer."""

    def _issue(self, registry, clock, issuer, subject, h=H1):
        return registry.issue_credential(issuer, h, subject, "Degree", clock.now() + ONE_YEAR, "ipfs://x")

    def test_revoke_sets_flag_and_time(self, issuing_registry, clock, issuer, subject) -> None:
        original = self._issue(issuing_registry, clock, issuer, subject)
        clock.advance(100)

        revoked = issuing_registry.revoke_credential(issuer, H1)

        assert revoked.revoked
        assert revoked.revoked_at == clock.now()
        assert revoked.issued_at == original.issued_at
        assert revoked.expires_at == original.expires_at
        assert revoked.metadata_uri == original.metadata_uri

    def test_second_revoke_rejected(self, issuing_registry, clock, issuer, subject) -> None:
        """revoked_at is set exactly once."""
        self._issue(issuing_registry, clock, issuer, subject)
        first = issuing_registry.revoke_credential(issuer, H1)
        clock.advance(50)

        with pytest.raises(AlreadyRevoked):
            issuing_registry.revoke_credential(issuer, H1)

        assert issuing_registry.get_credential(H1).revoked_at == first.revoked_at

    def test_other_issuer_cannot_revoke(self, issuing_registry, clock, owner, issuer, other_issuer, subject) -> None:
        self._issue(issuing_registry, clock, issuer, subject)
        issuing_registry.add_issuer(owner, other_issuer)

        with pytest.raises(NotAuthorized) as exc_info:
            issuing_registry.revoke_credential(other_issuer, H1)

        assert isinstance(exc_info.value, Unauthorized)
        assert not issuing_registry.get_credential(H1).revoked

    def test_owner_cannot_revoke_others_credential(self, issuing_registry, clock, owner, issuer, subject) -> None:
        self._issue(issuing_registry, clock, issuer, subject)

        with pytest.raises(Unauthorized):
            issuing_registry.revoke_credential(owner, H1)

    def test_revoke_unknown(self, issuing_registry, issuer) -> None:
        with pytest.raises(NotFound):
            issuing_registry.revoke_credential(issuer, H1)

    def test_removed_issuer_can_still_revoke(self, issuing_registry, clock, owner, issuer, subject) -> None:
        self._issue(issuing_registry, clock, issuer, subject)
        issuing_registry.remove_issuer(owner, issuer)

        assert issuing_registry.revoke_credential(issuer, H1).revoked

    def test_revoked_credential_stays_listed(self, issuing_registry, clock, issuer, subject) -> None:
        self._issue(issuing_registry, clock, issuer, subject)
        issuing_registry.revoke_credential(issuer, H1)

        assert len(issuing_registry.get_credentials_by_subject(subject)) == 1


class TestEndToEnd:
    """Owner adds an issuer, who issues, then revokes."""

    def test_scenario(self, registry, clock, owner, issuer, subject, stranger) -> None:
        registry.add_issuer(owner, issuer)
        registry.issue_credential(issuer, H1, subject, "Bachelor's Degree", clock.now() + ONE_YEAR, "ipfs://QmTest123")

        result = registry.verify_credential(H1)
        assert result.is_valid
        assert result.subject == subject
        assert result.issuer == issuer

        clock.advance(3600)
        registry.revoke_credential(issuer, H1)

        after = registry.verify_credential(H1)
        assert not after.is_valid
        assert after.status == CredentialStatus.REVOKED
        assert (after.issuer, after.subject, after.issued_at, after.expires_at, after.metadata_uri) == (
            result.issuer,
            result.subject,
            result.issued_at,
            result.expires_at,
            result.metadata_uri,
        )

        with pytest.raises(NotAuthorizedIssuer):
            registry.issue_credential(stranger, H2, subject, "Degree", clock.now() + ONE_YEAR, "")


class TestEvents:
    """Committed writes are logged and delivered to listeners."""

    def test_events_sequence(self, registry, clock, owner, issuer, subject) -> None:
        seen = []
        registry.subscribe(seen.append)

        registry.add_issuer(owner, issuer)
        registry.register_did(subject, "doc")
        registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "")
        registry.revoke_credential(issuer, H1)

        assert [e.kind for e in seen] == [
            EventKind.ISSUER_ADDED,
            EventKind.DID_REGISTERED,
            EventKind.CREDENTIAL_ISSUED,
            EventKind.CREDENTIAL_REVOKED,
        ]
        assert [e.sequence for e in seen] == [1, 2, 3, 4]
        assert registry.events_since(2) == seen[2:]

    def test_rejected_and_noop_writes_emit_nothing(self, registry, owner, issuer, stranger) -> None:
        registry.add_issuer(owner, issuer)
        registry.add_issuer(owner, issuer)
        with pytest.raises(Unauthorized):
            registry.add_issuer(stranger, stranger)

        assert registry.state.last_sequence == 1

    def test_listener_failure_does_not_undo_write(self, registry, owner, issuer) -> None:
        def broken(event):
            raise RuntimeError("boom")

        registry.subscribe(broken)
        registry.add_issuer(owner, issuer)

        assert registry.is_issuer(issuer)
        assert registry.state.last_sequence == 1


class TestConcurrency:
    """Writes are serialized by the registry's write lock."""

    def test_concurrent_duplicate_issuance_single_winner(self, issuing_registry, clock, issuer, subject) -> None:
        results = []
        errors = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            try:
                results.append(
                    issuing_registry.issue_credential(issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "")
                )
            except DuplicateCredential as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(errors) == 7
        assert issuing_registry.get_credentials_by_subject(subject) == (results[0].hash,)

    def test_concurrent_distinct_issuance_all_listed(self, issuing_registry, clock, issuer, subject) -> None:
        hashes = [bytes([i]) * 32 for i in range(1, 21)]

        threads = [
            threading.Thread(
                target=issuing_registry.issue_credential,
                args=(issuer, h, subject, "Degree", clock.now() + ONE_YEAR, ""),
            )
            for h in hashes
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        listed = issuing_registry.get_credentials_by_subject(subject)
        assert sorted(listed) == sorted(hashes)
        assert [e.record.hash for e in issuing_registry.events_since(1)] == list(listed)


class TestRegistryState:
    def test_injected_state_is_used(self, owner, clock) -> None:
        from credledger.registry import CredentialRegistry

        state = RegistryState.genesis(owner, clock.now())
        registry = CredentialRegistry(state, clock)

        assert registry.state is state
        assert state.issuers[owner].authorized

    def test_credential_revocation_fields_consistent(self, subject, issuer) -> None:
        with pytest.raises(ValueError):
            Credential(
                hash=b"\x01" * 32,
                issuer=issuer,
                subject=subject,
                credential_type="Degree",
                issued_at=1,
                expires_at=2,
                metadata_uri="",
                revoked=True,
                revoked_at=None,
            )

    def test_record_wire_forms(self, issuing_registry, clock, issuer, subject) -> None:
        issuing_registry.register_did(subject, "doc")
        credential = issuing_registry.issue_credential(
            issuer, H1, subject, "Degree", clock.now() + ONE_YEAR, "ipfs://x"
        )

        assert issuing_registry.dids.has_did(subject.lower())
        assert issuing_registry.get_did(subject).to_dict() == {
            "owner": subject,
            "document": "doc",
            "createdAt": clock.now(),
            "active": True,
        }
        assert credential.to_dict()["hash"] == H1
        assert credential.to_dict()["metadataURI"] == "ipfs://x"
        assert credential.to_dict()["revokedAt"] is None
