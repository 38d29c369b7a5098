"""
Tests for the credledger CLI.
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from credledger import __version__
from credledger.cli import app
from credledger.config import get_settings
from credledger.evm import SubmitResult
from credledger.identity import CredentialPayload, create_credential_hash, hash_to_hex
from credledger.verification import CredentialStatus, VerificationResult

runner = CliRunner()

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
SUBJECT = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
H1 = "0x" + "a1" * 32


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    monkeypatch.delenv("REGISTRY_CONTRACT", raising=False)
    monkeypatch.delenv("PRIVATE_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestOfflineCommands:
    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_hash(self, tmp_path) -> None:
        payload = {
            "subject": SUBJECT,
            "issuer": "0x1234567890abcdef1234567890abcdef12345678",
            "timestamp": 1_700_000_000,
            "degree": "Bachelor of Science",
            "graduationDate": "2024-05-15",
        }
        path = tmp_path / "payload.json"
        path.write_text(json.dumps(payload))

        result = runner.invoke(app, ["hash", str(path)])

        expected = create_credential_hash(
            CredentialPayload(
                subject=payload["subject"],
                issuer=payload["issuer"],
                timestamp=payload["timestamp"],
                degree=payload["degree"],
                graduation_date=payload["graduationDate"],
            )
        )
        assert result.exit_code == 0
        assert result.output.strip() == hash_to_hex(expected)

    def test_hash_bad_file(self, tmp_path) -> None:
        path = tmp_path / "payload.json"
        path.write_text('{"unexpected": 1}')

        assert runner.invoke(app, ["hash", str(path)]).exit_code == 1


class TestChainCommands:
    def test_contract_required(self) -> None:
        result = runner.invoke(app, ["verify", H1])
        assert result.exit_code == 1

    def test_private_key_required_for_writes(self) -> None:
        result = runner.invoke(app, ["revoke", H1, "--contract", CONTRACT])
        assert result.exit_code == 1

    def test_verify_valid(self) -> None:
        verdict = VerificationResult(
            is_valid=True,
            issuer="0x1234567890AbcdEF1234567890aBcdef12345678",
            subject=SUBJECT,
            issued_at=1,
            expires_at=2,
            metadata_uri="ipfs://QmTest123",
            status=CredentialStatus.VALID,
        )
        with patch("credledger.cli.RegistryContractClient") as mock_client:
            mock_client.return_value.verify_credential.return_value = verdict
            result = runner.invoke(app, ["verify", H1, "--contract", CONTRACT])

        assert result.exit_code == 0
        assert "Status: valid" in result.output

    def test_verify_revoked_exits_nonzero(self) -> None:
        verdict = VerificationResult(
            is_valid=False,
            issuer=SUBJECT,
            subject=SUBJECT,
            issued_at=1,
            expires_at=2,
            metadata_uri="",
            status=CredentialStatus.REVOKED,
        )
        with patch("credledger.cli.RegistryContractClient") as mock_client:
            mock_client.return_value.verify_credential.return_value = verdict
            result = runner.invoke(app, ["verify", H1, "--contract", CONTRACT])

        assert result.exit_code == 1
        assert "Status: revoked" in result.output

    def test_issue_requires_hash_or_payload(self, monkeypatch) -> None:
        monkeypatch.setenv("PRIVATE_KEY", "0x" + "22" * 32)
        get_settings.cache_clear()

        result = runner.invoke(app, ["issue", SUBJECT, "Degree", "--contract", CONTRACT])
        assert result.exit_code == 1

    def test_issue_submits(self, monkeypatch) -> None:
        monkeypatch.setenv("PRIVATE_KEY", "0x" + "22" * 32)
        get_settings.cache_clear()

        with patch("credledger.cli.RegistryContractClient") as mock_client:
            mock_client.return_value.issue_credential.return_value = SubmitResult(
                success=True, tx_hash="ab" * 32, block_number=5, gas_used=100_000
            )
            result = runner.invoke(
                app, ["issue", SUBJECT, "Degree", "--hash", H1, "--contract", CONTRACT]
            )

        assert result.exit_code == 0
        assert "Confirmed" in result.output
        args = mock_client.return_value.issue_credential.call_args[0]
        assert args[0] == H1
        assert args[2] == "Degree"

    @pytest.mark.parametrize("command", ["add-issuer", "remove-issuer"])
    def test_issuer_change_rejects_bad_address(self, monkeypatch, command) -> None:
        monkeypatch.setenv("PRIVATE_KEY", "0x" + "22" * 32)
        get_settings.cache_clear()

        result = runner.invoke(app, [command, "not-an-address", "--contract", CONTRACT])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "Invalid address" in result.output

    def test_bad_contract_address(self) -> None:
        result = runner.invoke(app, ["did", SUBJECT, "--contract", "not-a-contract"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)

    def test_did_rpc_failure(self) -> None:
        with patch("credledger.cli.RegistryContractClient") as mock_client:
            mock_client.return_value.get_did.side_effect = ConnectionError("rpc down")
            result = runner.invoke(app, ["did", SUBJECT, "--contract", CONTRACT])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "rpc down" in result.output
