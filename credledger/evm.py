"""
EVM client for the on-chain IdentityRegistry contract.

This is the submission collaborator: each mutating call becomes one signed
transaction, and the client waits for its receipt. Reverts are mapped back
onto the registry error taxonomy so callers see the same failures as with
the in-process registry.
"""

import time
from dataclasses import dataclass
from typing import Any, Optional, Type, Union

import structlog
from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.types import TxReceipt

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
from .identity import ZERO_ADDRESS, hash_to_hex, normalize_address, parse_hash
from .records import DIDRecord
from .verification import CredentialStatus, VerificationResult

logger = structlog.get_logger()


# IdentityRegistry ABI (minimal)
IDENTITY_REGISTRY_ABI = [
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "issuer", "type": "address"}],
        "name": "addIssuer",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "issuer", "type": "address"}],
        "name": "removeIssuer",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "account", "type": "address"}],
        "name": "isIssuer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "didDocument", "type": "string"}],
        "name": "registerDID",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "didAddress", "type": "address"}],
        "name": "getDID",
        "outputs": [
            {"name": "owner_", "type": "address"},
            {"name": "didDocument_", "type": "string"},
            {"name": "createdAt_", "type": "uint256"},
            {"name": "isActive_", "type": "bool"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "credentialHash", "type": "bytes32"},
            {"name": "subject", "type": "address"},
            {"name": "credentialType", "type": "string"},
            {"name": "expiresAt", "type": "uint256"},
            {"name": "metadataURI", "type": "string"},
        ],
        "name": "issueCredential",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "credentialHash", "type": "bytes32"}],
        "name": "revokeCredential",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "credentialHash", "type": "bytes32"}],
        "name": "verifyCredential",
        "outputs": [
            {"name": "isValid", "type": "bool"},
            {"name": "issuer", "type": "address"},
            {"name": "subject", "type": "address"},
            {"name": "issuedAt", "type": "uint256"},
            {"name": "expiresAt", "type": "uint256"},
            {"name": "metadataURI", "type": "string"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "subject", "type": "address"}],
        "name": "getCredentialsBySubject",
        "outputs": [{"name": "", "type": "bytes32[]"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Revert reason fragments, most specific first.
_REVERT_REASONS: list[tuple[str, Type[RegistryError]]] = [
    ("only contract owner", Unauthorized),
    ("only authorized issuers", NotAuthorizedIssuer),
    ("only issuer", NotAuthorized),
    ("not the issuer", NotAuthorized),
    ("did already registered", AlreadyRegistered),
    ("already revoked", AlreadyRevoked),
    ("already exists", DuplicateCredential),
    ("already issued", DuplicateCredential),
    ("expir", InvalidExpiry),
    ("not found", NotFound),
    ("does not exist", NotFound),
]


def classify_revert(reason: str) -> Optional[Type[RegistryError]]:
    """Map a contract revert reason onto the error taxonomy."""
    lowered = reason.lower()
    for fragment, error_cls in _REVERT_REASONS:
        if fragment in lowered:
            return error_cls
    return None


@dataclass
class SubmitResult:
    """Outcome of one submitted operation."""

    success: bool
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class RegistryContractClient:
    """Client for IdentityRegistry contract calls and transactions."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: Optional[str] = None,
        chain_id: Optional[int] = None,
        receipt_timeout: float = 120.0,
        w3: Optional[Web3] = None,
    ):
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self.account = Account.from_key(private_key) if private_key else None
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=IDENTITY_REGISTRY_ABI,
        )

        logger.info(
            "evm_client_initialized",
            rpc_url=rpc_url,
            contract=contract_address,
            sender=self.account.address if self.account else None,
        )

    @property
    def address(self) -> str:
        if not self.account:
            raise ValueError("No private key configured")
        return self.account.address

    def check_connectivity(self) -> bool:
        """Check if EVM RPC is reachable."""
        try:
            _ = self.w3.eth.block_number
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def owner(self) -> str:
        return self.contract.functions.owner().call()

    def is_issuer(self, address: str) -> bool:
        return self.contract.functions.isIssuer(normalize_address(address)).call()

    def get_did(self, address: str) -> DIDRecord:
        address = normalize_address(address)
        try:
            owner, document, created_at, active = self.contract.functions.getDID(address).call()
        except ContractLogicError as e:
            raise NotFound(str(e), operation="get_did", identity=address) from e
        if owner == ZERO_ADDRESS:
            raise NotFound("DID not found", operation="get_did", identity=address)
        return DIDRecord(owner=owner, document=document, created_at=int(created_at), active=bool(active))

    def verify_credential(
        self, credential_hash: Union[str, bytes], now: Optional[int] = None
    ) -> VerificationResult:
        key = parse_hash(credential_hash)
        is_valid, issuer, subject, issued_at, expires_at, metadata_uri = (
            self.contract.functions.verifyCredential(key).call()
        )
        now = int(time.time()) if now is None else now
        if issuer == ZERO_ADDRESS:
            status = CredentialStatus.NOT_FOUND
        elif is_valid:
            status = CredentialStatus.VALID
        elif int(expires_at) <= now:
            status = CredentialStatus.EXPIRED
        else:
            status = CredentialStatus.REVOKED
        return VerificationResult(
            is_valid=bool(is_valid),
            issuer=issuer,
            subject=subject,
            issued_at=int(issued_at),
            expires_at=int(expires_at),
            metadata_uri=metadata_uri,
            status=status,
        )

    def get_credentials_by_subject(self, subject: str) -> tuple[bytes, ...]:
        hashes = self.contract.functions.getCredentialsBySubject(normalize_address(subject)).call()
        return tuple(bytes(h) for h in hashes)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _send(self, operation: str, fn: Any, gas_limit: int = 500_000) -> SubmitResult:
        """Simulate, sign, send and wait for one contract call."""
        if not self.account:
            return SubmitResult(success=False, error="No private key configured")

        try:
            # Dry call first so reverts come back with their reason.
            fn.call({"from": self.account.address})
        except ContractLogicError as e:
            reason = str(e)
            error_cls = classify_revert(reason)
            logger.warning("tx_would_revert", operation=operation, reason=reason)
            return SubmitResult(
                success=False,
                error=reason,
                error_code=error_cls.code if error_cls else "reverted",
            )

        try:
            params: dict[str, Any] = {
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
                "gasPrice": self.w3.eth.gas_price,
                "gas": gas_limit,
            }
            if self.chain_id is not None:
                params["chainId"] = self.chain_id
            tx = fn.build_transaction(params)

            signed_tx = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)

            logger.info("tx_sent", operation=operation, tx_hash=tx_hash.hex())

            receipt: TxReceipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except Exception as e:
            logger.error("tx_submission_error", operation=operation, error=str(e))
            return SubmitResult(success=False, error=str(e))

        if receipt["status"] == 1:
            logger.info(
                "tx_confirmed",
                operation=operation,
                tx_hash=tx_hash.hex(),
                gas_used=receipt["gasUsed"],
            )
            return SubmitResult(
                success=True,
                tx_hash=tx_hash.hex(),
                block_number=receipt["blockNumber"],
                gas_used=receipt["gasUsed"],
            )

        logger.error("tx_reverted", operation=operation, tx_hash=tx_hash.hex())
        return SubmitResult(
            success=False,
            tx_hash=tx_hash.hex(),
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            error="Transaction reverted",
            error_code="reverted",
        )

    def add_issuer(self, address: str) -> SubmitResult:
        return self._send(
            "add_issuer", self.contract.functions.addIssuer(normalize_address(address))
        )

    def remove_issuer(self, address: str) -> SubmitResult:
        return self._send(
            "remove_issuer", self.contract.functions.removeIssuer(normalize_address(address))
        )

    def register_did(self, document: str) -> SubmitResult:
        return self._send("register_did", self.contract.functions.registerDID(document))

    def issue_credential(
        self,
        credential_hash: Union[str, bytes],
        subject: str,
        credential_type: str,
        expires_at: int,
        metadata_uri: str,
    ) -> SubmitResult:
        key = parse_hash(credential_hash)
        logger.info("issuing_credential", credential_hash=hash_to_hex(key), subject=subject)
        return self._send(
            "issue_credential",
            self.contract.functions.issueCredential(
                key, normalize_address(subject), credential_type, int(expires_at), metadata_uri
            ),
            gas_limit=800_000,
        )

    def revoke_credential(self, credential_hash: Union[str, bytes]) -> SubmitResult:
        return self._send(
            "revoke_credential",
            self.contract.functions.revokeCredential(parse_hash(credential_hash)),
        )
