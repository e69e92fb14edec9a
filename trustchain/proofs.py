"""
Proof issuance, verification and listing on top of a ledger collaborator.

Nothing is stored locally: an issued proof is a zero-value self payment
whose note carries the file's SHA-256, plus a one-unit asset minted with the
same fingerprint in its note. Both can be recovered from the issuer's
transaction history at any time.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Tuple

from .algorand import AccountBalance, CreatedAsset, LedgerTransaction, SubmittedTransaction
from .config import Settings
from .errors import InsufficientFunds, InvalidInput, NoProofData, NotFound, TrustChainError
from .hashing import fingerprint
from .history import UNTITLED_FILE, ActivityEntry, ProofRecord, reconstruct
from .notes import FileMetadata, NoteKind, decode, encode

logger = logging.getLogger(__name__)

TRANSACTION_ID_RE = re.compile(r"^[A-Z2-7]{52}$")

ASSET_UNIT_NAME  = "TRUSTPRF"
ASSET_URL_PREFIX = "https://trustchain.app/proof/"

PROOFS_WINDOW  = 200
HISTORY_WINDOW = 100


class Ledger(Protocol):
    def issuer_address(self) -> str: ...

    def submit_self_transfer(self, note: bytes) -> SubmittedTransaction: ...

    def create_unique_asset(self, unit_name: str, asset_name: str, asset_url: str, note: bytes) -> CreatedAsset: ...

    def get_transaction_by_id(self, transaction_id: str) -> Optional[LedgerTransaction]: ...

    def search_transactions_by_address(self, address: str, limit: int) -> List[LedgerTransaction]: ...

    def get_account_balance(self, address: str) -> AccountBalance: ...


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    transaction_id: str
    uploaded_hash: str
    on_chain_hash: str
    confirmed_round: Optional[int] = None

    @property
    def status(self) -> str:
        return "VERIFIED" if self.verified else "INVALID"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "verified": self.verified,
            "transactionId": self.transaction_id,
            "uploadedHash": self.uploaded_hash,
            "onChainHash": self.on_chain_hash,
            "confirmedRound": self.confirmed_round,
        }


@dataclass(frozen=True)
class IssuerStatus:
    address: str
    balance: AccountBalance
    required_for_issue: int
    funding_url: str

    @property
    def can_issue(self) -> bool:
        return self.balance.spendable >= self.required_for_issue

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "amount": self.balance.amount,
            "minBalance": self.balance.min_balance,
            "spendable": self.balance.spendable,
            "canIssue": self.can_issue,
            "requiredForIssue": self.required_for_issue,
            "fundingUrl": self.funding_url,
        }


def normalize_transaction_id(raw: Optional[str]) -> str:
    """Validate a transaction id before it costs an indexer lookup."""
    transaction_id = (raw or "").strip().upper()
    if not transaction_id:
        raise InvalidInput("Transaction ID is required")
    if not TRANSACTION_ID_RE.match(transaction_id):
        raise InvalidInput("Transaction ID format is invalid")
    return transaction_id


class ProofService:
    def __init__(self, settings: Settings, ledger: Ledger):
        self.settings = settings
        self.ledger = ledger

    def issuer_address(self) -> str:
        return self.ledger.issuer_address()

    def get_issuer_status(self) -> IssuerStatus:
        address = self.ledger.issuer_address()
        return IssuerStatus(
            address=address,
            balance=self.ledger.get_account_balance(address),
            required_for_issue=self.settings.issue_min_recommended_microalgos,
            funding_url=self.settings.funding_url,
        )

    def issue_proof(self, data: bytes, metadata: FileMetadata) -> ProofRecord:
        status = self.get_issuer_status()
        if not status.can_issue:
            raise InsufficientFunds(
                "Issuer wallet has insufficient TestNet ALGO balance to issue proof transactions.",
                issuer=status.address,
                amount=status.balance.amount,
                spendable=status.balance.spendable,
                requiredForIssue=status.required_for_issue,
                fundingUrl=status.funding_url,
            )

        file_hash = fingerprint(data)
        now = datetime.now(timezone.utc)
        proof_note = encode(file_hash, NoteKind.PROOF, metadata, created_at=now)
        asset_note = encode(
            file_hash,
            NoteKind.ASSET,
            FileMetadata(file_name=metadata.file_name, reference_label=metadata.reference_label),
            created_at=now,
        )

        logger.info(f"[ISSUE] {metadata.file_name!r} hash={file_hash[:12]}... issuer={status.address[:8]}...")
        proof_tx = self.ledger.submit_self_transfer(proof_note)
        try:
            asset_tx = self.ledger.create_unique_asset(
                unit_name=ASSET_UNIT_NAME,
                asset_name=f"TrustChain Proof {now.date().isoformat()}",
                asset_url=f"{ASSET_URL_PREFIX}{file_hash[:32]}",
                note=asset_note,
            )
        except TrustChainError as e:
            # The marker is already confirmed; report it instead of rolling back
            logger.error(f"[ISSUE] Asset mint failed after proof tx {proof_tx.transaction_id}: {e.message}")
            raise type(e)(
                f"Proof transaction confirmed but asset creation failed: {e.message}",
                **{
                    **e.extra,
                    "transactionId": proof_tx.transaction_id,
                    "transactionRound": proof_tx.confirmed_round,
                    "hash": file_hash,
                },
            )

        logger.info(f"[ISSUE] Proof tx {proof_tx.transaction_id} asset {asset_tx.asset_id}")
        return ProofRecord(
            id=proof_tx.transaction_id,
            file_name=metadata.file_name or UNTITLED_FILE,
            reference_label=metadata.reference_label,
            mime_type=metadata.mime_type,
            file_size=metadata.file_size,
            hash=file_hash,
            transaction_id=proof_tx.transaction_id,
            transaction_round=proof_tx.confirmed_round,
            asset_id=asset_tx.asset_id,
            asset_transaction_id=asset_tx.transaction_id,
            issued_at=now.isoformat(),
        )

    def verify_proof(self, data: bytes, transaction_id: Optional[str]) -> VerificationResult:
        transaction_id = normalize_transaction_id(transaction_id)

        transaction = self.ledger.get_transaction_by_id(transaction_id)
        if transaction is None:
            raise NotFound("Transaction not found on Algorand TestNet", transactionId=transaction_id)

        note = decode(transaction.note)
        if note is None:
            raise NoProofData(
                "No TrustChain hash was found in the transaction note field for this transaction",
                transactionId=transaction_id,
            )

        uploaded_hash = fingerprint(data)
        on_chain_hash = note.fingerprint.lower()
        result = VerificationResult(
            verified=uploaded_hash == on_chain_hash,
            transaction_id=transaction_id,
            uploaded_hash=uploaded_hash,
            on_chain_hash=on_chain_hash,
            confirmed_round=transaction.confirmed_round,
        )
        logger.info(f"[VERIFY] {transaction_id[:8]}... -> {result.status}")
        return result

    def _issuer_window(self, limit: int) -> Tuple[str, List[LedgerTransaction]]:
        address = self.ledger.issuer_address()
        return address, self.ledger.search_transactions_by_address(address, limit)

    def list_proofs(self, limit: int = PROOFS_WINDOW) -> List[ProofRecord]:
        _, transactions = self._issuer_window(limit)
        proofs, _ = reconstruct(transactions)
        return proofs

    def get_history(self, limit: int = HISTORY_WINDOW) -> Tuple[str, List[ActivityEntry], List[ProofRecord]]:
        address, transactions = self._issuer_window(limit)
        proofs, activity = reconstruct(transactions)
        return address, activity, proofs
