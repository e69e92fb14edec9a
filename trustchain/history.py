"""
Rebuild issued proofs from an address's transaction window.

Each issuance leaves two notes with the same fingerprint: a `proof` marker on
a zero-value payment and an `asa` marker on the asset-creation transaction.
Pairing is by fingerprint alone, so re-issuing identical content maps every
matching marker to the same asset.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from .algorand import LedgerTransaction
from .notes import NoteKind, ProofNote, decode

UNTITLED_FILE = "Untitled file"


@dataclass(frozen=True)
class ProofRecord:
    id: str
    file_name: str
    hash: str
    transaction_id: str
    reference_label: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    transaction_round: Optional[int] = None
    asset_id: Optional[int] = None
    asset_transaction_id: Optional[str] = None
    issued_at: Optional[str] = None

    def to_dict(self) -> dict:
        record = {
            "id": self.id,
            "fileName": self.file_name,
            "referenceLabel": self.reference_label,
            "mimeType": self.mime_type,
            "fileSize": self.file_size,
            "hash": self.hash,
            "transactionId": self.transaction_id,
            "transactionRound": self.transaction_round,
            "assetId": self.asset_id,
            "issuedAt": self.issued_at,
        }
        # Only known right after issuance; history has no link between the two
        if self.asset_transaction_id is not None:
            record["assetTransactionId"] = self.asset_transaction_id
        return record


@dataclass(frozen=True)
class ActivityEntry:
    transaction: LedgerTransaction
    note: Optional[ProofNote]

    def to_dict(self) -> dict:
        tx, note = self.transaction, self.note
        return {
            "id": tx.id,
            "type": tx.tx_type,
            "roundTime": tx.round_time,
            "confirmedRound": tx.confirmed_round,
            "hash": note.fingerprint if note else None,
            "noteType": note.kind.value if note and note.kind else None,
            "note": note.to_dict() if note else None,
            "assetId": tx.created_asset_id,
        }


def _issued_at(tx: LedgerTransaction, note: ProofNote) -> Optional[str]:
    if tx.round_time:
        return datetime.fromtimestamp(tx.round_time, tz=timezone.utc).isoformat()
    return note.created_at


def reconstruct(transactions: Iterable[LedgerTransaction]) -> Tuple[List[ProofRecord], List[ActivityEntry]]:
    """Derive proof records (newest round first) and the raw activity view."""
    activity = [ActivityEntry(tx, decode(tx.note)) for tx in transactions]

    asset_by_hash = {}
    for entry in activity:
        note = entry.note
        if note and note.kind is NoteKind.ASSET and entry.transaction.created_asset_id:
            asset_by_hash[note.fingerprint] = entry.transaction.created_asset_id

    proofs = []
    for entry in activity:
        tx, note = entry.transaction, entry.note
        if not note or note.kind is not NoteKind.PROOF:
            continue
        proofs.append(ProofRecord(
            id=tx.id,
            file_name=note.metadata.file_name or UNTITLED_FILE,
            reference_label=note.metadata.reference_label,
            mime_type=note.metadata.mime_type,
            file_size=note.metadata.file_size,
            hash=note.fingerprint,
            transaction_id=tx.id,
            transaction_round=tx.confirmed_round,
            asset_id=asset_by_hash.get(note.fingerprint),
            issued_at=_issued_at(tx, note),
        ))

    # sorted() is stable, so equal rounds keep window order
    proofs = sorted(proofs, key=lambda record: record.transaction_round or 0, reverse=True)
    return proofs, activity
