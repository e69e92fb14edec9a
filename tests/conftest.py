"""
Shared fixtures for TrustChain tests.

- `FakeLedger` stands in for the algod/indexer collaborator and records writes
- `client` builds the app with a FakeLedger, so no test touches the network
"""
import base64
import json
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from trustchain.algorand import AccountBalance, CreatedAsset, LedgerTransaction, SubmittedTransaction
from trustchain.config import Settings
from trustchain.errors import ConfigurationMissing, UpstreamFailure
from trustchain.main import create_app
from trustchain.proofs import ProofService

ISSUER = "ISSUERADDRESSAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"


def tx_id(seed: str) -> str:
    """Build a syntactically valid 52-char transaction id."""
    return (seed.upper() + "A" * 52)[:52]


def note_bytes(payload) -> bytes:
    if isinstance(payload, dict):
        return json.dumps(payload).encode("utf-8")
    return payload


class FakeLedger:
    def __init__(self, address: Optional[str] = ISSUER, amount: int = 5_000_000, min_balance: int = 100_000):
        self.address = address
        self.balance = AccountBalance(amount=amount, min_balance=min_balance)
        self.transactions: Dict[str, LedgerTransaction] = {}
        self.history: List[LedgerTransaction] = []
        self.self_transfers: List[bytes] = []
        self.assets: List[dict] = []
        self.lookups: List[str] = []
        self.searches: List[tuple] = []
        self.fail_asset_creation = False
        self.asset_error = None
        self._round = 1000
        self._asset_id = 7000

    def issuer_address(self) -> str:
        if not self.address:
            raise ConfigurationMissing("ALGORAND_MNEMONIC is required in .env to issue proofs and load issuer history")
        return self.address

    def submit_self_transfer(self, note: bytes) -> SubmittedTransaction:
        self.self_transfers.append(note)
        self._round += 1
        return SubmittedTransaction(transaction_id=tx_id(f"PROOF{len(self.self_transfers)}"), confirmed_round=self._round)

    def create_unique_asset(self, unit_name, asset_name, asset_url, note) -> CreatedAsset:
        if self.fail_asset_creation:
            raise UpstreamFailure("Algod request failed: timed out")
        if self.asset_error is not None:
            raise self.asset_error
        self.assets.append({"unit_name": unit_name, "asset_name": asset_name, "asset_url": asset_url, "note": note})
        self._round += 1
        self._asset_id += 1
        return CreatedAsset(
            transaction_id=tx_id(f"ASSET{len(self.assets)}"),
            asset_id=self._asset_id,
            confirmed_round=self._round,
        )

    def get_transaction_by_id(self, transaction_id: str) -> Optional[LedgerTransaction]:
        self.lookups.append(transaction_id)
        return self.transactions.get(transaction_id)

    def search_transactions_by_address(self, address: str, limit: int) -> List[LedgerTransaction]:
        self.searches.append((address, limit))
        return self.history[:limit]

    def get_account_balance(self, address: str) -> AccountBalance:
        return self.balance

    def add_transaction(self, transaction_id: str, note=None, **fields) -> LedgerTransaction:
        tx = LedgerTransaction(id=transaction_id, note=note_bytes(note) if note is not None else None, **fields)
        self.transactions[transaction_id] = tx
        return tx


def indexer_payload(transaction_id: str, note: Optional[bytes] = None, **fields) -> dict:
    payload = {"id": transaction_id, **fields}
    if note is not None:
        payload["note"] = base64.b64encode(note).decode()
    return payload


@pytest.fixture
def settings() -> Settings:
    return Settings(mnemonic=None, issue_min_recommended_microalgos=350_000, max_file_size_mb=1)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def service(settings: Settings, ledger: FakeLedger) -> ProofService:
    return ProofService(settings, ledger)


@pytest.fixture
def client(settings: Settings, ledger: FakeLedger) -> TestClient:
    app = create_app(settings=settings, ledger=ledger)
    return TestClient(app)
