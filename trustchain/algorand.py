"""
Algorand collaborator: writes go through algod with `algosdk`, reads go
through the indexer REST API with `requests`.
"""
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests
from algosdk import account, mnemonic
from algosdk.transaction import AssetCreateTxn, PaymentTxn, wait_for_confirmation
from algosdk.v2client import algod

from .config import Settings
from .errors import ConfigurationMissing, InsufficientFunds, UpstreamFailure

logger = logging.getLogger(__name__)

CONFIRMATION_ROUNDS = 10


@dataclass(frozen=True)
class SubmittedTransaction:
    transaction_id: str
    confirmed_round: Optional[int]


@dataclass(frozen=True)
class CreatedAsset:
    transaction_id: str
    asset_id: Optional[int]
    confirmed_round: Optional[int]


@dataclass(frozen=True)
class AccountBalance:
    amount: int
    min_balance: int

    @property
    def spendable(self) -> int:
        return max(self.amount - self.min_balance, 0)


@dataclass(frozen=True)
class LedgerTransaction:
    id: str
    tx_type: Optional[str] = None
    confirmed_round: Optional[int] = None
    round_time: Optional[int] = None
    note: Optional[bytes] = None
    created_asset_id: Optional[int] = None

    @classmethod
    def from_indexer(cls, payload: dict) -> "LedgerTransaction":
        note = None
        if payload.get("note"):
            try:
                note = base64.b64decode(payload["note"])
            except (binascii.Error, ValueError):
                note = None
        return cls(
            id=payload["id"],
            tx_type=payload.get("tx-type"),
            confirmed_round=payload.get("confirmed-round"),
            round_time=payload.get("round-time"),
            note=note,
            created_asset_id=payload.get("created-asset-index"),
        )


@dataclass(frozen=True)
class Issuer:
    address: str
    private_key: str

    @classmethod
    def from_mnemonic(cls, phrase: Optional[str]) -> "Issuer":
        if not phrase or not phrase.strip():
            raise ConfigurationMissing(
                "ALGORAND_MNEMONIC is required in .env to issue proofs and load issuer history"
            )
        try:
            private_key = mnemonic.to_private_key(phrase.strip())
        except Exception as e:
            raise ConfigurationMissing(f"ALGORAND_MNEMONIC is not a valid Algorand mnemonic: {e}")
        return cls(address=account.address_from_private_key(private_key), private_key=private_key)


def _is_overspend(error: Exception) -> bool:
    return "overspend" in str(error).lower()


class AlgorandLedger:
    """Ledger collaborator backed by algod (writes, balances) and the indexer (reads)."""

    def __init__(self, settings: Settings, algod_client: Optional[algod.AlgodClient] = None):
        self.settings = settings
        self.algod = algod_client or algod.AlgodClient(settings.algod_token, settings.algod_server)
        self._issuer: Optional[Issuer] = None

    # ── Issuer identity ──────────────────────────────────────────────────────
    @property
    def issuer(self) -> Issuer:
        if self._issuer is None:
            self._issuer = Issuer.from_mnemonic(self.settings.mnemonic)
        return self._issuer

    def issuer_address(self) -> str:
        return self.issuer.address

    # ── algod ────────────────────────────────────────────────────────────────
    def _send_and_confirm(self, txn) -> dict:
        signed = txn.sign(self.issuer.private_key)
        try:
            tx_id = self.algod.send_transaction(signed)
            logger.info(f"[CHAIN] Submitted {tx_id}, waiting for confirmation")
            confirmation = wait_for_confirmation(self.algod, tx_id, CONFIRMATION_ROUNDS)
        except Exception as e:
            if _is_overspend(e):
                raise InsufficientFunds(
                    "Issuer wallet has insufficient TestNet ALGO balance to pay network fees.",
                    issuer=self.issuer.address,
                    requiredForIssue=self.settings.issue_min_recommended_microalgos,
                    fundingUrl=self.settings.funding_url,
                )
            raise UpstreamFailure(f"Algod request failed: {e}", algodStatus=getattr(e, "code", None))
        confirmation["txId"] = tx_id
        return confirmation

    def _suggested_params(self):
        try:
            return self.algod.suggested_params()
        except Exception as e:
            raise UpstreamFailure(f"Could not fetch suggested params from algod: {e}")

    def submit_self_transfer(self, note: bytes) -> SubmittedTransaction:
        address = self.issuer.address
        txn = PaymentTxn(
            sender=address,
            sp=self._suggested_params(),
            receiver=address,
            amt=0,
            note=note,
        )
        confirmation = self._send_and_confirm(txn)
        return SubmittedTransaction(
            transaction_id=confirmation["txId"],
            confirmed_round=confirmation.get("confirmed-round"),
        )

    def create_unique_asset(self, unit_name: str, asset_name: str, asset_url: str, note: bytes) -> CreatedAsset:
        address = self.issuer.address
        txn = AssetCreateTxn(
            sender=address,
            sp=self._suggested_params(),
            total=1,
            decimals=0,
            default_frozen=False,
            unit_name=unit_name,
            asset_name=asset_name,
            url=asset_url,
            manager=address,
            reserve=address,
            freeze=address,
            clawback=address,
            note=note,
        )
        confirmation = self._send_and_confirm(txn)
        return CreatedAsset(
            transaction_id=confirmation["txId"],
            asset_id=confirmation.get("asset-index"),
            confirmed_round=confirmation.get("confirmed-round"),
        )

    def get_account_balance(self, address: str) -> AccountBalance:
        try:
            info = self.algod.account_info(address)
        except Exception as e:
            raise UpstreamFailure(f"Could not read account {address} from algod: {e}")
        return AccountBalance(
            amount=int(info.get("amount") or 0),
            min_balance=int(info.get("min-balance") or 0),
        )

    # ── indexer ──────────────────────────────────────────────────────────────
    def _indexer_get(self, path: str, params: Optional[dict] = None) -> Optional[dict]:
        headers = {}
        if self.settings.indexer_token:
            headers["X-Indexer-API-Token"] = self.settings.indexer_token
        try:
            resp = requests.get(
                f"{self.settings.indexer_server.rstrip('/')}{path}",
                params=params,
                headers=headers,
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as e:
            raise UpstreamFailure(f"Indexer request failed: {e}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise UpstreamFailure(f"Indexer returned HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError:
            raise UpstreamFailure(f"Indexer returned a non-JSON response: {resp.text[:200]}")
        if not isinstance(body, dict):
            raise UpstreamFailure("Indexer returned an unexpected response shape")
        return body

    def get_transaction_by_id(self, transaction_id: str) -> Optional[LedgerTransaction]:
        body = self._indexer_get(f"/v2/transactions/{transaction_id}")
        if not body or not body.get("transaction"):
            return None
        return LedgerTransaction.from_indexer(body["transaction"])

    def search_transactions_by_address(self, address: str, limit: int) -> List[LedgerTransaction]:
        body = self._indexer_get("/v2/transactions", params={"address": address, "limit": limit})
        transactions = (body or {}).get("transactions", [])
        logger.info(f"[CHAIN] Found {len(transactions)} transaction(s) for {address[:8]}...")
        return [LedgerTransaction.from_indexer(tx) for tx in transactions]
