import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# ── Testnet defaults ──────────────────────────────────────────────────────────
DEFAULT_ALGOD_SERVER   = "https://testnet-api.algonode.cloud"
DEFAULT_INDEXER_SERVER = "https://testnet-idx.algonode.cloud"
TESTNET_FUNDING_URL    = "https://lora.algokit.io/testnet/fund"


def _env(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is not None and value.strip():
        return value.strip()
    return default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    algod_server: str = DEFAULT_ALGOD_SERVER
    algod_token: str = ""
    indexer_server: str = DEFAULT_INDEXER_SERVER
    indexer_token: str = ""
    mnemonic: Optional[str] = None
    max_file_size_mb: int = 10
    issue_min_recommended_microalgos: int = 350_000
    allowed_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    allow_local_origins: bool = True
    port: int = 4000
    request_timeout: float = 10.0
    funding_url: str = TESTNET_FUNDING_URL

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment, after loading `.env`.

        The `.env` beside the package wins over one in the working directory;
        variables already set in the environment win over both.
        """
        load_dotenv(Path(__file__).parent / ".env")
        load_dotenv()

        origins = tuple(
            origin.strip()
            for origin in _env("ALLOWED_ORIGIN", "*").split(",")
            if origin.strip()
        )
        return cls(
            algod_server=_env("ALGOD_SERVER", DEFAULT_ALGOD_SERVER),
            algod_token=_env("ALGOD_TOKEN"),
            indexer_server=_env("INDEXER_SERVER", DEFAULT_INDEXER_SERVER),
            indexer_token=_env("INDEXER_TOKEN"),
            mnemonic=_env("ALGORAND_MNEMONIC") or None,
            max_file_size_mb=_env_int("MAX_FILE_SIZE_MB", 10),
            issue_min_recommended_microalgos=_env_int("ISSUE_MIN_RECOMMENDED_MICROALGOS", 350_000),
            allowed_origins=origins or ("*",),
            allow_local_origins=_env("ALLOW_LOCAL_ORIGINS", "true").lower() != "false",
            port=_env_int("PORT", 4000),
            request_timeout=float(_env("REQUEST_TIMEOUT", "10")),
        )
