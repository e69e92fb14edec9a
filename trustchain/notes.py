"""
Proof notes: the JSON payload written into an Algorand transaction note.

Decoding runs two strategies in order. The structured one parses the JSON
object written by `encode`. Only if that fails, the text is scanned for a
bare 64-hex fingerprint so hand-written or legacy notes still verify.
"""
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .errors import NoteTooLarge

APP_TAG             = "TrustChain"
NOTE_SCHEMA_VERSION = 1
MAX_NOTE_BYTES      = 1024  # algod rejects larger notes

_FINGERPRINT_RE   = re.compile(r"^[a-f0-9]{64}$")
_FINGERPRINT_SCAN = re.compile(r"[a-f0-9]{64}", re.IGNORECASE)


class NoteKind(str, Enum):
    PROOF = "proof"
    ASSET = "asa"

    @classmethod
    def parse(cls, value) -> Optional["NoteKind"]:
        if value == "proof":
            return cls.PROOF
        if value in ("asa", "asset"):
            return cls.ASSET
        return None


@dataclass(frozen=True)
class FileMetadata:
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    reference_label: Optional[str] = None


@dataclass(frozen=True)
class ProofNote:
    fingerprint: str
    kind: Optional[NoteKind] = None
    metadata: FileMetadata = FileMetadata()
    created_at: Optional[str] = None
    app: Optional[str] = None
    version: Optional[int] = None

    def to_dict(self) -> dict:
        payload = {
            "app": self.app,
            "v": self.version,
            "hash": self.fingerprint,
            "type": self.kind.value if self.kind else None,
            "fileName": self.metadata.file_name,
            "mimeType": self.metadata.mime_type,
            "fileSize": self.metadata.file_size,
            "referenceLabel": self.metadata.reference_label,
            "createdAt": self.created_at,
        }
        return {key: value for key, value in payload.items() if value is not None}


def encode(
    fingerprint: str,
    kind: NoteKind,
    metadata: Optional[FileMetadata] = None,
    created_at: Optional[datetime] = None,
) -> bytes:
    """Serialize a proof note. Raises NoteTooLarge instead of truncating."""
    fingerprint = fingerprint.lower()
    if not _FINGERPRINT_RE.match(fingerprint):
        raise ValueError(f"not a SHA-256 hex fingerprint: {fingerprint!r}")

    note = ProofNote(
        fingerprint=fingerprint,
        kind=kind,
        metadata=metadata or FileMetadata(),
        created_at=(created_at or datetime.now(timezone.utc)).isoformat(),
        app=APP_TAG,
        version=NOTE_SCHEMA_VERSION,
    )
    raw = json.dumps(note.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    if len(raw) > MAX_NOTE_BYTES:
        raise NoteTooLarge(
            f"Proof note is {len(raw)} bytes; the ledger allows at most {MAX_NOTE_BYTES}",
            noteSize=len(raw),
            maxNoteSize=MAX_NOTE_BYTES,
        )
    return raw


def _optional_str(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _decode_structured(text: str) -> Optional[ProofNote]:
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(payload, dict) or not _optional_str(payload.get("hash")):
        return None

    size = payload.get("fileSize")
    version = payload.get("v")
    return ProofNote(
        fingerprint=payload["hash"].lower(),
        kind=NoteKind.parse(payload.get("type")),
        metadata=FileMetadata(
            file_name=_optional_str(payload.get("fileName")),
            mime_type=_optional_str(payload.get("mimeType")),
            file_size=size if isinstance(size, int) and not isinstance(size, bool) else None,
            reference_label=_optional_str(payload.get("referenceLabel")),
        ),
        created_at=_optional_str(payload.get("createdAt")),
        app=_optional_str(payload.get("app")),
        version=version if isinstance(version, int) and not isinstance(version, bool) else None,
    )


def _decode_scan(text: str) -> Optional[ProofNote]:
    match = _FINGERPRINT_SCAN.search(text)
    return ProofNote(fingerprint=match.group(0).lower()) if match else None


def decode(raw: Optional[bytes]) -> Optional[ProofNote]:
    """Recover a proof note from note bytes, or None. Never raises."""
    if not raw:
        return None
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        return None
    return _decode_structured(text) or _decode_scan(text)

