import logging
import time
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .algorand import AlgorandLedger
from .config import Settings
from .errors import ConfigurationMissing, InvalidInput, TrustChainError, UploadTooLarge
from .notes import FileMetadata
from .proofs import HISTORY_WINDOW, PROOFS_WINDOW, ProofService

logger = logging.getLogger(__name__)

# localhost, 127.0.0.1, *.local and private IPv4 ranges on any scheme/port
LOCAL_ORIGIN_REGEX = (
    r"^https?://("
    r"localhost|127\.0\.0\.1|[A-Za-z0-9.-]+\.local"
    r"|10\.\d{1,3}\.\d{1,3}\.\d{1,3}"
    r"|127\.\d{1,3}\.\d{1,3}\.\d{1,3}"
    r"|192\.168\.\d{1,3}\.\d{1,3}"
    r"|172\.(1[6-9]|2\d|3[01])\.\d{1,3}\.\d{1,3}"
    r")(:\d+)?$"
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


def get_proof_service(request: Request) -> ProofService:
    return request.app.state.proof_service


async def read_upload(file: Optional[UploadFile], max_bytes: int, require_name: bool = False) -> bytes:
    """Read an upload, enforcing the size limit before anything is hashed."""
    if file is None or (require_name and not file.filename):
        raise InvalidInput("A valid file upload is required" if require_name else "A file upload is required")
    data = await file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise UploadTooLarge(f"File exceeds the {max_bytes // (1024 * 1024)}MB size limit")
    return data


# ── All routes are under /api ─────────────────────────────────────────────────
router = APIRouter(prefix="/api")


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "service": "trustchain-backend",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/issuer")
async def issuer(service: ProofService = Depends(get_proof_service)):
    try:
        return {"address": service.issuer_address()}
    except ConfigurationMissing as e:
        return {"address": None, "configurationError": e.message}


@router.get("/issuer/status")
async def issuer_status(service: ProofService = Depends(get_proof_service)):
    try:
        status = await run_in_threadpool(service.get_issuer_status)
    except ConfigurationMissing as e:
        return {
            "address": None,
            "amount": 0,
            "minBalance": 0,
            "spendable": 0,
            "canIssue": False,
            "requiredForIssue": service.settings.issue_min_recommended_microalgos,
            "fundingUrl": service.settings.funding_url,
            "configurationError": e.message,
        }
    return status.to_dict()


@router.post("/proofs/issue", status_code=201)
async def issue_proof(
    file: Optional[UploadFile] = File(None),
    label: str = Form(""),
    service: ProofService = Depends(get_proof_service),
):
    data = await read_upload(file, service.settings.max_file_size_bytes, require_name=True)
    metadata = FileMetadata(
        file_name=file.filename,
        mime_type=file.content_type,
        file_size=len(data),
        reference_label=label.strip() or None,
    )
    proof = await run_in_threadpool(service.issue_proof, data, metadata)
    return {"message": "Proof issued successfully", "proof": proof.to_dict()}


@router.post("/proofs/verify")
async def verify_proof(
    file: Optional[UploadFile] = File(None),
    transactionId: str = Form(""),
    service: ProofService = Depends(get_proof_service),
):
    data = await read_upload(file, service.settings.max_file_size_bytes)
    result = await run_in_threadpool(service.verify_proof, data, transactionId)
    return result.to_dict()


@router.get("/proofs")
async def list_proofs(service: ProofService = Depends(get_proof_service)):
    try:
        proofs = await run_in_threadpool(service.list_proofs, PROOFS_WINDOW)
    except ConfigurationMissing as e:
        return {"proofs": [], "configurationError": e.message}
    return {"proofs": [proof.to_dict() for proof in proofs]}


@router.get("/transactions/history")
async def transaction_history(service: ProofService = Depends(get_proof_service)):
    try:
        address, activity, proofs = await run_in_threadpool(service.get_history, HISTORY_WINDOW)
    except ConfigurationMissing as e:
        return {
            "issuer": None,
            "count": 0,
            "transactions": [],
            "issuedProofs": [],
            "configurationError": e.message,
        }
    return {
        "issuer": address,
        "count": len(activity),
        "transactions": [entry.to_dict() for entry in activity],
        "issuedProofs": [proof.to_dict() for proof in proofs],
    }


def add_cors(app: FastAPI, settings: Settings) -> None:
    if "*" in settings.allowed_origins:
        app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
        return
    app.add_middleware(
        CORSMiddleware,
        # Browsers send a literal "null" origin for file:// pages
        allow_origins=[*settings.allowed_origins, "null"],
        allow_origin_regex=LOCAL_ORIGIN_REGEX if settings.allow_local_origins else None,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app(settings: Optional[Settings] = None, ledger=None) -> FastAPI:
    settings = settings or Settings.from_env()
    ledger = ledger or AlgorandLedger(settings)

    app = FastAPI(title="TrustChain API", version=__version__)
    app.state.settings = settings
    app.state.proof_service = ProofService(settings, ledger)

    add_cors(app, settings)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"[HTTP] {request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms")
        return response

    @app.exception_handler(TrustChainError)
    async def trustchain_error(_request: Request, exc: TrustChainError):
        if exc.status_code >= 500:
            logger.error(f"[HTTP] {type(exc).__name__}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error(_request: Request, exc: Exception):
        logger.exception("[HTTP] Unhandled server error", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Unexpected server error"})

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "message": "TrustChain API is running",
            "endpoints": [
                "/api/health",
                "/api/issuer",
                "/api/issuer/status",
                "/api/proofs",
                "/api/proofs/issue",
                "/api/proofs/verify",
                "/api/transactions/history",
            ],
        }

    app.include_router(router)
    return app


def run() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
