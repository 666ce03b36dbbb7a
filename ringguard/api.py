"""
RingGuard HTTP API.

Collaborators submit ciphertexts and drive analyses; the decryption gateway
posts its answers to ``/oracle/callback``. Core errors are mapped to HTTP
statuses by one exception handler, using each error's ``http_status``.

Serve with any ASGI server, e.g. ``uvicorn ringguard.api:create_app --factory``.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__, config
from .errors import RingGuardError
from .fhe import Ciphertext
from .logging_config import audit_log, configure_logging, set_request_id
from .models import (
    AnalysisRequest,
    DecryptionCallbackRequest,
    EdgeRequest,
    MatrixRequest,
    ReviewRequest,
    TransactionRequest,
)
from .service import RingGuard

logger = logging.getLogger(__name__)


def create_app(service: Optional[RingGuard] = None) -> FastAPI:
    if service is None:
        configure_logging(config.LOG_LEVEL, json_format=config.LOG_JSON, log_file=config.LOG_FILE)
        for name, exists in config.validate_config().items():
            if not exists:
                logger.warning("configured path for %s does not exist", name)
        service = RingGuard.from_config()
    guard = service
    app = FastAPI(title="RingGuard", version=__version__, debug=config.is_debug())
    app.state.guard = guard

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(RingGuardError)
    async def _ringguard_error(request: Request, exc: RingGuardError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    # -- ledger -----------------------------------------------------------

    @app.post("/transactions")
    def submit_transaction(req: TransactionRequest):
        record_id = guard.submit_transaction(**req.ciphertexts())
        return {"id": record_id}

    # -- matrix -----------------------------------------------------------

    @app.post("/matrix")
    def initialize_matrix(req: MatrixRequest):
        guard.initialize_matrix(req.size)
        return {"size": req.size}

    @app.put("/matrix/edges")
    def set_edge(req: EdgeRequest):
        guard.set_edge(req.from_node, req.to_node, Ciphertext.from_hex(req.weight))
        return {"from_node": req.from_node, "to_node": req.to_node}

    @app.get("/matrix/edges/{i}/{j}")
    def get_edge(i: int, j: int):
        return {"from_node": i, "to_node": j, "weight": guard.get_edge(i, j).to_hex()}

    @app.post("/matrix/ingest")
    def ingest_ledger():
        return {"ingested": guard.ingest_ledger(), "size": guard.matrix.size}

    # -- analyses ---------------------------------------------------------

    @app.post("/analyses")
    def run_ring_detection(req: AnalysisRequest):
        analysis_id = guard.run_ring_detection(Ciphertext.from_hex(req.start_node), req.analysis_id)
        return {"analysis_id": analysis_id}

    @app.get("/analyses/{analysis_id}/encrypted")
    def get_encrypted_result(analysis_id: str):
        bundle = guard.get_encrypted_result(analysis_id)
        return {"analysis_id": analysis_id, **bundle.to_dict()}

    @app.get("/analyses/{analysis_id}")
    def get_decrypted_result(analysis_id: str):
        result = guard.get_decrypted_result(analysis_id)
        status = guard.ring_status(analysis_id).value if guard.results.has(analysis_id) else None
        return {"analysis_id": analysis_id, "status": status, **result.to_dict()}

    @app.post("/analyses/{analysis_id}/reveal")
    def request_reveal(analysis_id: str):
        return guard.request_reveal(analysis_id).to_dict()

    @app.delete("/analyses/{analysis_id}/reveal")
    def cancel_reveal(analysis_id: str):
        return guard.cancel_reveal(analysis_id).to_dict()

    @app.post("/analyses/{analysis_id}/review")
    def review_ring(analysis_id: str, req: ReviewRequest):
        status = guard.review_ring(analysis_id, req.status)
        return {"analysis_id": analysis_id, "status": status.value}

    @app.get("/reveals")
    def pending_reveals():
        return [p.to_dict() for p in guard.reveal.pending_requests()]

    # -- oracle -----------------------------------------------------------

    @app.post("/oracle/callback")
    def oracle_callback(req: DecryptionCallbackRequest):
        result = guard.on_decryption_callback(req.request_id, req.plaintexts, req.proof.to_proof())
        return result.to_dict()

    # -- operations -------------------------------------------------------

    @app.get("/summary")
    def ring_summary():
        return guard.ring_summary()

    @app.get("/health")
    def health():
        report = guard.health()
        if report["status"] != "ok":
            audit_log.security_event("SERVICE_DEGRADED", severity="high", **report)
            return JSONResponse(status_code=503, content=report)
        return report

    return app
