from __future__ import annotations

import os
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from api.export_api import build_export_router
from api.results_api import build_results_router
from persistence.gateway import ResultsGateway
from persistence.store import InMemoryDocumentStore, PostgresDocumentStore
from schemas.api import HealthResponse


def build_document_store() -> InMemoryDocumentStore | PostgresDocumentStore:
    dsn = os.getenv("RESULTS_STORE_DSN")
    table = os.getenv("RESULTS_STORE_TABLE", "documents")
    if dsn:
        try:
            return PostgresDocumentStore(dsn, table=table)
        except Exception as exc:
            logger.warning(f"[API] Falling back to in-memory document store: {exc}")
    return InMemoryDocumentStore()


def create_app(gateway: ResultsGateway) -> FastAPI:
    app = FastAPI(title="Risk Survey API", version="0.1.0")

    allowed_origins = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())

    app.include_router(build_results_router(gateway))
    # Export routes match any two-segment prefix, so they go last.
    app.include_router(build_export_router(gateway))
    return app


document_store = build_document_store()
gateway = ResultsGateway(document_store)
app = create_app(gateway)
