from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, HTTPException, Response

from persistence.gateway import ResultsGateway


def build_export_router(gateway: ResultsGateway) -> APIRouter:
    router = APIRouter(tags=["export"])

    def _require_access(url_path: str, password: str) -> None:
        allowed = gateway.verify_access(url_path, password)
        if allowed is None:
            raise HTTPException(status_code=404, detail="Page not found")
        if not allowed:
            raise HTTPException(status_code=401, detail="Invalid password")

    def _csv(producer: Callable[[], Optional[str]], prefix: str, missing: str) -> Response:
        content = producer()
        if content is None:
            raise HTTPException(status_code=404, detail=missing)
        filename = f"{prefix}_{date.today().isoformat()}.csv"
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @router.get("/{url_path}/{password}/download-trial")
    def download_trials(url_path: str, password: str) -> Response:
        _require_access(url_path, password)
        return _csv(gateway.export_trials, "results", "No results found")

    @router.get("/{url_path}/{password}/download-attention")
    def download_attention(url_path: str, password: str) -> Response:
        _require_access(url_path, password)
        return _csv(gateway.export_attention_checks, "attention_checks", "No attention check data found")

    @router.get("/{url_path}/{password}/download-bonus")
    def download_bonus(url_path: str, password: str) -> Response:
        _require_access(url_path, password)
        return _csv(gateway.export_bonus_payments, "bonus_payments", "No bonus payment data found")

    return router
