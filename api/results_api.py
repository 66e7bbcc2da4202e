from __future__ import annotations

from fastapi import APIRouter, HTTPException
from loguru import logger

from core.errors import ValidationError
from persistence.gateway import ResultsGateway
from schemas.api import SaveAttentionRequest, SaveBonusRequest, SaveRequest, SaveResponse


def build_results_router(gateway: ResultsGateway) -> APIRouter:
    router = APIRouter(tags=["results"])

    @router.post("/save", response_model=SaveResponse)
    def save(req: SaveRequest) -> SaveResponse:
        try:
            accepted = gateway.save_rows(req.data)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.user_message)
        except Exception as exc:
            logger.error(f"[API] Error saving trial data: {exc}")
            raise HTTPException(status_code=500, detail="Error saving data")
        return SaveResponse(message=f"Data saved successfully. {accepted} entries processed.", accepted=accepted)

    @router.post("/save-attention", response_model=SaveResponse)
    def save_attention(req: SaveAttentionRequest) -> SaveResponse:
        try:
            accepted = gateway.save_attention_checks(req.participantId, req.data)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.user_message)
        except Exception as exc:
            logger.error(f"[API] Error saving attention check data: {exc}")
            raise HTTPException(status_code=500, detail="Error saving attention check data")
        return SaveResponse(
            message=f"Attention check data saved successfully. {accepted} entries processed.",
            accepted=accepted,
        )

    @router.post("/save-bonus", response_model=SaveResponse)
    def save_bonus(req: SaveBonusRequest) -> SaveResponse:
        try:
            gateway.save_bonus(req.model_dump())
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.user_message)
        except Exception as exc:
            logger.error(f"[API] Error saving bonus payment data: {exc}")
            raise HTTPException(status_code=500, detail="Error saving bonus payment data")
        return SaveResponse(message="Bonus payment data saved successfully.", accepted=1)

    return router
