from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str


class SaveRequest(BaseModel):
    data: Optional[str] = None


class SaveAttentionRequest(BaseModel):
    participantId: Optional[str] = None
    data: Optional[List[Dict[str, Any]]] = None


class SaveBonusRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    participant_id: Optional[str] = None
    bonus_trial_id: Optional[Union[int, str]] = None
    bonus_trial_number: Optional[int] = None
    choice_on_bonus: Optional[str] = None
    outcome_amount: Optional[float] = None
    payment: str = "pending"


class SaveResponse(BaseModel):
    success: bool = True
    message: str
    accepted: int = Field(default=0, ge=0)
