"""
Budget Endpoints
Spend limits, current status and the read-only pre-flight check
"""
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError

from ..middleware.error_handling import error_body
from ..models.budget import BudgetUpdate
from ..services.budget import BudgetEvaluator, BudgetStore, warning_level
from .deps import get_budget_store, get_evaluator

router = APIRouter(prefix="/api/budget", tags=["Budget"])

async def _status_payload(evaluator: BudgetEvaluator) -> dict:
    budget_status = await evaluator.get_status()
    payload = budget_status.model_dump()
    payload["warningLevel"] = warning_level(budget_status).value
    return payload

@router.get("")
async def get_budget(evaluator: BudgetEvaluator = Depends(get_evaluator)):
    return await _status_payload(evaluator)

@router.post("")
async def set_budget(
    request: Request,
    budget_store: BudgetStore = Depends(get_budget_store),
    evaluator: BudgetEvaluator = Depends(get_evaluator)
):
    """Partial update of {dailyLimit?, monthlyLimit?}; null clears a limit"""
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error_body("Invalid JSON", str(e)))

    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_body("Invalid budget configuration", "Expected a JSON object")
        )

    try:
        update = BudgetUpdate.model_validate(payload)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_body("Invalid budget configuration", details)
        )

    updates = {field: getattr(update, field) for field in update.model_fields_set}
    await budget_store.set_limits(updates)
    return await _status_payload(evaluator)

@router.get("/check")
async def check_budget(
    model: Optional[str] = Query(None),
    estimated_tokens: int = Query(0, alias="estimatedTokens", ge=0),
    input_tokens: int = Query(0, alias="inputTokens", ge=0),
    output_tokens: int = Query(0, alias="outputTokens", ge=0),
    evaluator: BudgetEvaluator = Depends(get_evaluator)
):
    """Would a request of this size fit the budget? Mutates nothing."""
    if not model:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="model parameter required")

    if estimated_tokens and not input_tokens and not output_tokens:
        # 50/50 split when only a total is given
        input_tokens = estimated_tokens // 2
        output_tokens = estimated_tokens - input_tokens

    return await evaluator.check_request(model, input_tokens, output_tokens)
