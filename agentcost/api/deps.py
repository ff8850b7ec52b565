from fastapi import HTTPException, Request, status

from ..services.budget import BudgetEvaluator, BudgetStore
from ..services.proxy import ProxyEngine
from ..services.usage_store import UsageStore

def get_usage_store(request: Request) -> UsageStore:
    return request.app.state.usage_store

def get_budget_store(request: Request) -> BudgetStore:
    return request.app.state.budget_store

def get_evaluator(request: Request) -> BudgetEvaluator:
    return request.app.state.evaluator

def get_proxy_engine(request: Request) -> ProxyEngine:
    engine = request.app.state.proxy_engine
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Proxy not ready")
    return engine
