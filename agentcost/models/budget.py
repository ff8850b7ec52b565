from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional

class WarningLevel(str, Enum):
    NONE = "none"
    HIGH = "high"
    EXCEEDED = "exceeded"
    BLOCKED = "blocked"

class BudgetConfig(BaseModel):
    """Spend limits, persisted as budget-config.json"""
    dailyLimit: Optional[float] = None
    monthlyLimit: Optional[float] = None
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

    @field_validator("dailyLimit", "monthlyLimit", mode="before")
    @classmethod
    def _non_positive_is_unset(cls, value):
        # Hand-edited files: 0 or a negative limit means "no limit"
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value <= 0:
            return None
        return value

class BudgetUpdate(BaseModel):
    """Budget update request; omitted fields are left unchanged, null clears"""
    model_config = ConfigDict(extra="ignore")

    dailyLimit: Optional[float] = Field(None, gt=0, allow_inf_nan=False)
    monthlyLimit: Optional[float] = Field(None, gt=0, allow_inf_nan=False)

class LimitsView(BaseModel):
    dailyLimit: Optional[float] = None
    monthlyLimit: Optional[float] = None

class PeriodStatus(BaseModel):
    spent: float
    limit: Optional[float] = None
    remaining: Optional[float] = None
    percentUsed: Optional[float] = None

class BudgetStatus(BaseModel):
    config: LimitsView
    daily: PeriodStatus
    monthly: PeriodStatus

class MonthlySpend(BaseModel):
    spent: float
    limit: float

class BudgetBlock(BaseModel):
    """Returned with 402 when the monthly hard cap is reached"""
    error: str = "monthly_budget_exceeded"
    message: str
    monthly: MonthlySpend
    blocked: bool = True
    retryAfter: str
