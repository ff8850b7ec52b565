from pydantic import BaseModel, Field
from typing import Dict, Optional

class UsageBucket(BaseModel):
    """Per-model or per-day usage counters"""
    inputTokens: int = Field(0, ge=0)
    outputTokens: int = Field(0, ge=0)
    cost: float = Field(0.0, ge=0)
    requests: int = Field(0, ge=0)

    def add(self, input_tokens: int, output_tokens: int, cost: float) -> None:
        self.inputTokens += input_tokens
        self.outputTokens += output_tokens
        self.cost += cost
        self.requests += 1

class UsageAggregate(BaseModel):
    """Cumulative usage since the last reset, persisted as usage-data.json"""
    totalInputTokens: int = Field(0, ge=0)
    totalOutputTokens: int = Field(0, ge=0)
    totalCost: float = Field(0.0, ge=0)
    byModel: Dict[str, UsageBucket] = Field(default_factory=dict)
    byDay: Dict[str, UsageBucket] = Field(default_factory=dict)
    requests: int = Field(0, ge=0)
    lastUpdated: Optional[str] = None
