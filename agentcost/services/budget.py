"""
Budget Service - spend limits and admission control
Daily limits are soft (warnings only); the monthly limit is a hard gate
"""
import asyncio
import math
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from ..models.budget import (
    BudgetBlock,
    BudgetConfig,
    BudgetStatus,
    LimitsView,
    MonthlySpend,
    PeriodStatus,
    WarningLevel,
)
from ..utils.logger import get_logger
from ..utils.storage import read_json, write_json_atomic
from ..utils.timezone import Clock
from .pricing import calculate_cost
from .usage_store import UsageStore

logger = get_logger(__name__)

HIGH_USAGE_PERCENT = 80

# Same-provider cheaper tier, matched like the pricing table: first key
# contained in the model name wins, specific keys first.
DOWNGRADE_TABLE: Tuple[Tuple[str, str], ...] = (
    # Anthropic
    ("claude-opus-4", "claude-sonnet-4"),
    ("claude-sonnet-4", "claude-3-5-haiku"),
    ("claude-3-opus", "claude-3-5-sonnet"),
    ("claude-3-5-sonnet", "claude-3-5-haiku"),
    # OpenAI
    ("gpt-4o", "gpt-4o-mini"),
    ("gpt-4-turbo", "gpt-4o-mini"),
    ("o3", "o4-mini"),
)


class BudgetStore:
    """Owns budget-config.json"""

    def __init__(self, path: Path, clock: Optional[Clock] = None):
        self.path = Path(path)
        self.clock = clock or Clock()
        self._lock = asyncio.Lock()

    async def load_config(self) -> BudgetConfig:
        return await asyncio.to_thread(self._read)

    async def set_limits(self, updates: Dict[str, Optional[float]]) -> BudgetConfig:
        """
        Apply a partial update

        Args:
            updates: Any of dailyLimit / monthlyLimit; a None value clears the limit.
                Keys not present are left unchanged.

        Returns:
            The persisted configuration
        """
        async with self._lock:
            config = await asyncio.to_thread(self._read)
            for field in ("dailyLimit", "monthlyLimit"):
                if field in updates:
                    setattr(config, field, updates[field])

            now = self.clock.timestamp()
            if not config.createdAt:
                config.createdAt = now
            config.updatedAt = now

            await asyncio.to_thread(write_json_atomic, self.path, config.model_dump())

        logger.info(f"Budget limits updated: daily={config.dailyLimit} monthly={config.monthlyLimit}")
        return config

    def _read(self) -> BudgetConfig:
        if not self.path.exists():
            return BudgetConfig()
        try:
            return BudgetConfig.model_validate(read_json(self.path))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Unreadable budget file {self.path.name}, using no limits: {type(e).__name__}")
            return BudgetConfig()


def _period_status(spent: float, limit: Optional[float]) -> PeriodStatus:
    if limit is None:
        return PeriodStatus(spent=spent, limit=None)
    return PeriodStatus(
        spent=spent,
        limit=limit,
        remaining=max(0.0, limit - spent),
        percentUsed=spent / limit * 100,
    )


def warning_level(status: BudgetStatus) -> WarningLevel:
    """Highest applicable level; monthly blocking supersedes any daily signal"""
    monthly, daily = status.monthly, status.daily

    if monthly.limit is not None and monthly.percentUsed >= 100:
        return WarningLevel.BLOCKED
    if daily.limit is not None and daily.percentUsed >= 100:
        return WarningLevel.EXCEEDED
    if daily.limit is not None and daily.percentUsed >= HIGH_USAGE_PERCENT:
        return WarningLevel.HIGH
    return WarningLevel.NONE


def suggest_downgrade(model: str, level: WarningLevel) -> Optional[str]:
    if level == WarningLevel.NONE:
        return None
    for key, cheaper in DOWNGRADE_TABLE:
        if key in model:
            # gpt-4o-mini contains gpt-4o; never suggest the model in use
            return None if cheaper in model else cheaper
    return None


def _warning_message(level: WarningLevel, status: BudgetStatus) -> Optional[str]:
    if level == WarningLevel.BLOCKED:
        return "Monthly budget exceeded"
    if level == WarningLevel.EXCEEDED:
        return "Daily budget exceeded"
    if level == WarningLevel.HIGH:
        return f"Daily budget at {math.floor(status.daily.percentUsed + 0.5)}%"
    return None


class BudgetEvaluator:
    """Derives spend status from the usage aggregate and the budget config"""

    def __init__(self, usage_store: UsageStore, budget_store: BudgetStore, clock: Optional[Clock] = None):
        self.usage_store = usage_store
        self.budget_store = budget_store
        self.clock = clock or usage_store.clock

    async def get_status(self) -> BudgetStatus:
        config = await self.budget_store.load_config()
        aggregate = await self.usage_store.load_aggregate()

        today = self.clock.today()
        month_prefix = self.clock.month_prefix()

        day_bucket = aggregate.byDay.get(today)
        daily_spent = day_bucket.cost if day_bucket else 0.0
        monthly_spent = math.fsum(
            bucket.cost for date, bucket in aggregate.byDay.items()
            if date.startswith(month_prefix)
        )

        return BudgetStatus(
            config=LimitsView(dailyLimit=config.dailyLimit, monthlyLimit=config.monthlyLimit),
            daily=_period_status(daily_spent, config.dailyLimit),
            monthly=_period_status(monthly_spent, config.monthlyLimit),
        )

    async def check_monthly_budget(self) -> Optional[BudgetBlock]:
        """Hard gate run before every proxied request; None means allowed"""
        status = await self.get_status()
        monthly = status.monthly
        if monthly.limit is None or monthly.spent < monthly.limit:
            return None

        return BudgetBlock(
            message=(
                f"Monthly budget limit reached (${monthly.spent:.2f} spent "
                f"of ${monthly.limit:.2f} limit)"
            ),
            monthly=MonthlySpend(spent=monthly.spent, limit=monthly.limit),
            retryAfter=self.clock.first_of_next_month().isoformat(),
        )

    async def check_request(self, model: str, input_tokens: int, output_tokens: int) -> Dict[str, Any]:
        """Read-only pre-flight projection for a planned request"""
        estimated = calculate_cost(model, input_tokens, output_tokens)
        status = await self.get_status()
        level = warning_level(status)
        suggested = suggest_downgrade(model, level)

        blocked = level == WarningLevel.BLOCKED
        within_budget = not blocked and (
            status.daily.limit is None or status.daily.remaining >= estimated
        )

        result: Dict[str, Any] = {
            "allowed": not blocked and within_budget,
            "blocked": blocked,
            "withinBudget": within_budget,
            "warningLevel": level.value,
            "estimatedCost": estimated,
            "daily": status.daily.model_dump(),
            "monthly": status.monthly.model_dump(),
        }

        warning = _warning_message(level, status)
        if warning:
            result["warning"] = warning
        if suggested:
            result["suggestedModel"] = suggested
        return result
