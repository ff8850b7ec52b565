"""
Usage Store - file-backed aggregate of token counts and costs
Only counts, model names, costs and timestamps are ever written here
"""
import asyncio
import math
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..models.usage import UsageAggregate, UsageBucket
from ..utils.logger import get_logger
from ..utils.storage import read_json, write_json_atomic
from ..utils.timezone import Clock
from .pricing import calculate_cost

logger = get_logger(__name__)

class UsageStore:
    """
    Owns usage-data.json. Every mutation is a read-modify-write under one
    asyncio.Lock followed by a single durable write.
    """

    def __init__(self, path: Path, clock: Optional[Clock] = None):
        self.path = Path(path)
        self.clock = clock or Clock()
        self._lock = asyncio.Lock()

    async def record_usage(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int
    ) -> float:
        """
        Add one completed request to the aggregate

        Args:
            provider: Upstream provider id (anthropic, openai)
            model: Model name reported in the response
            input_tokens: Input/prompt tokens
            output_tokens: Output/completion tokens

        Returns:
            The cost recorded for this request

        Raises:
            StorageError: If the aggregate cannot be persisted
        """
        cost = calculate_cost(model, input_tokens, output_tokens)

        async with self._lock:
            aggregate = await asyncio.to_thread(self._read)
            today = self.clock.today()

            aggregate.totalInputTokens += input_tokens
            aggregate.totalOutputTokens += output_tokens
            aggregate.totalCost += cost
            aggregate.requests += 1
            aggregate.byModel.setdefault(model, UsageBucket())
            aggregate.byModel[model].add(input_tokens, output_tokens, cost)
            aggregate.byDay.setdefault(today, UsageBucket())
            aggregate.byDay[today].add(input_tokens, output_tokens, cost)
            aggregate.lastUpdated = self.clock.timestamp()

            await asyncio.to_thread(self._write, aggregate)
            self._verify_totals(aggregate)

        logger.info(f"📊 {provider}/{model}: {input_tokens} in, {output_tokens} out, ${cost:.4f}")
        return cost

    async def load_aggregate(self) -> UsageAggregate:
        """Persisted aggregate, or a zeroed one if the file is missing or unusable"""
        return await asyncio.to_thread(self._read)

    async def reset(self) -> UsageAggregate:
        """Overwrite the aggregate with the zero state"""
        async with self._lock:
            aggregate = UsageAggregate(lastUpdated=self.clock.timestamp())
            await asyncio.to_thread(self._write, aggregate)
        logger.info("Usage stats reset")
        return aggregate

    def _read(self) -> UsageAggregate:
        if not self.path.exists():
            return UsageAggregate()
        try:
            return UsageAggregate.model_validate(read_json(self.path))
        except (OSError, ValueError, ValidationError) as e:
            # Fail open; the next write replaces the unusable file
            logger.warning(f"Unreadable usage file {self.path.name}, starting from zero: {type(e).__name__}")
            return UsageAggregate()

    def _write(self, aggregate: UsageAggregate) -> None:
        write_json_atomic(self.path, aggregate.model_dump())

    @staticmethod
    def _verify_totals(aggregate: UsageAggregate) -> None:
        by_day = math.fsum(bucket.cost for bucket in aggregate.byDay.values())
        by_model = math.fsum(bucket.cost for bucket in aggregate.byModel.values())
        for label, total in (("byDay", by_day), ("byModel", by_model)):
            if not math.isclose(aggregate.totalCost, total, rel_tol=1e-9, abs_tol=1e-9):
                logger.error(
                    f"Usage aggregate out of balance: totalCost={aggregate.totalCost!r} {label}={total!r}"
                )
