"""
Shared fixtures: temp state directory, fixed clock, mocked upstream providers
"""
import httpx
import pytest
import pytest_asyncio

from agentcost.config import Settings
from agentcost.main import create_app
from agentcost.services.budget import BudgetEvaluator, BudgetStore
from agentcost.services.proxy import build_upstream_client
from agentcost.services.usage_store import UsageStore
from agentcost.utils.timezone import Clock
from tests.helpers import TEST_TIMEZONE, UpstreamRecorder, fixed_clock

@pytest.fixture
def clock() -> Clock:
    return fixed_clock()

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATA_DIR=str(tmp_path),
        TIMEZONE=TEST_TIMEZONE,
    )

@pytest.fixture
def usage_store(tmp_path, clock) -> UsageStore:
    return UsageStore(tmp_path / "usage-data.json", clock)

@pytest.fixture
def budget_store(tmp_path, clock) -> BudgetStore:
    return BudgetStore(tmp_path / "budget-config.json", clock)

@pytest.fixture
def evaluator(usage_store, budget_store, clock) -> BudgetEvaluator:
    return BudgetEvaluator(usage_store, budget_store, clock)

@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()

@pytest_asyncio.fixture
async def app(settings, clock, upstream):
    upstream_client = build_upstream_client(transport=httpx.MockTransport(upstream))
    application = create_app(settings, clock=clock, upstream_client=upstream_client)
    yield application
    await upstream_client.aclose()

@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://localhost:8787") as http_client:
        yield http_client
