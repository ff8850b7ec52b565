from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from pathlib import Path
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AGENTCOST_",
        case_sensitive=True,
        extra="ignore"
    )

    # Core Application Settings
    APP_NAME: str = "AgentCost Local Agent"
    SERVICE_NAME: str = "agentcost-local-agent"
    VERSION: str = "1.0.0"
    HOST: str = "127.0.0.1"
    PORT: int = 8787

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    # Local State
    DATA_DIR: str = "~/.agentcost"
    USAGE_FILE: str = "usage-data.json"
    BUDGET_FILE: str = "budget-config.json"

    # Day/month bucketing; unset means the host's local timezone
    TIMEZONE: Optional[str] = None

    # Upstream Calls (seconds)
    UPSTREAM_TIMEOUT: float = 600.0
    UPSTREAM_CONNECT_TIMEOUT: float = 10.0

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR).expanduser()

    @property
    def usage_path(self) -> Path:
        return self.data_path / self.USAGE_FILE

    @property
    def budget_path(self) -> Path:
        return self.data_path / self.BUDGET_FILE

@lru_cache()
def get_settings() -> Settings:
    return Settings()
