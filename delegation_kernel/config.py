"""Settings loaded from the environment (prefix DELEGATION_) and logging setup."""

import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from delegation_kernel.models.runtime import (
    ConflictPolicy,
    KnowledgeConfig,
    TickerConfig,
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DELEGATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote backend; leave unset to run local-only
    remote_url: Optional[str] = None
    remote_api_key: str = ""
    remote_timeout_seconds: float = Field(gt=0, default=5.0)

    # Local fallback store; ":memory:" is not durable
    local_db_path: str = ":memory:"

    tick_interval_seconds: float = Field(gt=0, default=0.1)
    max_concurrency: int = Field(ge=1, default=4)
    execution_timeout_seconds: float = Field(gt=0, default=30.0)
    efficiency_increment: float = Field(ge=0, default=0.01)
    efficiency_decrement: float = Field(ge=0, default=0.05)
    result_confidence: float = Field(ge=0, le=1, default=0.9)

    access_log_limit: int = Field(ge=1, default=1000)
    query_limit: int = Field(ge=1, default=10)
    conflict_policy: ConflictPolicy = ConflictPolicy.LAST_WRITE_WINS

    seed_core_knowledge: bool = True
    deploy_default_fleet: bool = True
    autostart_ticker: bool = True

    log_level: str = "INFO"

    def ticker_config(self) -> TickerConfig:
        return TickerConfig(
            tick_interval_seconds=self.tick_interval_seconds,
            max_concurrency=self.max_concurrency,
            execution_timeout_seconds=self.execution_timeout_seconds,
            efficiency_increment=self.efficiency_increment,
            efficiency_decrement=self.efficiency_decrement,
            result_confidence=self.result_confidence,
        )

    def knowledge_config(self) -> KnowledgeConfig:
        return KnowledgeConfig(
            access_log_limit=self.access_log_limit,
            query_limit=self.query_limit,
            conflict_policy=self.conflict_policy,
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
