"""Runtime configuration for the execution ticker and knowledge store."""

from enum import Enum

from pydantic import BaseModel, Field


class TickerConfig(BaseModel):
    """Configuration for the Execution Ticker."""

    tick_interval_seconds: float = Field(gt=0, default=0.1)
    max_concurrency: int = Field(ge=1, default=4)
    execution_timeout_seconds: float = Field(gt=0, default=30.0)
    efficiency_increment: float = Field(ge=0, default=0.01)
    efficiency_decrement: float = Field(ge=0, default=0.05)
    result_confidence: float = Field(ge=0, le=1, default=0.9)


class ConflictPolicy(str, Enum):
    LAST_WRITE_WINS = "last_write_wins"
    HIGHEST_CONFIDENCE = "highest_confidence"


class KnowledgeConfig(BaseModel):
    """Configuration for the Knowledge Store."""

    access_log_limit: int = Field(ge=1, default=1000)
    query_limit: int = Field(ge=1, default=10)
    conflict_policy: ConflictPolicy = ConflictPolicy.LAST_WRITE_WINS
