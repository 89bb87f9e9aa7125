from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    # Wire format is camelCase; Python side stays snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(ApiModel):
    status: str = "healthy"
    instance: str
    timestamp: str


class VisitCounts(ApiModel):
    total_visits: int = Field(..., ge=0)
    instance_visits: int = Field(..., ge=0)


class VisitResponse(ApiModel):
    message: str
    instance_id: str
    session_id: str
    request_number: int = Field(..., ge=1)
    timestamp: str
    hostname: str | None = None
    user_agent: str | None = None
    stats: VisitCounts | None = None
    redis_error: str | None = None


class GlobalCounts(ApiModel):
    total_visits: int = Field(..., ge=0)
    instance_visits: dict[str, int] = Field(default_factory=dict, description="instance id -> visits")


class StatsResponse(ApiModel):
    instance_id: str
    session_id: str
    local_requests: int = Field(..., ge=0)
    timestamp: str
    global_: GlobalCounts | None = Field(None, alias="global")
    redis_error: str | None = None


class LoadTestResponse(ApiModel):
    instance_id: str
    processing_time: float = Field(..., ge=0, description="Milliseconds of wall time")
    result: float
    timestamp: str


class ResetResponse(ApiModel):
    message: str
    instance_id: str
    redis_error: str | None = None


class ErrorResponse(ApiModel):
    error: str
    instance_id: str
    requested_path: str | None = None
