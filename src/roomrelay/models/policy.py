"""Retry and rate-limit policy models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimit(BaseModel):
    """Rate limiting configuration for one kind of visitor action."""

    max_per_second: float | None = Field(default=None, gt=0.0)
    max_per_minute: float | None = Field(default=None, gt=0.0)
    max_per_hour: float | None = Field(default=None, gt=0.0)


class RetryPolicy(BaseModel):
    """Configures retry behaviour for Bot API calls."""

    max_retries: int = Field(default=3, ge=0)
    base_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_delay_seconds: float = Field(default=8.0, ge=0.0)
    exponential_base: float = Field(default=2.0, gt=0.0)
