"""Pipeline and AI client configuration."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field


class DecisionConfig(BaseModel):
    """Tuning for decision detection and generation.

    Intervals and timeouts are in seconds.
    """

    min_decision_interval: float = Field(default=5.0, ge=0.0)
    relevance_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_options_per_decision: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=30.0, gt=0.0)
    max_tokens: int = Field(default=1000, ge=1)
    history_in_prompt: int = Field(default=5, ge=0)


class AIClientConfig(BaseModel):
    """Connection settings for an OpenAI-compatible chat endpoint."""

    endpoint: str = "https://api.openai.com/v1"
    api_key: str = ""
    model_name: str = "gpt-4o-mini"
    rate_limit: int = Field(default=60, ge=0)
    timeout: float = Field(default=30.0, gt=0.0)

    @classmethod
    def from_env(cls, **overrides: Any) -> AIClientConfig:
        """Build from AI_* environment variables. Call load_dotenv() first."""
        values: dict[str, Any] = {}
        env_map = {
            "AI_API_ENDPOINT": "endpoint",
            "AI_API_KEY": "api_key",
            "AI_MODEL_NAME": "model_name",
            "AI_RATE_LIMIT": "rate_limit",
            "AI_TIMEOUT": "timeout",
        }
        for var, field in env_map.items():
            raw = os.getenv(var)
            if raw:
                values[field] = raw
        values.update(overrides)
        return cls.model_validate(values)
