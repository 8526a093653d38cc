"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel, Field


class NarrativeBody(BaseModel):
    text: str


class RecordBody(BaseModel):
    selected_option_id: str
    narrative: str = ""
    impact_description: str = ""
    tags: list[str] = Field(default_factory=list)


class CheckConnectionBody(BaseModel):
    endpoint: str
    api_key: str = ""
