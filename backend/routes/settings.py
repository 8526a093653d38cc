"""Health check, settings, and connection check endpoints."""

import httpx
import pydantic
from fastapi import APIRouter, HTTPException, Request

from backend import storage

from .models import CheckConnectionBody

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/check-connection")
async def check_connection(body: CheckConnectionBody):
    """Quick reachability check against an OpenAI-compatible endpoint."""
    url = f"{body.endpoint.rstrip('/')}/models"
    headers: dict[str, str] = {}
    if body.api_key:
        headers["Authorization"] = f"Bearer {body.api_key}"
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(url, headers=headers)
            resp.raise_for_status()
        return {"ok": True}
    except httpx.HTTPError:
        return {"ok": False}


@router.get("/settings")
async def get_settings():
    """Get global app settings (decision tuning, AI connection)."""
    return storage.get_config()


@router.patch("/settings")
async def update_settings(body: dict, request: Request):
    """Update global app settings (partial merge). Live sessions pick up the change."""
    try:
        config = storage.update_config(body)
    except pydantic.ValidationError as e:
        raise HTTPException(422, e.errors(include_url=False, include_context=False))
    registry = request.app.state.sessions
    registry.apply_config(storage.decision_config())
    if "ai" in body:
        registry.reset_client()
    return config
