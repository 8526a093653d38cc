"""Decision pipeline endpoints, nested under /api/sessions/{slug}/.

Sessions are created on first use; an unknown slug is an empty session.
"""

from fastapi import APIRouter, HTTPException, Request

from boot_hill.combat import start_combat
from boot_hill.errors import AIRequestError, RateLimitError, RecordError
from boot_hill.pipeline.detector import DecisionContext

from backend import storage
from backend.sessions import Session

from .models import NarrativeBody, RecordBody

router = APIRouter()


def _session(request: Request, slug: str) -> Session:
    return request.app.state.sessions.get(storage.slugify(slug))


@router.post("/sessions/{slug}/detect")
async def detect(slug: str, context: DecisionContext, request: Request):
    """Score the context and report whether a decision should be generated. No side effects."""
    session = _session(request, slug)
    detection = session.service.detect_decision_point(context)
    return {
        "should_generate": detection.should_generate,
        "score": detection.score,
        "reason": detection.reason,
        "state": session.service.detector.state(context).value,
    }


@router.post("/sessions/{slug}/decisions")
async def generate_decision(slug: str, context: DecisionContext, request: Request):
    """Generate a decision point for the player if the detector allows it."""
    session = _session(request, slug)
    if context.location and context.location != session.location:
        session.location = context.location
        session.save()
    result = await session.service.generate_decision(context)

    if result.status == "busy":
        raise HTTPException(409, "Decision generation already in progress")
    if result.status == "skipped":
        return {"status": "skipped", "reason": result.detection.reason, "score": result.detection.score}
    if result.status == "failed":
        error = result.error
        if isinstance(error, RateLimitError):
            raise HTTPException(
                429,
                {"error": "rate_limited", "retry_at": error.retry_at.isoformat()},
                headers={"Retry-After": error.retry_at.strftime("%a, %d %b %Y %H:%M:%S GMT")},
            )
        detail = {"error": type(error).__name__, "message": str(error)}
        if isinstance(error, AIRequestError):
            detail["retryable"] = error.retryable
        raise HTTPException(502, detail)

    decision = result.decision
    return {
        "status": "generated",
        "decision": session.service.to_player_decision(decision, session.location).model_dump(mode="json"),
        "relevance_score": decision.relevance_score,
        "warnings": list(decision.warnings),
        "update": result.update.model_dump(mode="json"),
    }


@router.post("/sessions/{slug}/decisions/abort")
async def abort_decision(slug: str, request: Request):
    """Cancel the in-flight generation for this session, if any."""
    return {"aborted": _session(request, slug).service.abort()}


@router.post("/sessions/{slug}/decisions/{decision_id}/record")
async def record_decision(slug: str, decision_id: str, body: RecordBody, request: Request):
    """Record the player's choice on a pending decision."""
    session = _session(request, slug)
    history = session.service.history
    known = decision_id in history.known_ids()
    pending = history.is_pending(decision_id)
    try:
        entry = session.service.record_decision(
            decision_id,
            body.selected_option_id,
            narrative=body.narrative,
            impact_description=body.impact_description,
            tags=body.tags,
            location=session.location,
        )
    except RecordError as e:
        if not known:
            raise HTTPException(404, str(e))
        raise HTTPException(422 if pending else 409, str(e))
    session.save()
    return entry.model_dump(mode="json")


@router.get("/sessions/{slug}/history")
async def get_history(slug: str, request: Request):
    """Recorded decisions, oldest first."""
    history = _session(request, slug).service.get_decision_history()
    return [entry.model_dump(mode="json") for entry in history]


@router.post("/sessions/{slug}/narrative")
async def process_narrative(slug: str, body: NarrativeBody, request: Request):
    """Extract structured updates from narrative text and strip the metadata lines.

    A location change moves the session; a COMBAT: trigger opens combat.
    """
    session = _session(request, slug)
    update = session.service.extract_update(body.text)
    text = session.service.strip_metadata(body.text)
    changed = bool(update.location_change) and update.location_change != session.location
    if changed:
        session.location = update.location_change
    combat = start_combat(session.combat, update)
    if combat is not session.combat:
        session.combat = combat
        changed = True
    if changed:
        session.save()
    return {"text": text, "update": update.model_dump(mode="json"), "location": session.location}


@router.get("/sessions/{slug}/combat")
async def get_combat(slug: str, request: Request):
    """Current combat state plus any load-time migration warnings."""
    session = _session(request, slug)
    warnings = [r.message for r in session.service.log.warnings if r.field == "current_turn"]
    return {"combat": session.combat.model_dump(mode="json"), "warnings": warnings}
