"""
Transcript API Routes for the Sales Room service.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/transcripts")
async def list_transcripts(
    tag: Optional[str] = Query(None, description="Only transcripts carrying this tag id"),
    email: Optional[str] = Query(None, description="Only transcripts for this prospect email"),
    limit: int = Query(50, ge=1, le=500),
):
    """Stored transcripts, newest activity first."""
    store = get_services().transcripts

    if email:
        transcripts = store.get_by_prospect(email)
    else:
        transcripts = sorted(store.get_stored_transcripts(), key=lambda t: t.last_activity, reverse=True)

    if tag:
        transcripts = [t for t in transcripts if t.has_tag(tag)]

    return {
        "transcripts": [t.to_dict() for t in transcripts[:limit]],
        "total": len(transcripts),
    }


@router.get("/transcripts/search")
async def search_transcripts(q: str = Query(..., min_length=1)):
    """Case-insensitive search over message text, prospect details and tags."""
    results = get_services().transcripts.search(q)
    return {
        "query": q,
        "transcripts": [t.to_dict() for t in results],
        "total": len(results),
    }


@router.get("/transcripts/{session_id}")
async def get_transcript(session_id: str):
    store = get_services().transcripts
    stored = store.get_by_session(session_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Transcript not found")

    summary = store.get_summary(session_id)
    return {
        "transcript": stored.to_dict(),
        "summary": summary.to_dict() if summary else None,
    }


@router.post("/transcripts/{session_id}/summary")
async def generate_summary(session_id: str):
    """Build and persist a summary of the session's conversation."""
    summary = get_services().orchestrator.summarize(session_id)
    return {"summary": summary.to_dict()}
