"""
Debug / admin API routes. Only mounted when ``DEBUG_API_ENABLED`` is set.
"""

import logging
from datetime import datetime

from fastapi import APIRouter

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()

system_start_time = datetime.utcnow()

# Never echoed back
SECRET_FIELDS = {"chat_api_key", "crm_api_key", "slack_webhook_url"}


@router.get("/config")
async def get_config():
    """Effective configuration with secrets masked."""
    services = get_services()
    settings = services.settings.model_dump()
    for name in SECRET_FIELDS:
        if settings.get(name):
            settings[name] = "***"

    return {
        "settings": settings,
        "schema": services.qualification.get_schema().id,
        "scorer": services.qualification.scorer.name,
        "thresholds": {
            "showTalkToSales": services.qualification.threshold,
            **services.settings.thresholds,
        },
        "uptime_seconds": (datetime.utcnow() - system_start_time).total_seconds(),
    }


@router.post("/sessions/{session_id}/reset")
async def reset_session(session_id: str):
    """Drop the live conversation and gate memory of one session. Rate-limit windows are untouched."""
    services = get_services()
    services.orchestrator.reset_session(session_id)
    logger.info(f"Debug reset of session {session_id}")
    return {"status": "reset", "session_id": session_id}


@router.get("/storage")
async def dump_storage():
    """Raw session storage keys and values."""
    store = get_services().session_store
    keys = store.keys()
    return {
        "available": store.is_available(),
        "keys": keys,
        "items": {key: store.get_item(key) for key in keys},
    }
