"""
API Module for the Sales Room service.

FastAPI application with routes for:
- Chat interactions
- Transcripts and analytics
- Sales handoff
- Debug operations (opt-in)
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
