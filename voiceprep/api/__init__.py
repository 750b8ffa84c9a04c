"""
API layer for VoicePrep

Contains FastAPI routers for:
- Interview generation and stored feedback
- On-demand answer scoring and follow-up decisions
- WebSocket bridge for the spoken interview
"""

from voiceprep.api.router import api_router

__all__ = ["api_router"]
