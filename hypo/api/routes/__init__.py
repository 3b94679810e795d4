"""
API Routes module - Endpoint definitions.

Each file in this module defines routes for a specific domain:
- chat.py   : Chat, streaming and conversation endpoints
- health.py : Health check endpoints
- models.py : Backend listing and model management
"""
from hypo.api.routes.chat import router as chat_router
from hypo.api.routes.health import router as health_router
from hypo.api.routes.models import router as models_router

__all__ = [
    "chat_router",
    "health_router",
    "models_router",
]
