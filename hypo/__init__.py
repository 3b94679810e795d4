"""
Hypo chat orchestration core.

This package contains the conversational AI core, organized by responsibility:
- api/       : FastAPI app factory, routes and dependency wiring
- core/      : Configuration, logging, rate limiting and cross-cutting utilities
- memory/    : In-memory conversation store
- cache/     : Response cache
- context/   : Prompt building, language detection, topic/entity extraction
- llm/       : Backend adapters, error taxonomy and the provider gateway
- services/  : Stream orchestration
- models/    : Pydantic request/response schemas and stream events
"""

__version__ = "0.1.0"
