"""
LLM Package - everything that talks to a model.

- prompts/   : system prompt texts
- errors.py  : ErrorKind taxonomy and BackendError
- backends/  : one adapter per chat service
- gateway.py : model hint resolution and health over all backends
"""
from hypo.llm.errors import BackendError, ErrorKind

__all__ = ["BackendError", "ErrorKind"]
