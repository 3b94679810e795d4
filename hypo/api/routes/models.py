"""
Model Routes - backend listing and model management.

- GET /models               : registered backends and their default models
- POST /models/local        : local runtime lifecycle (list, check, pull, delete, benchmark)
- GET /models/sonar         : Sonar variants and the current one
- POST /models/sonar/switch : change the current Sonar variant
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from hypo.api.dependencies import get_gateway
from hypo.core.exceptions import InvalidArgument, ValidationError
from hypo.core.logging_config import get_logger
from hypo.llm.backends import OllamaBackend, SonarBackend
from hypo.llm.errors import BackendError
from hypo.llm.gateway import ProviderGateway
from hypo.models.chat import LocalModelRequest, SonarSwitchRequest

logger = get_logger(__name__)

router = APIRouter(
    prefix="/models",
    tags=["Models"],
)


def _local_backend(gateway: ProviderGateway) -> OllamaBackend:
    backend = gateway.find("ollama")
    if not isinstance(backend, OllamaBackend):
        raise InvalidArgument("The local runtime backend is not registered")
    return backend


def _sonar_backend(gateway: ProviderGateway) -> SonarBackend:
    backend = gateway.find("sonar")
    if not isinstance(backend, SonarBackend):
        raise InvalidArgument("The Sonar backend is not registered")
    return backend


@router.get("", summary="List backends")
async def list_backends(gateway: ProviderGateway = Depends(get_gateway)) -> Dict[str, Any]:
    try:
        auto = gateway.resolve("auto")
        default = {"service": auto.service, "model": auto.model}
    except BackendError:
        default = None
    return {
        "default": default,
        "autoOrder": gateway.priority,
        "backends": [backend.describe() for backend in gateway.backends.values()],
    }


@router.post("/local", summary="Manage local runtime models")
async def manage_local_models(
    request: LocalModelRequest,
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    """
    Run one lifecycle action against the local runtime.

    ``pull`` and ``delete`` require ``modelName``; ``check`` and
    ``benchmark`` fall back to the configured default model.
    """
    backend = _local_backend(gateway)
    action = request.action
    model_name = request.model_name
    logger.info(f"Local model action: {action} model={model_name or backend.default_model}")

    if action in ("pull", "delete") and not model_name:
        raise ValidationError(f"modelName is required for '{action}'", field="modelName")

    if action == "list":
        return {"action": action, "models": await backend.list_models()}
    if action == "check":
        setup = await backend.validate_setup()
        if model_name:
            setup["requested_model"] = model_name
            setup["requested_model_available"] = (
                await backend.is_model_available(model_name) if setup["connected"] else False
            )
        return {"action": action, **setup}
    if action == "pull":
        return {"action": action, **await backend.pull_model(model_name)}
    if action == "delete":
        return {"action": action, "model": model_name, "deleted": await backend.delete_model(model_name)}
    return {"action": action, **await backend.benchmark(model_name)}


@router.get("/sonar", summary="List Sonar variants")
async def list_sonar_models(gateway: ProviderGateway = Depends(get_gateway)) -> Dict[str, Any]:
    backend = _sonar_backend(gateway)
    return {
        "current": backend.get_current_model(),
        "models": backend.available_models(),
        "configured": backend.is_configured,
    }


@router.post("/sonar/switch", summary="Switch the current Sonar variant")
async def switch_sonar_model(
    request: SonarSwitchRequest,
    gateway: ProviderGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    backend = _sonar_backend(gateway)
    if not backend.switch_model(request.model):
        raise ValidationError(f"Unknown Sonar model: {request.model}", field="model")
    return {"success": True, "current": backend.get_current_model()}
