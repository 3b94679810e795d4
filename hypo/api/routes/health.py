"""
Health Check Routes - System health and monitoring endpoints.

- GET /health       : probes every backend; 503 when none is connected
- GET /health/ready : configuration-only readiness, no network calls
"""
from fastapi import APIRouter, Depends, Response

from hypo import __version__
from hypo.api.dependencies import get_gateway
from hypo.core.logging_config import get_logger
from hypo.llm.gateway import ProviderGateway
from hypo.models.chat import HealthResponse, ServiceHealth

logger = get_logger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check endpoint",
    responses={503: {"model": HealthResponse, "description": "No backend is reachable"}},
)
async def health_check(response: Response, gateway: ProviderGateway = Depends(get_gateway)) -> HealthResponse:
    """
    Report the connection state of every backend.

    Returns 200 while at least one backend is connected, 503 otherwise.
    """
    services = await gateway.health()
    connected = [s for s in services if s["connection"] == "connected"]
    logger.debug(f"Health check: {len(connected)}/{len(services)} backends connected")

    if not connected:
        response.status_code = 503

    return HealthResponse(
        status="healthy" if connected else "unhealthy",
        version=__version__,
        services=[ServiceHealth(**s) for s in services],
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness check endpoint",
)
async def readiness_check(response: Response, gateway: ProviderGateway = Depends(get_gateway)) -> HealthResponse:
    """Ready when at least one backend is configured."""
    configured = [b for b in gateway.backends.values() if b.is_configured]
    if not configured:
        response.status_code = 503
    return HealthResponse(
        status="ready" if configured else "not_ready",
        version=__version__,
        services=[
            ServiceHealth(
                service=b.name,
                connection="configured" if b.is_configured else "not_configured",
                model=b.default_model,
            )
            for b in gateway.backends.values()
        ],
    )
