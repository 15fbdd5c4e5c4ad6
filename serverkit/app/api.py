"""Built-in routes mounted by the ``serverkit serve`` command."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from serverkit import __version__

from .dependencies import ServerStateDep, SettingsDep

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    name: str
    version: str
    variant: str
    status: str = "ok"


@router.get("/health", response_model=HealthResponse)
async def health(settings: SettingsDep, state: ServerStateDep) -> HealthResponse:
    """Liveness probe reporting which deployment variant is running."""
    return HealthResponse(
        name=settings.app_name,
        version=__version__,
        variant=str(state.variant),
    )


__all__ = ["HealthResponse", "health", "router"]
