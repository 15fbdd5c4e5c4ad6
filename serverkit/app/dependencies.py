"""Shared FastAPI dependencies exposing the bootstrap state to handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from serverkit.domain.models import ServerRuntimeState, ServerSettings

__all__ = [
    "get_settings",
    "get_server_state",
    "SettingsDep",
    "ServerStateDep",
]


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_server_state(request: Request) -> ServerRuntimeState:
    return request.app.state.server_state


# Annotated dependency types; applications using a settings subclass can
# narrow the type with their own alias over ``get_settings``.
SettingsDep = Annotated[ServerSettings, Depends(get_settings)]
ServerStateDep = Annotated[ServerRuntimeState, Depends(get_server_state)]
