"""Run a server with only the built-in health route."""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path

import click

from serverkit.app.api import router as health_router
from serverkit.errors import ServerKitError
from serverkit.infrastructure.config import load_config
from serverkit.services import get_root_router, load_state, start

from .options import config_dir_option, search_dirs_for


async def _serve(app_name: str, search_dirs: list[Path] | None) -> None:
    settings = await load_config(app_name, search_dirs=search_dirs)
    state = load_state(settings)
    builder = get_root_router(state, settings).include_router(health_router)
    server = await start(
        state,
        settings,
        builder,
        signals=(signal.SIGINT, signal.SIGTERM),
    )
    await server.wait()


@click.command()
@click.argument("app_name")
@config_dir_option
def serve(app_name: str, config_dir: Path | None) -> None:
    """Load APP_NAME's configuration and serve until interrupted."""
    try:
        asyncio.run(_serve(app_name, search_dirs_for(config_dir)))
    except ServerKitError as exc:
        raise click.ClickException(exc.message) from exc
