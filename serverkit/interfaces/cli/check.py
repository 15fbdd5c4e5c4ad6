"""Validate a server configuration without starting anything."""

from __future__ import annotations

from pathlib import Path

import click

from serverkit.domain.capabilities import Capabilities
from serverkit.domain.variants import resolve_variant
from serverkit.errors import ServerKitError
from serverkit.infrastructure.config import load_settings
from serverkit.infrastructure.observability import parse_level, parse_rotation

from .options import config_dir_option, search_dirs_for


@click.command()
@click.argument("app_name")
@config_dir_option
def check(app_name: str, config_dir: Path | None) -> None:
    """Validate APP_NAME's configuration and print its deployment variant.

    The port file is not watched and no socket is bound.
    """
    capabilities = Capabilities.detect()
    try:
        settings = load_settings(
            app_name,
            search_dirs=search_dirs_for(config_dir),
            capabilities=capabilities,
        )
        resolvable = settings
        if settings.server_port_achiever is not None:
            # The port is only known once the watched file is written.
            resolvable = settings.model_copy(update={"server_port": 0})
        variant = resolve_variant(resolvable, capabilities)
        for level in (settings.log_level, settings.log_file_level):
            if level is not None:
                parse_level(level)
        parse_rotation(settings.log_rolling)
    except ServerKitError as exc:
        raise click.ClickException(exc.message) from exc

    click.echo(f"{app_name}: {variant}")
    if settings.server_port_achiever is not None:
        click.echo(f"  port: read from {settings.server_port_achiever}")
    else:
        click.echo(f"  port: {settings.server_port}")
