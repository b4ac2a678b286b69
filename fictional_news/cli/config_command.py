"""Config command implementation."""
import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

import typer

from ..lib.config_loader import ConfigLoader
from ..lib.console import safe_echo
from ..models.config import DESCRIPTIONS
from .context import global_config

logger = logging.getLogger(__name__)

# Create config subapp
config = typer.Typer(help="Configuration management")


def mask_value(key: str, value: str) -> str:
    """Hide passwords, both in dedicated keys and inside URLs."""
    if any(word in key.lower() for word in ["password", "secret", "token"]):
        return "***"

    if "://" in value:
        parsed = urlparse(value)
        if parsed.password:
            return value.replace(f":{parsed.password}@", ":***@", 1)

    return value


@config.command()
def show(key: Optional[str] = typer.Argument(None, help="Specific configuration key")):
    """Show configuration."""
    try:
        config_data, sources = asyncio.run(_async_show_config())
    except Exception as e:
        safe_echo(f"[ERROR] Failed to show configuration: {e!s}")
        logger.error(f"Config show command failed: {e}")
        raise typer.Exit(1)

    if key:
        if key in config_data:
            safe_echo(f"{key} = {mask_value(key, config_data[key])}")
            return

        safe_echo(f"[WARNING] Configuration key '{key}' not found")
        safe_echo("Available keys:")
        for k in sorted(config_data.keys()):
            safe_echo(f"  - {k}")
        raise typer.Exit(1)

    safe_echo("\nCurrent Configuration:")
    safe_echo("=" * 50)

    # Group by key prefix
    sections: Dict[str, List[Tuple[str, str]]] = {}
    for k, v in config_data.items():
        section = k.split(".")[0] if "." in k else "general"
        sections.setdefault(section, []).append((k, v))

    for section, items in sorted(sections.items()):
        safe_echo(f"\n[{section.upper()}]")
        for k, v in sorted(items):
            description = DESCRIPTIONS.get(k)
            suffix = f"    # {description}" if description else ""
            safe_echo(f"  {k} = {mask_value(k, v)}{suffix}")

    safe_echo("=" * 50)
    safe_echo(f"Sources: {', '.join(sources)}")


@config.command()
def export(
    output: Path = typer.Argument(..., help="Output file"),
    format: str = typer.Option("env", "--format", "-f", help="Output format [env|json]"),
):
    """Write the effective configuration to a file."""
    if format.lower() not in ("env", "json"):
        safe_echo(f"[ERROR] Unsupported format: {format}")
        raise typer.Exit(1)

    try:
        exported = asyncio.run(_async_export_config(output, format))
    except Exception as e:
        safe_echo(f"[ERROR] Failed to export configuration: {e!s}")
        logger.error(f"Config export command failed: {e}")
        raise typer.Exit(1)

    if not exported:
        safe_echo(f"[ERROR] Could not write {output}")
        raise typer.Exit(1)
    safe_echo(f"[SUCCESS] Configuration written to {output}")


async def _async_show_config() -> Tuple[Dict[str, str], List[str]]:
    config_loader = ConfigLoader()
    config_data = await config_loader.load_config(
        config_file=global_config["config_file"], use_defaults=True, use_environment=True
    )
    return config_data, config_loader.get_config_sources()


async def _async_export_config(output: Path, format: str) -> bool:
    config_loader = ConfigLoader()
    await config_loader.load_config(
        config_file=global_config["config_file"], use_defaults=True, use_environment=True
    )
    return await config_loader.export_config_to_file(output, format=format)
