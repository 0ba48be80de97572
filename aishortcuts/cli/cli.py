"""Command-line interface for AI Shortcuts.

A thin collaborator over the engine: it edits settings and the stored
API key, lists the endpoint's models and shows the resolved defaults.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from aishortcuts import __version__
from aishortcuts.core.client import ClientResolver, build_client_resolver
from aishortcuts.core.config import load_runtime_config
from aishortcuts.core.credentials import mask_api_key
from aishortcuts.core.model_filters import CAPABILITY_PROFILES, Capability
from aishortcuts.core.options import ImageSizeOption, VoiceOption
from aishortcuts.core.providers import ClientFactory, create_openai_client
from aishortcuts.core.settings import SETTING_SPECS, SettingKey
from aishortcuts.utils.log import enable_file_logging, get_logger

console = Console()
logger = get_logger()

T = TypeVar("T")

# Replaced in tests to avoid network access.
_client_factory: ClientFactory = create_openai_client

_SETTING_NAMES = [key.value for key in SettingKey]
_CAPABILITY_NAMES = [capability.value for capability in Capability]


def _build_resolver() -> ClientResolver:
    config = load_runtime_config()
    get_logger().set_console_level(config.log_level)
    if config.file_logging:
        enable_file_logging(config.home_dir)
    return build_client_resolver(config, client_factory=_client_factory)


def _session_resolver() -> ClientResolver:
    """Resolver for a synchronous command, closed when the click context closes."""
    resolver = _build_resolver()
    click.get_current_context().call_on_close(lambda: asyncio.run(resolver.aclose()))
    return resolver


def _run(action: Callable[[ClientResolver], Awaitable[T]]) -> T:
    async def _main() -> T:
        resolver = _build_resolver()
        try:
            return await action(resolver)
        finally:
            await resolver.aclose()

    return asyncio.run(_main())


def _gate_rows(resolver: ClientResolver) -> Dict[str, Dict[str, Any]]:
    rows: Dict[str, Dict[str, Any]] = {}
    for capability in Capability:
        gate = resolver.feature_gate(capability)
        rows[capability.value] = {"supported": gate.supported, "reason": gate.reason}
    return rows


@click.group(name="aishortcuts", invoke_without_command=True)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Manage endpoint settings, the API key and model defaults."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ----------------------------------------------------------------------
# config
# ----------------------------------------------------------------------


@cli.group(name="config", invoke_without_command=True, help="Show and edit settings.")
@click.pass_context
def config_group(ctx: click.Context) -> None:
    if ctx.invoked_subcommand is None:
        ctx.invoke(config_show)


@config_group.command(name="show")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
def config_show(json_output: bool) -> None:
    """Show stored settings and the effective endpoint."""
    resolver = _session_resolver()
    settings = resolver.settings
    endpoint = resolver.effective_config()
    payload = {
        "settings": settings.as_dict(),
        "endpoint": endpoint.description,
        "official": endpoint.is_official,
        "sync_available": settings.sync_available,
        "features": _gate_rows(resolver),
    }
    if json_output:
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    console.print("\n[bold]Settings[/bold]\n")
    for key in SettingKey:
        spec = SETTING_SPECS[key]
        value = settings.get(key)
        marker = "" if settings.is_set(key) else " [dim](default)[/dim]"
        console.print(f"  {key.value}: {escape(str(value)) or '-'}{marker}")
        console.print(f"    [dim]{escape(spec.description)}[/dim]")
    kind = "official" if endpoint.is_official else "custom"
    console.print(f"\nEndpoint: {escape(endpoint.description)} ({kind})")
    console.print(f"Sync: {'available' if settings.sync_available else 'unavailable'}")
    for name, row in payload["features"].items():
        if not row["supported"]:
            console.print(f"[yellow]{name}: not available on this endpoint[/yellow]")
    console.print()


@config_group.command(name="set")
@click.argument("key", type=click.Choice(_SETTING_NAMES))
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Set a setting. Empty values and non-positive ports unset the key."""
    setting = SettingKey(key)
    spec = SETTING_SPECS[setting]
    if spec.kind is int:
        try:
            parsed: Any = int(value)
        except ValueError as exc:
            raise click.ClickException(f"'{key}' expects an integer, got '{value}'.") from exc
    else:
        parsed = value
    if setting == SettingKey.DEFAULT_VOICE and value and VoiceOption.parse(value) is None:
        console.print(
            f"[yellow]'{escape(value)}' is not a built-in voice; "
            "it will only work with providers that offer it.[/yellow]"
        )

    resolver = _session_resolver()
    resolver.settings.set(setting, parsed)
    stored = resolver.settings.get(setting)
    if resolver.settings.is_set(setting):
        console.print(f"[green]Set {key} = {escape(str(stored))}[/green]")
    else:
        console.print(f"[green]Unset {key} (now {escape(str(stored)) or '-'})[/green]")


@config_group.command(name="unset")
@click.argument("key", type=click.Choice(_SETTING_NAMES))
def config_unset(key: str) -> None:
    """Remove a setting from both stores."""
    resolver = _session_resolver()
    resolver.settings.unset(SettingKey(key))
    console.print(f"[green]Unset {key}[/green]")


@config_group.command(name="sync")
def config_sync() -> None:
    """Reconcile settings with the sync directory."""
    resolver = _session_resolver()
    if not resolver.settings.synchronize():
        console.print("[yellow]Sync unavailable; settings are stored locally only.[/yellow]")
        return
    console.print("[green]Settings synchronized.[/green]")


# ----------------------------------------------------------------------
# auth
# ----------------------------------------------------------------------


@cli.group(name="auth", help="Manage the stored API key.")
def auth_group() -> None:
    pass


@auth_group.command(name="set-key")
@click.option("--key", "api_key", help="API key (prompted when omitted).")
def auth_set_key(api_key: Optional[str]) -> None:
    """Store the API key, preferring the synced tier."""
    if api_key is None:
        api_key = click.prompt("API key", hide_input=True)
    if not api_key or not api_key.strip():
        raise click.ClickException("API key must not be empty. Use `auth clear-key` to remove it.")
    resolver = _session_resolver()
    resolver.set_api_key(api_key.strip())
    if resolver.credentials.get() is None:
        raise click.ClickException("Failed to store the API key.")
    where = "synced" if resolver.credentials.sync_available else "local"
    console.print(f"[green]API key saved ({where} storage).[/green]")


@auth_group.command(name="clear-key")
def auth_clear_key() -> None:
    """Delete the API key from both tiers."""
    resolver = _session_resolver()
    resolver.set_api_key(None)
    console.print("[green]API key removed.[/green]")


@auth_group.command(name="status")
def auth_status() -> None:
    """Show whether an API key is stored."""
    resolver = _session_resolver()
    api_key = resolver.credentials.get()
    if not api_key:
        console.print("API key: [red]not set[/red]")
        return
    console.print(f"API key: {escape(mask_api_key(api_key))}")


# ----------------------------------------------------------------------
# models
# ----------------------------------------------------------------------


@cli.group(name="models", help="List models and show resolved defaults.")
def models_group() -> None:
    pass


@models_group.command(name="list")
@click.option(
    "--capability",
    type=click.Choice(_CAPABILITY_NAMES),
    default=None,
    help="Only show models with this capability.",
)
@click.option("--refresh", is_flag=True, help="Bypass the model cache and fetch again.")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
def models_list(capability: Optional[str], refresh: bool, json_output: bool) -> None:
    """Fetch and list the endpoint's models."""

    async def _list(resolver: ClientResolver) -> None:
        if not resolver.is_configured:
            raise click.ClickException(
                "No API key configured. Run `aishortcuts auth set-key` first."
            )
        await resolver.catalog.refresh(force=refresh)
        if resolver.catalog.last_error:
            raise click.ClickException(resolver.catalog.last_error)
        records = (
            resolver.catalog.models_for(Capability(capability))
            if capability
            else resolver.catalog.models
        )
        ids = [record.id for record in records]
        if json_output:
            click.echo(json.dumps(ids, indent=2))
            return
        if not ids:
            click.echo("No models found.")
            return
        for model_id in ids:
            click.echo(model_id)

    _run(_list)


@models_group.command(name="defaults")
@click.option("--json", "json_output", is_flag=True, help="Output machine-readable JSON.")
def models_defaults(json_output: bool) -> None:
    """Show the model each feature would use."""

    async def _defaults(resolver: ClientResolver) -> Dict[str, Any]:
        if resolver.is_configured:
            await resolver.catalog.refresh()
        rows: Dict[str, Any] = {
            capability.value: resolver.default_model(capability) for capability in Capability
        }
        rows["voice"] = resolver.settings.default_voice
        return rows

    rows = _run(_defaults)
    if json_output:
        click.echo(json.dumps(rows, indent=2))
        return
    table = Table(title="Model defaults")
    table.add_column("Feature")
    table.add_column("Model")
    for capability in Capability:
        table.add_row(CAPABILITY_PROFILES[capability].display_name, rows[capability.value])
    table.add_row("Voice", rows["voice"])
    console.print(table)


# ----------------------------------------------------------------------
# misc
# ----------------------------------------------------------------------


@cli.command(name="verify")
def verify_cmd() -> None:
    """Verify the connection by listing models."""

    async def _verify(resolver: ClientResolver) -> None:
        status = await resolver.verify_connection()
        if status.is_success:
            console.print(
                f"[green]Connected to {escape(resolver.effective_endpoint_description)} "
                f"({len(resolver.catalog.models)} models).[/green]"
            )
            return
        raise click.ClickException(f"Connection failed: {status.reason or status.state.value}")

    _run(_verify)


@cli.command(name="options")
def options_cmd() -> None:
    """List built-in voices and image sizes."""
    console.print("[bold]Voices[/bold]")
    for voice in VoiceOption:
        console.print(f"  {voice.value} - {voice.display_name}")
    console.print("[bold]Image sizes[/bold]")
    for size in ImageSizeOption:
        console.print(f"  {size.value} - {size.display_name}")


@cli.command(name="version")
def version_cmd() -> None:
    """Show version information."""
    console.print(f"AI Shortcuts version {__version__}")


def main() -> None:
    cli()


__all__ = ["cli", "main"]
