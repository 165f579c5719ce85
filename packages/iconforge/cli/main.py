"""Command-line interface for iconforge."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
import sys

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from iconforge.core.config.loader import configure_logging, load_app_config
from iconforge.core.config.models import AppConfig, StorageConfig
from iconforge.core.errors import DecompositionError, IconForgeError
from iconforge.core.generation.models import (
    GenerationRequest,
    GenerationResult,
    MoreIconsRequest,
    RequestStatus,
)
from iconforge.core.imaging.grid import GridDecomposer
from iconforge.core.ledger.models import Balance
from iconforge.core.ledger.store import InMemoryBalanceStore
from iconforge.core.progress.events import EventType, ProgressEvent
from iconforge.core.session import IconForgeSession

console = Console()
logger = logging.getLogger(__name__)

CLI_USER = "cli"

_EVENT_STYLE = {
    EventType.ATTEMPT_STARTED: "cyan",
    EventType.ATTEMPT_UPSCALING: "blue",
    EventType.ATTEMPT_SUCCEEDED: "green",
    EventType.ATTEMPT_FAILED: "red",
    EventType.REQUEST_COMPLETED: "bold green",
    EventType.REQUEST_ERROR: "bold red",
}


def _parse_icons(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(","))


def _load_config(args: argparse.Namespace) -> AppConfig:
    app_config = load_app_config(Path(args.config))
    if getattr(args, "out", None):
        app_config = app_config.model_copy(update={"storage": StorageConfig(root=str(args.out))})
    configure_logging(app_config)
    return app_config


def _print_event(event: ProgressEvent) -> None:
    style = _EVENT_STYLE.get(event.type, "white")
    label = event.attempt_label or "request"
    detail = event.message or event.type.value
    if event.type is EventType.ATTEMPT_SUCCEEDED and event.elapsed_ms is not None:
        detail = f"{detail} ({len(event.icons)} icons, {event.elapsed_ms / 1000:.1f}s)"
    console.print(f"[{style}]{label:>12}[/{style}]  {detail}")


def _print_result(result: GenerationResult, balance: Balance) -> None:
    table = Table(title=f"Request {result.request_id}")
    table.add_column("Attempt")
    table.add_column("Seed", justify="right")
    table.add_column("Status")
    table.add_column("Icons", justify="right")
    table.add_column("Message")
    for attempt in result.attempts:
        table.add_row(
            attempt.label,
            str(attempt.seed),
            attempt.status.value,
            str(attempt.icon_count),
            attempt.message or "",
        )
    console.print(table)

    style = "green" if result.status is RequestStatus.COMPLETED else "red"
    console.print(f"[{style}]{result.message}[/{style}]")
    if result.trial_mode:
        console.print("[yellow]Generated with a trial coin[/yellow]")
    if result.refunded:
        console.print(f"Refunded: {result.refunded} coin(s)")
    console.print(f"Balance: {balance.coins} coin(s), {balance.trial_coins} trial coin(s)")
    if result.stored_paths:
        console.print(f"[green]Icons saved under:[/green] {Path(result.stored_paths[0]).parent}")


async def generate_async(args: argparse.Namespace) -> int:
    """Submit one generation request and stream its progress to the console.

    Returns:
        Exit code (0 when at least one attempt succeeded)
    """
    app_config = _load_config(args)
    if not app_config.enabled_providers():
        console.print("[red]ERROR: no providers are enabled in the configuration[/red]")
        return 1

    reference_image = None
    if args.reference:
        reference_path = Path(args.reference)
        if not reference_path.exists():
            console.print(f"[red]ERROR: Reference image not found: {reference_path}[/red]")
            return 1
        reference_image = reference_path.read_bytes()

    store = InMemoryBalanceStore({CLI_USER: Balance(coins=args.coins, trial_coins=args.trial_coins)})
    session = IconForgeSession(app_config=app_config, balance_store=store)

    try:
        request = GenerationRequest(
            user_id=CLI_USER,
            theme=args.theme,
            reference_image=reference_image,
            icon_count=args.count,
            generations_per_provider=args.generations,
            seed=args.seed,
            icon_descriptions=_parse_icons(args.icons),
            enhance_prompt=args.enhance,
        )
        coordinator = session.coordinator
        console.print(f"[bold]Providers:[/bold] {', '.join(session.providers)}")

        request_id = await coordinator.submit(request)
        console.print(f"[bold]Request:[/bold] {request_id}\n")

        async for event in coordinator.subscribe(request_id):
            _print_event(event)

        result = await coordinator.wait(request_id)
        console.print()
        _print_result(result, store.snapshot(CLI_USER))
        return 0 if result.status is RequestStatus.COMPLETED else 1
    except (IconForgeError, ValidationError) as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1
    finally:
        await session.aclose()


async def more_async(args: argparse.Namespace) -> int:
    """Generate a follow-up grid in the style of an existing grid image."""
    app_config = _load_config(args)
    grid_path = Path(args.grid)
    if not grid_path.exists():
        console.print(f"[red]ERROR: Grid image not found: {grid_path}[/red]")
        return 1

    store = InMemoryBalanceStore({CLI_USER: Balance(coins=args.coins, trial_coins=args.trial_coins)})
    session = IconForgeSession(app_config=app_config, balance_store=store)
    try:
        result = await session.coordinator.generate_more(
            MoreIconsRequest(
                user_id=CLI_USER,
                original_request_id=grid_path.stem,
                provider=args.provider,
                generation_index=1,
                icon_descriptions=_parse_icons(args.icons),
                original_image=grid_path.read_bytes(),
                seed=args.seed,
                icon_count=args.count,
            )
        )
        _print_result(result, store.snapshot(CLI_USER))
        return 0 if result.status is RequestStatus.COMPLETED else 1
    except (IconForgeError, ValidationError) as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1
    finally:
        await session.aclose()


def split_image(args: argparse.Namespace) -> int:
    """Cut a local grid image into icon PNGs."""
    app_config = _load_config(args)
    image_path = Path(args.image)
    if not image_path.exists():
        console.print(f"[red]ERROR: Image not found: {image_path}[/red]")
        return 1

    decomposer = GridDecomposer(app_config.imaging)
    try:
        icons = decomposer.decompose(image_path.read_bytes(), args.cells, remove_background=False)
    except DecompositionError as e:
        console.print(f"[red]ERROR: {e}[/red]")
        return 1

    out_dir = Path(args.out or image_path.parent / f"{image_path.stem}_icons")
    out_dir.mkdir(parents=True, exist_ok=True)
    for position, data in enumerate(icons):
        (out_dir / f"{image_path.stem}-{position}.png").write_bytes(data)

    console.print(f"[green]Wrote {len(icons)} icons to[/green] {out_dir}")
    return 0


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to app config YAML/JSON (default: config.yaml)",
    )
    parser.add_argument("--out", default=None, help="Output directory for icons")


def _add_wallet(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--coins", type=int, default=2, help="Paid coins for this run (default: 2)")
    parser.add_argument("--trial-coins", type=int, default=0, help="Trial coins for this run")


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for CLI."""
    p = argparse.ArgumentParser(
        prog="iconforge",
        description="iconforge - themed icon sets from AI image providers",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    gen = sub.add_parser("generate", help="Generate icon grids from a theme or reference image")
    gen.add_argument("--theme", default=None, help="General theme text")
    gen.add_argument("--reference", default=None, help="Path to a style reference image")
    gen.add_argument("--seed", type=int, default=None, help="Base seed (random if omitted)")
    gen.add_argument(
        "--generations",
        type=int,
        choices=(1, 2),
        default=1,
        help="Grids per provider (default: 1)",
    )
    gen.add_argument("--count", type=int, default=9, help="Icons per grid (default: 9)")
    gen.add_argument("--icons", default=None, help="Comma-separated per-slot icon descriptions")
    gen.add_argument("--enhance", action="store_true", help="Rewrite the theme before generating")
    _add_wallet(gen)
    _add_common(gen)

    more = sub.add_parser("more", help="Generate more icons in the style of an existing grid")
    more.add_argument("grid", help="Path to the original grid image")
    more.add_argument("--provider", required=True, help="Provider label to use")
    more.add_argument("--seed", type=int, required=True, help="Seed of the original grid")
    more.add_argument("--count", type=int, default=9, help="Icons per grid (default: 9)")
    more.add_argument("--icons", default=None, help="Comma-separated icon descriptions")
    _add_wallet(more)
    _add_common(more)

    split = sub.add_parser("split", help="Cut a grid image into individual icons")
    split.add_argument("image", help="Path to the grid image")
    split.add_argument("--cells", type=int, default=9, help="Number of cells (default: 9)")
    _add_common(split)

    return p


def main() -> None:
    """Main entry point for CLI."""
    p = build_arg_parser()
    args = p.parse_args()

    if args.cmd == "generate":
        if not args.theme and not args.reference:
            p.error("generate requires --theme or --reference")
        sys.exit(asyncio.run(generate_async(args)))
    elif args.cmd == "more":
        sys.exit(asyncio.run(more_async(args)))
    elif args.cmd == "split":
        sys.exit(split_image(args))
