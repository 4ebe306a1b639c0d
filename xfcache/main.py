"""Main entry point for the xfcache command line tool.

Sets up the Typer CLI application, builds the cache from settings
(Composition Root) and maps commands onto CacheManager operations.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from xfcache.core.cache_manager import CacheManager
from xfcache.domain.errors import CacheError, StorageWriteError
from xfcache.domain.models.item import CacheItem
from xfcache.infrastructure.cli.display import ConsoleDisplay
from xfcache.infrastructure.config.settings import DEFAULT_CONFIG_FILE, build_cache, load_settings
from xfcache.infrastructure.monitoring.logger_setup import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Dependencies shared by the commands of one CLI invocation."""
    cache: CacheManager
    ui: ConsoleDisplay


app = typer.Typer(
    name="xfcache",
    help="Compute-on-miss file cache with probabilistic early expiration.",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    cache_dir: Annotated[Optional[Path], typer.Option("--cache-dir", "-d", help="Storage root directory.")] = None,
    namespace: Annotated[Optional[str], typer.Option("--namespace", "-n", help="Sub-namespace inside the storage root.")] = None,
    backend: Annotated[Optional[str], typer.Option("--backend", "-b", help="Storage backend ('filesystem' or 'diskcache').")] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING...).")] = None,
    config: Annotated[Path, typer.Option("--config", "-c", help="YAML configuration file.")] = DEFAULT_CONFIG_FILE,
):
    """Load settings and build the cache shared by all commands."""
    ui = ConsoleDisplay()
    try:
        settings = load_settings(
            config_file=config,
            overrides={"cache_dir": cache_dir, "namespace": namespace, "backend": backend, "log_level": log_level},
        )
        setup_logging(log_level=settings.log_level, log_file=settings.log_file)
        cache = build_cache(settings)
    except (CacheError, OSError) as e:
        logger.error(f"Failed to initialize cache: {e}", exc_info=True)
        ui.display_error(f"Cache initialization failed: {e}")
        raise typer.Exit(code=1)
    ctx.obj = AppContext(cache=cache, ui=ui)


def _parse_value(raw: str, as_json: bool) -> Any:
    if not as_json:
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"--value is not valid JSON: {e}")


@app.command()
def get(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key.")],
    value: Annotated[str, typer.Option("--value", "-v", help="Value to cache when the key misses.")],
    ttl: Annotated[Optional[float], typer.Option("--ttl", "-t", help="Lifetime in seconds of a computed value.")] = None,
    never: Annotated[bool, typer.Option("--never", help="Computed value never expires.")] = False,
    beta: Annotated[Optional[float], typer.Option("--beta", help="Early-expiration factor (0 disables, inf forces).")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Parse --value as JSON.")] = False,
):
    """Get KEY, storing --value if it is missing or due for refresh."""
    state: AppContext = ctx.obj
    payload = _parse_value(value, as_json)
    computed = False

    def provider(item: CacheItem) -> Any:
        nonlocal computed
        computed = True
        if never:
            item.expires_after(None)
        elif ttl is not None:
            item.expires_after(ttl)
        return payload

    try:
        result = state.cache.get(key, provider, beta=beta)
    except StorageWriteError as e:
        state.ui.display_error(str(e))
        raise typer.Exit(code=1)
    except CacheError as e:
        state.ui.display_error(str(e))
        raise typer.Exit(code=2)
    state.ui.display_value(result, computed)


@app.command()
def inspect(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key.")],
):
    """Show KEY under hard expiry, without computing anything."""
    state: AppContext = ctx.obj
    try:
        item = state.cache.get_item(key)
    except CacheError as e:
        state.ui.display_error(str(e))
        raise typer.Exit(code=2)
    state.ui.display_item(item)


@app.command()
def has(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key.")],
):
    """Exit 0 if KEY holds a live value, 1 otherwise."""
    state: AppContext = ctx.obj
    try:
        present = state.cache.has_item(key)
    except CacheError as e:
        state.ui.display_error(str(e))
        raise typer.Exit(code=2)
    state.ui.display_info(f"'{key}' is {'cached' if present else 'not cached'}")
    if not present:
        raise typer.Exit(code=1)


@app.command()
def delete(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Cache key.")],
):
    """Delete KEY (succeeds when it is not cached)."""
    state: AppContext = ctx.obj
    try:
        deleted = state.cache.delete(key)
    except CacheError as e:
        state.ui.display_error(str(e))
        raise typer.Exit(code=2)
    if not deleted:
        state.ui.display_error(f"Could not delete '{key}'")
        raise typer.Exit(code=1)
    state.ui.display_info(f"Deleted '{key}'")


@app.command()
def clear(ctx: typer.Context):
    """Remove every entry in the cache namespace."""
    state: AppContext = ctx.obj
    if not state.cache.clear():
        state.ui.display_error("Cache could not be cleared completely")
        raise typer.Exit(code=1)
    state.ui.display_info("Cache cleared")


@app.command()
def prune(ctx: typer.Context):
    """Reclaim expired, corrupt and orphaned records."""
    state: AppContext = ctx.obj
    removed = state.cache.prune()
    state.ui.display_info(f"Pruned {removed} record(s)")


def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
