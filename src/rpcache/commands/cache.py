"""Cache commands -- inspect and empty the configured cache store.

Provides the ``rpcache cache`` sub-command group. Both commands open the
store selected by the ``cache`` section of the resolved configuration
(memory, disk, or Redis), so project config and ``RPCACHE_CACHE_BACKEND``
/ ``RPCACHE_REDIS_URL`` apply as they do for ``rpcache call``.
"""

from __future__ import annotations

import typer

from rpcache.commands import cli_overrides
from rpcache.exceptions import RpcacheError
from rpcache.output import error, format_response, success, use_format


cache_app = typer.Typer(no_args_is_help=True)


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show the configured cache store and how many entries it holds.

    Example::

        rpcache cache stats
        rpcache --json cache stats
    """
    from rpcache.cache import create_store
    from rpcache.config import get_cache_dir, resolve_config

    try:
        config = resolve_config(**cli_overrides(ctx))
        use_format(config.output.format)
        if not config.cache.enabled:
            format_response({"enabled": False})
            return
        with create_store(config.cache, get_cache_dir()) as store:
            stats = store.stats()
    except RpcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response({"enabled": True, **stats})


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every cached response in the configured namespace.

    The namespace's version counter is kept, so entries written afterwards
    never reuse a version handed out before the clear.

    Example::

        rpcache cache clear
    """
    from rpcache.cache import create_store
    from rpcache.config import get_cache_dir, resolve_config

    try:
        config = resolve_config(**cli_overrides(ctx))
        with create_store(config.cache, get_cache_dir()) as store:
            removed = store.clear()
    except RpcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Removed {removed} cached response(s) from '{config.cache.namespace}'.")
