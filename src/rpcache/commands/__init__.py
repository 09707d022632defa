"""Built-in CLI sub-commands for rpcache."""

from __future__ import annotations

from typing import Optional

import typer


def cli_overrides(ctx: typer.Context) -> dict[str, Optional[str]]:
    """Keyword arguments for :func:`~rpcache.config.resolve_config` from root flags."""
    obj = ctx.find_root().obj or {}
    return {"cli_base_url": obj.get("base_url"), "cli_format": obj.get("format")}
