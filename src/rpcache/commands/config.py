"""Config commands -- view and modify the rpcache configuration.

``config show`` prints the user config file, or with ``--effective`` the
configuration ``rpcache call`` would actually use after project config,
environment variables and root flags are layered on top. ``config set``
and ``config reset`` only ever touch the user config file
(:class:`~rpcache.models.GlobalConfig`).
"""

from __future__ import annotations

from typing import Any

import typer

from rpcache.commands import cli_overrides
from rpcache.exceptions import ConfigError
from rpcache.output import error, format_response, info, success, use_format


config_app = typer.Typer(no_args_is_help=True)

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False, "--effective", "-e", help="Show the merged configuration used by 'call'."
    ),
) -> None:
    """Show the user configuration, or the effective one with --effective.

    Example::

        rpcache config show
        rpcache --json config show --effective
    """
    from rpcache.config import get_config_dir, load_global_config, resolve_config

    try:
        if effective:
            config = resolve_config(**cli_overrides(ctx))
            use_format(config.output.format)
        else:
            config = load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cache.backend')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the user configuration file.

    The value is coerced to the type of the setting it replaces and the
    whole configuration is validated before saving, so an unknown backend
    or a worker count of zero is rejected.

    Example::

        rpcache config set base_url http://localhost:3001/twirp
        rpcache config set cache.backend redis
        rpcache config set cache.workers 8
        rpcache config set output.format json
    """
    from rpcache.config import load_global_config, save_global_config
    from rpcache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")
    try:
        section, name = _locate(data, key)
        section[name] = _coerce(key, section[name], value)
        new_config = GlobalConfig.model_validate(data)
    except ValueError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {section[name]}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset the user configuration file to defaults.

    Cached responses are left alone; use ``rpcache cache clear`` for those.

    Example::

        rpcache config reset --force
    """
    from rpcache.config import save_global_config
    from rpcache.models import GlobalConfig

    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")


def _locate(data: dict[str, Any], key: str) -> tuple[dict[str, Any], str]:
    """Return the section holding *key* and the final key name.

    Raises:
        ValueError: If *key* names a section or a setting that does not exist.
    """
    *parents, name = key.split(".")
    section = data
    for part in parents:
        section = section.get(part)
        if not isinstance(section, dict):
            raise ValueError(f"Invalid config key: {key}")
    if name not in section or isinstance(section[name], dict):
        raise ValueError(f"Unknown config key: {key}")
    return section, name


def _coerce(key: str, current: Any, value: str) -> Any:
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered not in _TRUE + _FALSE:
            raise ValueError(f"Expected true or false for {key}, got: {value}")
        return lowered in _TRUE
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Expected integer for {key}, got: {value}") from None
    return value
