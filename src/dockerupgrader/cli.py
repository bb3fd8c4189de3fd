import logging
import os

import click
from rich.logging import RichHandler

from .constants import (
    DEFAULT_CONFIG_FILE,
    RECOVER_LOG_FILE,
    ROLLBACK_LOG_FILE,
    TRANSITION_STRATEGIES,
    UPGRADE_LOG_FILE,
)
from .core import DockerUpgrader, UpgraderError
from .models import Settings
from .recovery import PackageRecovery
from .rollback import DockerRollback
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _build_settings(obj, default_log_file: str, **cli_values) -> Settings:
    config_values = obj["config"]
    values = dict(config_values)
    for key, cli_value in cli_values.items():
        if cli_value is not None:
            values[key] = cli_value

    values["verbose"] = bool(_resolve_option(obj["verbose"], config_values, "verbose", default=False))
    values["log_file"] = _resolve_option(obj["log_file"], config_values, "log_file", default=default_log_file)
    return Settings(**values)


def _configure_logging(settings: Settings):
    logger = logging.getLogger("dockerupgrader")

    if settings.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    for handler in [h for h in logger.handlers if isinstance(h, logging.FileHandler)]:
        logger.removeHandler(handler)
        handler.close()

    if settings.log_file:
        try:
            file_handler = logging.FileHandler(settings.log_file, mode="a", encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(
                f"Cannot open log file {settings.log_file}: {exc}. Run as root or pass --log-file."
            ) from exc
        file_handler.setLevel(logging.DEBUG if settings.verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to the run log file (appended to).")
@click.pass_context
def main(ctx, config, verbose, log_file):
    """Upgrade, roll back or repair Docker Engine and containerd on offline RHEL hosts."""
    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = ConfigLoader().load(resolved_config)
    except UpgraderError as exc:
        raise click.ClickException(str(exc)) from exc

    ctx.obj = {"config": config_values, "verbose": verbose, "log_file": log_file}


@main.command()
@click.option(
    "--strategy",
    "transition_strategy",
    type=click.Choice(TRANSITION_STRATEGIES),
    default=None,
    help="Package transition strategy: direct rpm install (default) or local dnf repository.",
)
@click.option("--package-root", type=click.Path(), help="Root of the extracted offline bundle.")
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Detect the environment and print the upgrade plan without changing anything.",
)
@click.pass_obj
def upgrade(obj, transition_strategy, package_root, dry_run):
    """Upgrade Docker Engine and containerd from the offline bundle."""
    settings = _build_settings(
        obj,
        UPGRADE_LOG_FILE,
        transition_strategy=transition_strategy,
        package_root=package_root,
        dry_run=dry_run,
    )
    _configure_logging(settings)
    raise SystemExit(DockerUpgrader(settings=settings).run())


@main.command()
@click.option("--package-root", type=click.Path(), help="Root of the extracted offline bundle.")
@click.pass_obj
def rollback(obj, package_root):
    """Downgrade to the previous Docker Engine and containerd release."""
    settings = _build_settings(obj, ROLLBACK_LOG_FILE, package_root=package_root)
    _configure_logging(settings)
    raise SystemExit(DockerRollback(settings=settings).run())


@main.command()
@click.pass_obj
def recover(obj):
    """Repair the rpm database and dnf dependency state."""
    settings = _build_settings(obj, RECOVER_LOG_FILE)
    _configure_logging(settings)
    raise SystemExit(PackageRecovery(settings=settings).run())


if __name__ == "__main__":
    main()
