"""Command-line interface for engine orchestration utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional, Tuple

import click
import yaml
from pydantic import ValidationError

from .cache import derive_key
from .config import ConsensusWeighting, Settings
from .consensus import ConsensusValidator
from .errors import OrchestrationError
from .generator import SeededGenerator, hash_seed
from .logging import get_logger, setup_logging
from .models import ValidationSource


@click.group()
@click.option(
    "--config", "-c", type=click.Path(exists=False), help="Configuration file path"
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
)
@click.pass_context
def main(ctx: click.Context, config: Optional[str], log_level: str) -> None:
    """Engine orchestration CLI - seeds, cache keys and consensus checks."""
    ctx.ensure_object(dict)

    settings = Settings(_config_file=config)
    ctx.obj["settings"] = settings

    # Logs go to stderr so command output stays machine-readable
    setup_logging(level=log_level, log_format="console")

    logger = get_logger(__name__)
    logger.debug("CLI initialized", config_path=config, environment=settings.environment)


@main.command()
@click.argument("seed_value", metavar="SEED")
@click.option("--count", "-n", default=5, show_default=True, type=click.IntRange(min=0))
def seed(seed_value: str, count: int) -> None:
    """Print the first COUNT draws of the seeded generator for SEED."""
    generator = SeededGenerator(seed_value)
    draws = [generator.next() for _ in range(count)]
    click.echo(
        json.dumps({"seed": seed_value, "hash": hash_seed(seed_value), "draws": draws})
    )


@main.command("cache-key")
@click.argument("namespace")
@click.argument("fields", nargs=-1)
@click.pass_context
def cache_key(ctx: click.Context, namespace: str, fields: Tuple[str, ...]) -> None:
    """Print the cache key for NAMESPACE and the ordered FIELDS."""
    settings: Settings = ctx.obj["settings"]
    click.echo(derive_key(namespace, fields, settings.cache.separator))


def _load_sources(path: Path) -> List[ValidationSource]:
    # YAML is a superset of JSON, so one loader covers both formats
    data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("sources")
    if not isinstance(data, list):
        raise click.ClickException(f"{path}: expected a list of sources")
    try:
        return [ValidationSource(**item) for item in data]
    except (TypeError, ValidationError) as exc:
        raise click.ClickException(f"{path}: invalid source entry: {exc}") from exc


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--weighting",
    type=click.Choice([w.value for w in ConsensusWeighting]),
    default=None,
    help="Override the configured consensus weighting",
)
@click.pass_context
def validate(ctx: click.Context, file: Path, weighting: Optional[str]) -> None:
    """Run consensus validation over the sources listed in FILE (YAML or JSON)."""
    settings: Settings = ctx.obj["settings"]
    config = settings.consensus
    if weighting:
        config = config.model_copy(update={"weighting": ConsensusWeighting(weighting)})

    sources = _load_sources(file)
    try:
        report = ConsensusValidator(config).validate(sources)
    except OrchestrationError as exc:
        raise click.ClickException(exc.message) from exc

    click.echo(report.model_dump_json(indent=2))
    if not report.is_valid:
        ctx.exit(1)


if __name__ == "__main__":
    main()  # pylint: disable=no-value-for-parameter
