"""CLI entry point for the shelf scan pipeline."""

import json
import sys
from pathlib import Path

import click
from loguru import logger

from .config import PipelineConfig
from .errors import NoProvidersAvailable
from .models import ImagePayload
from .runner import ScanPipeline

log = logger.bind(stage="cli")

EXIT_NO_PROVIDERS = 3


def _find_config_file() -> Path | None:
    """Look for .env next to the package or in cwd."""
    pkg_dir = Path(__file__).resolve().parent
    for candidate in [
        pkg_dir.parent.parent / ".env",  # dev: src/../.env
        Path.cwd() / ".env",
    ]:
        if candidate.is_file():
            return candidate
    return None


def _read_image(image: str) -> ImagePayload:
    if image == "-":
        return ImagePayload.from_data_url(sys.stdin.read())
    return ImagePayload.from_path(Path(image))


@click.command()
@click.argument("image")
@click.option("--job-id", default=None, help="Job identifier (generated if omitted).")
@click.option("--user-id", default=None, help="Caller identifier, for diagnostics only.")
@click.option("--no-lookup", is_flag=True, help="Skip the Google Books lookup stage.")
@click.option("--no-validate", is_flag=True, help="Skip the batch validation stage.")
@click.option("--pretty", is_flag=True, help="Indent the JSON output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to .env file.",
)
def main(
    image: str,
    job_id: str | None,
    user_id: str | None,
    no_lookup: bool,
    no_validate: bool,
    pretty: bool,
    verbose: bool,
    config_file: str | None,
) -> None:
    """Scan a bookshelf photo and print the detected books as JSON.

    IMAGE is a path to a photo, or "-" to read a data URL / base64 from stdin.
    """
    if image != "-" and not Path(image).is_file():
        raise click.UsageError(f"Image not found: {image}")

    env_file = Path(config_file) if config_file else _find_config_file()

    # Pass CLI flags as kwargs so they win over env and .env
    config_kwargs: dict[str, bool | str] = {"verbose": verbose}
    if no_lookup:
        config_kwargs["lookup_enabled"] = False
    if no_validate:
        config_kwargs["validation_enabled"] = False
    if verbose:
        config_kwargs["log_level"] = "DEBUG"

    config = PipelineConfig(_env_file=env_file, **config_kwargs)  # type: ignore[arg-type]
    config.setup_logging()
    if env_file:
        log.debug(f"Loaded env from {env_file}")

    try:
        payload = _read_image(image)
    except ValueError as e:
        raise click.UsageError(str(e))

    pipeline = ScanPipeline.from_config(config)
    try:
        result = pipeline.run(payload, user_id=user_id, job_id=job_id)
    except NoProvidersAvailable as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_NO_PROVIDERS)

    click.echo(json.dumps(result.to_dict(), indent=2 if pretty else None, ensure_ascii=False))
