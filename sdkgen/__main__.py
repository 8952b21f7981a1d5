"""Entry point: python -m sdkgen SPEC -o OUT -p PACKAGE

Reads an OpenAPI document, builds the client IR and writes a Python
package to OUT/PACKAGE, optionally running a formatter over it.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Any

import click

from .codegen import generate
from .config import GeneratorConfig, load_config
from .context_builder import build_context
from .diagnostics import Diagnostics, GeneratorError, OutputError
from .loader import load_spec

logger = logging.getLogger(__name__)


def server_url(spec: dict[str, Any]) -> str:
    """URL of the first declared server, if any."""
    servers = spec.get("servers") or []
    if servers and isinstance(servers[0], dict):
        return str(servers[0].get("url", ""))
    return ""


def run_formatter(command: list[str], target: Path) -> None:
    logger.info("running formatter: %s", " ".join(command))
    try:
        subprocess.run([*command, str(target)], check=True)
    except FileNotFoundError as e:
        raise OutputError(f"formatter not found: {command[0]}") from e
    except subprocess.CalledProcessError as e:
        raise OutputError(f"formatter exited with status {e.returncode}") from e


def run(spec_path: Path, config: GeneratorConfig) -> list[Path]:
    """Load, build and render; returns the written files."""
    spec = load_spec(spec_path)
    diagnostics = Diagnostics()
    sdk = build_context(spec, config, diagnostics)
    written = generate(sdk, config.output_dir, config.base_url or server_url(spec))
    if config.format_command:
        run_formatter(config.format_command, Path(config.output_dir) / sdk.package)
    if diagnostics:
        logger.warning("finished with %d warnings", len(diagnostics))
    return written


@click.command()
@click.argument("spec_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", "output_dir", default=None, type=click.Path(file_okay=False, path_type=Path), help="Directory the package is written into.")
@click.option("-p", "--package", "package_name", default=None, help="Name of the generated package.")
@click.option("--config", "config_file", default=None, type=click.Path(dir_okay=False, path_type=Path), help="JSON configuration file.")
@click.option("--format-command", default=None, help="Formatter to run over the output, e.g. 'ruff format'.")
@click.option("--base-url", default=None, help="Default base URL of the generated client.")
@click.option("-v", "--verbose", is_flag=True, help="Log progress.")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors.")
def main(
    spec_path: Path,
    output_dir: Path | None,
    package_name: str | None,
    config_file: Path | None,
    format_command: str | None,
    base_url: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Generate a typed Python client from an OpenAPI document."""
    level = logging.ERROR if quiet else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = load_config(
            config_file,
            output_dir=str(output_dir) if output_dir else None,
            package_name=package_name,
            format_command=format_command,
            base_url=base_url,
        )
        written = run(spec_path, config)
    except GeneratorError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Generated {len(written)} files in {Path(config.output_dir) / config.package_name}")


if __name__ == "__main__":
    main()
