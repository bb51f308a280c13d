"""
Validate Command - Check a depsync.toml manifest without exporting.
"""

import sys
from pathlib import Path

import click

from ...config import DEFAULT_MANIFEST, ConfigurationValidator, ExportConfig
from ...errors import ConfigurationError
from ..utils import echo_error, echo_info, echo_success


@click.command()
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              default=str(DEFAULT_MANIFEST), show_default=True, help="depsync.toml manifest")
def validate(config_path: str):
    """Validate an export configuration and list every problem found."""
    path = Path(config_path)
    if not path.exists():
        echo_error(f"Manifest not found: {path}")
        sys.exit(1)

    try:
        config = ExportConfig.load(path)
    except ConfigurationError as e:
        echo_error(str(e))
        sys.exit(1)

    errors = ConfigurationValidator().validate(config)
    if errors:
        echo_error(f"{path} has {len(errors)} problem(s):")
        for error in errors:
            click.echo(f"   - {error}")
        sys.exit(1)

    echo_success(f"{path} is valid")
    echo_info(f"Backend: {config.normalized_database_type} at {config.masked_url()}")
