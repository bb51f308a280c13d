"""
Versions Command - Order version strings the way the export cleanup does.
"""

from typing import Tuple

import click

from ...core.versions import find_latest_version, sort_versions_descending


@click.command()
@click.argument("version_list", metavar="VERSION...", nargs=-1, required=True)
@click.option("--latest", is_flag=True, help="Print only the newest version")
def versions(version_list: Tuple[str, ...], latest: bool):
    """
    Sort versions newest first using build-tool ordering.

    \b
    Example:
      depsync versions 1.9 1.10 1.10-SNAPSHOT
      1.10
      1.10-SNAPSHOT
      1.9
    """
    if latest:
        click.echo(find_latest_version(version_list))
        return

    for version in sort_versions_descending(version_list):
        click.echo(version)
