"""
depsync CLI - Main entry point.

This module registers all CLI commands. Each command is implemented
in its own module under cli/commands/.
"""

import click

from .commands import export, validate, versions


@click.group()
@click.version_option(package_name="depsync")
def main():
    """depsync: Dependency graph export for multi-module builds.

    Turns a resolved dependency tree into a versioned, conflict-aware
    graph and writes it to Neo4j or SQLite.

    \b
    Quick Start:
      depsync validate --config depsync.toml
      depsync export tree.json --dry-run
      depsync export tree.json --database-type sqlite --url deps.db
    """
    pass


# Register commands
main.add_command(export.export)
main.add_command(validate.validate)
main.add_command(versions.versions)

if __name__ == "__main__":
    main()
