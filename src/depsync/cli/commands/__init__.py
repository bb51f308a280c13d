"""depsync CLI commands, one module per command."""
