#!/usr/bin/env python3
"""
Entry point for running tunnelrelay as a module.

This allows the package to be executed with:
    python -m tunnelrelay
"""
from tunnelrelay.cli import cli

if __name__ == "__main__":
    cli()
