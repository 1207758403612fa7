"""Command-line tools for the CRM local store."""

from .store_cli import StoreCLI, main

__all__ = ["StoreCLI", "main"]
