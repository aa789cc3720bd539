"""Command-line client for the problem service."""

__version__ = "0.1.0"
