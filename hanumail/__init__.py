"""Hanumail - a language server for email messages."""

__version__ = "0.1.0"
