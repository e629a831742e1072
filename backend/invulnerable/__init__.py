"""Invulnerable - container image vulnerability lifecycle tracking."""

__version__ = "0.4.0"
