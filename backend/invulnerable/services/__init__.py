"""Vulnerability lifecycle services."""
