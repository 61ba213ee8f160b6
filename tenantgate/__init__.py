"""Tenant resolution, sandbox identity and usage recording service."""
