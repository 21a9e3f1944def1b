"""Multi-tenant relay normalizing donation webhooks for polling game servers."""

__version__ = "1.0.0"
