"""
Refunds app configuration.

This app mirrors gateway refund state locally:
- Refund initiation against the gateway API
- Signed webhook ingestion and reconciliation
- Parent payment status rollup and customer notification
"""

from django.apps import AppConfig


class RefundsConfig(AppConfig):
    """Configuration for the refunds application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "refunds"
    verbose_name = "Refunds"
