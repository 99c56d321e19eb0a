"""Django app configuration for the stat balancer."""

from __future__ import annotations

from django.apps import AppConfig


class BalancerAppConfig(AppConfig):
    """AppConfig for the configuration store and balance history."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "balancer"
    verbose_name = "Stat Balancer"
