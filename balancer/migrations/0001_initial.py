"""Create configuration store and balance history tables."""

from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    """Initial balancer schema."""

    initial = True

    dependencies: list[tuple[str, str]] = []

    operations = [
        migrations.CreateModel(
            name="BalancerConfigDocument",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=80, unique=True)),
                ("payload", models.JSONField(default=dict, help_text="Encoded BalancerConfig document.")),
                ("revision", models.PositiveIntegerField(default=1)),
                ("content_hash", models.CharField(max_length=64)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="StatBalanceSessionRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("session_id", models.CharField(max_length=120, unique=True)),
                ("strategy", models.CharField(default="auto", max_length=40)),
                ("start_time", models.DateTimeField()),
                ("end_time", models.DateTimeField()),
                ("config_key", models.CharField(blank=True, default="", max_length=80)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ("-id",)},
        ),
        migrations.CreateModel(
            name="BalancerConfigSnapshot",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("revision", models.PositiveIntegerField()),
                ("payload", models.JSONField(default=dict)),
                ("content_hash", models.CharField(max_length=64)),
                ("description", models.CharField(blank=True, max_length=200)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="snapshots",
                        to="balancer.balancerconfigdocument",
                    ),
                ),
            ],
            options={"ordering": ("-id",)},
        ),
        migrations.CreateModel(
            name="StatBalanceRunRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("run_id", models.CharField(max_length=160, unique=True)),
                ("position", models.PositiveIntegerField(default=0)),
                ("timestamp", models.DateTimeField()),
                ("balance_score", models.FloatField()),
                ("payload", models.JSONField(default=dict, help_text="Encoded StatBalanceRun.")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "session",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="runs",
                        to="balancer.statbalancesessionrecord",
                    ),
                ),
            ],
            options={"ordering": ("-timestamp", "-id")},
        ),
    ]
