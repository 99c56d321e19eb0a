"""Database models backing the configuration store and balance history."""

from __future__ import annotations

from django.core.exceptions import ValidationError
from django.db import models


class BalancerConfigDocument(models.Model):
    """The current balancer configuration document for one store key.

    `revision` increases on every write so callers can detect concurrent edits.
    """

    key = models.CharField(max_length=80, unique=True)
    payload = models.JSONField(default=dict, help_text="Encoded BalancerConfig document.")
    revision = models.PositiveIntegerField(default=1)
    content_hash = models.CharField(max_length=64)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def save(self, *args, **kwargs) -> None:
        """Save while enforcing invariants."""

        self.full_clean()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        """Return the store key and revision."""

        return f"{self.key}@{self.revision}"


class BalancerConfigSnapshot(models.Model):
    """A previous revision of a configuration document, kept for undo/restore."""

    document = models.ForeignKey(
        BalancerConfigDocument,
        on_delete=models.CASCADE,
        related_name="snapshots",
    )
    revision = models.PositiveIntegerField()
    payload = models.JSONField(default=dict)
    content_hash = models.CharField(max_length=64)
    description = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-id",)

    def __str__(self) -> str:
        """Return a concise display string."""

        return f"ConfigSnapshot({self.document_id}@{self.revision})"

    def save(self, *args, **kwargs) -> None:
        """Save a snapshot, enforcing immutability after creation.

        Raises:
            ValidationError: When attempting to update an existing snapshot.
        """

        if self.pk is not None and not kwargs.get("force_insert", False):
            raise ValidationError("Configuration snapshots are immutable once created.")
        self.full_clean()
        super().save(*args, **kwargs)


class StatBalanceSessionRecord(models.Model):
    """A group of balance runs produced by one auto-balance session."""

    session_id = models.CharField(max_length=120, unique=True)
    strategy = models.CharField(max_length=40, default="auto")
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    config_key = models.CharField(max_length=80, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-id",)

    def save(self, *args, **kwargs) -> None:
        """Save while enforcing invariants."""

        self.full_clean()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        """Return the session identifier."""

        return self.session_id


class StatBalanceRunRecord(models.Model):
    """One immutable auto-balance iteration.

    The encoded run lives in `payload`; `timestamp` and `balance_score` are
    copied out for ordering and admin display.
    """

    run_id = models.CharField(max_length=160, unique=True)
    session = models.ForeignKey(
        StatBalanceSessionRecord,
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name="runs",
    )
    position = models.PositiveIntegerField(default=0)
    timestamp = models.DateTimeField()
    balance_score = models.FloatField()
    payload = models.JSONField(default=dict, help_text="Encoded StatBalanceRun.")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-timestamp", "-id")

    def __str__(self) -> str:
        """Return the run identifier."""

        return self.run_id

    def save(self, *args, **kwargs) -> None:
        """Save a run, enforcing immutability after creation.

        Raises:
            ValidationError: When attempting to update an existing run.
        """

        if self.pk is not None and not kwargs.get("force_insert", False):
            raise ValidationError("Balance runs are immutable once created.")
        self.full_clean()
        super().save(*args, **kwargs)
