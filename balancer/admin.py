"""Admin registrations for the balancer app."""

from __future__ import annotations

from django import forms
from django.contrib import admin

from balancer.models import (
    BalancerConfigDocument,
    BalancerConfigSnapshot,
    StatBalanceRunRecord,
    StatBalanceSessionRecord,
)
from balancer.services import save_config_payload
from balancing.codec import decode_config


class ImmutableRecordAdmin(admin.ModelAdmin):
    """ModelAdmin for append-only records: viewable and deletable, never editable."""

    def has_add_permission(self, request) -> bool:  # type: ignore[override]
        """Records are only created by services."""

        return False

    def has_change_permission(self, request, obj=None) -> bool:  # type: ignore[override]
        """Records are immutable once created."""

        return False


class BalancerConfigDocumentForm(forms.ModelForm):
    """Edit form that validates the payload as a configuration document."""

    expected_revision = forms.IntegerField(required=False, widget=forms.HiddenInput)

    class Meta:
        model = BalancerConfigDocument
        fields = ("key", "payload")

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        if self.instance.pk is not None:
            self.fields["expected_revision"].initial = self.instance.revision

    def clean_payload(self) -> object:
        """Reject payloads that do not decode into a configuration."""

        payload = self.cleaned_data.get("payload")
        try:
            decode_config(payload)
        except ValueError as exc:
            raise forms.ValidationError(f"Invalid configuration document: {exc}") from exc
        return payload

    def clean_expected_revision(self) -> int | None:
        """Reject edits made against a revision that is no longer current."""

        expected = self.cleaned_data.get("expected_revision")
        if expected is None or self.instance.pk is None:
            return expected
        current = BalancerConfigDocument.objects.filter(pk=self.instance.pk).values_list("revision", flat=True).first()
        if current is not None and current != expected:
            raise forms.ValidationError(
                f"The configuration changed to revision {current} while you were editing; reload and retry."
            )
        return expected


@admin.register(BalancerConfigDocument)
class BalancerConfigDocumentAdmin(admin.ModelAdmin):
    """Admin configuration for BalancerConfigDocument.

    Saves go through the configuration store so every edit bumps the
    revision, refreshes the content hash and snapshots the previous document.
    """

    form = BalancerConfigDocumentForm
    list_display = ("key", "revision", "content_hash", "updated_at")
    search_fields = ("key",)
    readonly_fields = ("revision", "content_hash", "created_at", "updated_at")

    def get_readonly_fields(self, request, obj=None):  # type: ignore[override]
        """Make the store key read-only once the document exists."""

        readonly = list(super().get_readonly_fields(request, obj=obj))
        if obj is not None:
            readonly.append("key")
        return tuple(readonly)

    def save_model(self, request, obj, form, change) -> None:  # type: ignore[override]
        """Persist the edited payload through `save_config_payload`."""

        save_config_payload(
            obj.key,
            form.cleaned_data["payload"],
            description="Admin edit",
            expected_revision=form.cleaned_data.get("expected_revision") if change else None,
        )
        obj.pk = BalancerConfigDocument.objects.get(key=obj.key).pk
        obj.refresh_from_db()


@admin.register(BalancerConfigSnapshot)
class BalancerConfigSnapshotAdmin(ImmutableRecordAdmin):
    """Admin configuration for BalancerConfigSnapshot."""

    list_display = ("document", "revision", "description", "created_at")
    list_filter = ("document",)


@admin.register(StatBalanceSessionRecord)
class StatBalanceSessionRecordAdmin(admin.ModelAdmin):
    """Admin configuration for StatBalanceSessionRecord."""

    list_display = ("session_id", "strategy", "config_key", "start_time", "end_time")
    list_filter = ("strategy",)
    search_fields = ("session_id", "config_key")


@admin.register(StatBalanceRunRecord)
class StatBalanceRunRecordAdmin(ImmutableRecordAdmin):
    """Admin configuration for StatBalanceRunRecord."""

    list_display = ("run_id", "session", "position", "balance_score", "timestamp")
    list_filter = ("session",)
    search_fields = ("run_id",)
