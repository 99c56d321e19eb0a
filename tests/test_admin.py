"""Integration tests for balancer admin registrations."""

from __future__ import annotations

import json

import pytest
from django.contrib import admin
from django.test import RequestFactory
from django.urls import reverse

from balancer.models import (
    BalancerConfigDocument,
    BalancerConfigSnapshot,
    StatBalanceRunRecord,
    StatBalanceSessionRecord,
)
from balancer.services import (
    ConfigDocumentError,
    StaleConfigRevisionError,
    list_config_history,
    load_config,
    save_config,
    save_config_payload,
)
from balancing.codec import config_content_hash, encode_config
from balancing.defaults import DEFAULT_CONFIG

pytestmark = pytest.mark.integration


def test_every_model_is_registered() -> None:
    """Configuration and history models are visible in the admin."""

    for model in (BalancerConfigDocument, BalancerConfigSnapshot, StatBalanceSessionRecord, StatBalanceRunRecord):
        assert admin.site.is_registered(model)


@pytest.mark.parametrize("model", [BalancerConfigSnapshot, StatBalanceRunRecord])
def test_append_only_records_are_read_only(model) -> None:
    """Snapshots and runs can be neither added nor edited through the admin."""

    request = RequestFactory().get("/admin/")
    model_admin = admin.site._registry[model]

    assert not model_admin.has_add_permission(request)
    assert not model_admin.has_change_permission(request)


def _change_url(document: BalancerConfigDocument) -> str:
    return reverse("admin:balancer_balancerconfigdocument_change", args=[document.pk])


@pytest.mark.django_db
def test_admin_edit_goes_through_the_config_store(admin_client) -> None:
    """Editing the payload bumps the revision, rehashes and snapshots."""

    load_config("default")
    document = BalancerConfigDocument.objects.get(key="default")
    tuned = DEFAULT_CONFIG.with_weights({"hp": 9.0})

    response = admin_client.post(
        _change_url(document),
        {"payload": json.dumps(encode_config(tuned)), "expected_revision": "1"},
    )

    assert response.status_code == 302
    document.refresh_from_db()
    assert document.revision == 2
    assert document.content_hash == config_content_hash(tuned)
    assert load_config("default").config.stats["hp"].weight == 9.0

    history = list_config_history("default")
    assert len(history) == 1
    assert history[0].description == "Admin edit"
    assert history[0].content_hash == config_content_hash(DEFAULT_CONFIG)


@pytest.mark.django_db
def test_admin_edit_against_stale_revision_is_rejected(admin_client) -> None:
    """A form opened before another save cannot overwrite it."""

    load_config("default")
    save_config("default", DEFAULT_CONFIG.with_weights({"hp": 0.5}))
    document = BalancerConfigDocument.objects.get(key="default")

    response = admin_client.post(
        _change_url(document),
        {"payload": json.dumps(encode_config(DEFAULT_CONFIG)), "expected_revision": "1"},
    )

    assert response.status_code == 200
    document.refresh_from_db()
    assert document.revision == 2
    assert load_config("default").config.stats["hp"].weight == 0.5


@pytest.mark.django_db
def test_admin_rejects_invalid_payload(admin_client) -> None:
    """Payloads that do not decode are reported on the form and not stored."""

    load_config("default")
    document = BalancerConfigDocument.objects.get(key="default")
    payload = encode_config(DEFAULT_CONFIG)
    payload["stats"]["hp"]["min"] = payload["stats"]["hp"]["max"] + 1

    response = admin_client.post(_change_url(document), {"payload": json.dumps(payload), "expected_revision": "1"})

    assert response.status_code == 200
    assert "min &gt; max" in response.content.decode()
    document.refresh_from_db()
    assert document.revision == 1
    assert list_config_history("default") == []


@pytest.mark.django_db
def test_save_config_payload_validates_and_versions() -> None:
    """Raw payloads are decoded before they reach the store."""

    load_config("default")

    saved = save_config_payload("default", encode_config(DEFAULT_CONFIG.with_weights({"hp": 2.0})))

    assert saved.revision == 2
    with pytest.raises(StaleConfigRevisionError):
        save_config_payload("default", encode_config(DEFAULT_CONFIG), expected_revision=1)
    with pytest.raises(ConfigDocumentError):
        save_config_payload("default", {"stats": "nope"})
