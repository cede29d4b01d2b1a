"""Reading vault records into snapshots, and the scan loop around it."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from kvcompliance import runner
from kvcompliance.errors import CallTimeoutError, SetupError
from kvcompliance.scan.inspector import inspect_vault, sort_vaults
from kvcompliance.scan.models import SecretSummary

from fakes import NOW, SUBSCRIPTION, FakeGateway, make_vault


def test_inspect_reads_flags_and_objects():
    vault = make_vault("kv-app", soft_delete=False, rbac=False)
    gw = FakeGateway([vault], secrets={"kv-app": [SecretSummary("s1")]}, policies={"kv-app": ["kv-deny-public"]})

    snapshot = inspect_vault(gw, vault)

    assert snapshot.resource_group == "rg-app"
    assert snapshot.vault_uri == "https://kv-app.vault.azure.net/"
    assert snapshot.soft_delete_enabled is False
    assert snapshot.purge_protection_enabled is True
    assert snapshot.rbac_enabled is False
    assert snapshot.diagnostic_logging is True
    assert [s.name for s in snapshot.secrets] == ["s1"]
    assert snapshot.non_compliant_policies == ("kv-deny-public",)
    assert snapshot.notes == ()


def test_denied_reads_leave_notes_instead_of_failing():
    vault = make_vault("kv-app")
    gw = FakeGateway([vault], denied={"secrets", "diagnostic settings", "policy"})

    snapshot = inspect_vault(gw, vault)

    assert snapshot.secrets == ()
    assert snapshot.diagnostic_logging is None
    assert snapshot.non_compliant_policies is None
    assert "could not enumerate secrets: permission denied" in snapshot.notes
    assert "could not enumerate diagnostic settings: permission denied" in snapshot.notes
    assert len(snapshot.notes) == 3


def test_vault_without_uri_skips_object_listing():
    vault = make_vault("kv-app", with_uri=False)

    snapshot = inspect_vault(FakeGateway([vault]), vault)

    assert snapshot.notes == ("could not enumerate objects: vault has no data-plane URI",)


def test_network_rules_are_parsed():
    vault = make_vault("kv-app", default_action="Allow", ip_rules=("203.0.113.4",), vnet_rules=("/subnets/a",))

    net = inspect_vault(FakeGateway([vault]), vault).network

    assert net.default_action == "Allow"
    assert net.ip_rules == ("203.0.113.4",)
    assert net.vnet_rules == ("/subnets/a",)
    assert net.firewall_configured is True


def test_missing_network_acls_mean_open_network():
    vault = make_vault("kv-app")
    vault.properties.network_acls = None

    net = inspect_vault(FakeGateway([vault]), vault).network

    assert net.default_action == "Allow"
    assert net.firewall_configured is False


def test_sort_vaults_case_insensitive():
    vaults = [SimpleNamespace(name="b"), SimpleNamespace(name="A"), SimpleNamespace(name="c")]

    assert [v.name for v in sort_vaults(vaults)] == ["A", "b", "c"]


def test_scan_vaults_sorts_and_tolerates_failed_reads():
    gw = FakeGateway([make_vault("kv-zeta"), make_vault("kv-alpha", soft_delete=False), make_vault("kv-broken")])
    gw.broken_vaults.add("kv-broken")

    result = runner.scan_vaults(gw, subscription_id=SUBSCRIPTION, now=NOW)

    assert [v.snapshot.name for v in result.vaults] == ["kv-alpha", "kv-broken", "kv-zeta"]
    broken = result.vaults[1].snapshot
    assert broken.diagnostic_logging is None
    assert any("InternalServerError" in n for n in broken.notes)
    assert result.summary.total_vaults == 3
    assert result.summary.compliant_vaults == 2
    assert result.scanned_at == NOW


def test_scan_vaults_filters_by_name_and_reports_missing():
    gw = FakeGateway([make_vault("kv-a"), make_vault("kv-b")])

    result = runner.scan_vaults(gw, subscription_id=SUBSCRIPTION, vault_names=["kv-b", "kv-missing"])

    assert [v.snapshot.name for v in result.vaults] == ["kv-b"]
    assert [(e.vault, e.message) for e in result.errors] == [("kv-missing", "vault not found in scope")]
    assert result.summary.errors == 1


def test_scan_vaults_resource_group_scope():
    gw = FakeGateway([make_vault("kv-a", rg="rg-one"), make_vault("kv-b", rg="rg-two")])

    result = runner.scan_vaults(gw, subscription_id=SUBSCRIPTION, resource_group="rg-two")

    assert [v.snapshot.name for v in result.vaults] == ["kv-b"]
    assert result.resource_group == "rg-two"


def test_require_vaults_with_empty_scope_is_fatal():
    with pytest.raises(SetupError):
        runner.scan_vaults(FakeGateway([]), subscription_id=SUBSCRIPTION, require_vaults=True)


def test_empty_scope_without_require_vaults_is_allowed():
    result = runner.scan_vaults(FakeGateway([]), subscription_id=SUBSCRIPTION)

    assert result.vaults == []
    assert result.summary.total_vaults == 0


def test_vault_that_cannot_be_inspected_becomes_scan_error(monkeypatch):
    gw = FakeGateway([make_vault("kv-a"), make_vault("kv-b")])
    real_inspect = runner.inspect_vault

    def flaky(gateway, vault):
        if vault.name == "kv-a":
            raise CallTimeoutError("get vault kv-a: no answer within 30.0s")
        return real_inspect(gateway, vault)

    monkeypatch.setattr(runner, "inspect_vault", flaky)

    result = runner.scan_vaults(gw, subscription_id=SUBSCRIPTION)

    assert [v.snapshot.name for v in result.vaults] == ["kv-b"]
    assert result.errors[0].vault == "kv-a"
    assert "no answer" in result.errors[0].message


def test_unexpected_inspection_error_is_recorded_and_scan_continues(monkeypatch):
    gw = FakeGateway([make_vault("kv-a"), make_vault("kv-b")])
    real_inspect = runner.inspect_vault

    def broken(gateway, vault):
        if vault.name == "kv-a":
            raise ValueError("vault record has no properties")
        return real_inspect(gateway, vault)

    monkeypatch.setattr(runner, "inspect_vault", broken)

    result = runner.scan_vaults(gw, subscription_id=SUBSCRIPTION)

    assert [v.snapshot.name for v in result.vaults] == ["kv-b"]
    assert result.errors[0].vault == "kv-a"
    assert result.errors[0].message == "ValueError: vault record has no properties"
    assert result.summary.errors == 1
