"""KeyVaultGateway error mapping and record conversion, with the SDK clients stubbed."""
from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests
from azure.core.exceptions import (
    AzureError, ClientAuthenticationError, HttpResponseError, ResourceNotFoundError, ServiceResponseTimeoutError,
)

from kvcompliance.azure import policy
from kvcompliance.azure.gateway import KeyVaultGateway, _retry_after
from kvcompliance.azure.policy import PolicyInsightsClient
from kvcompliance.config import Settings
from kvcompliance.errors import (
    CallTimeoutError, KeyVaultAuditError, SetupError, ThrottledError, VaultPermissionError,
)

from fakes import NOW, SUBSCRIPTION, vault_id

VAULT_URI = "https://kv-app.vault.azure.net/"


class FakeCredential:
    def __init__(self):
        self.scopes = []

    def get_token(self, *scopes, **kwargs):
        self.scopes.extend(scopes)
        return SimpleNamespace(token="token-123", expires_on=4102444800)


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload or {}
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error", response=self)

    def json(self):
        return self.payload


def http_error(status, headers=None):
    e = HttpResponseError(message=f"status {status}")
    e.status_code = status
    e.response = SimpleNamespace(status_code=status, headers=headers or {})
    return e


def raising(exc):
    def fn(*args, **kwargs):
        raise exc
    return fn


@pytest.fixture
def gateway():
    settings = Settings(subscription_id=SUBSCRIPTION, max_retries=2, retry_backoff=0)
    return KeyVaultGateway(FakeCredential(), settings)


@pytest.mark.parametrize("exc, expected", [
    (ServiceResponseTimeoutError("read timed out"), CallTimeoutError),
    (ClientAuthenticationError(message="token expired"), VaultPermissionError),
    (http_error(401), VaultPermissionError),
    (http_error(403), VaultPermissionError),
    (http_error(500), KeyVaultAuditError),
    (AzureError("connection reset"), KeyVaultAuditError),
])
def test_sdk_errors_map_onto_tool_errors(gateway, exc, expected):
    with pytest.raises(KeyVaultAuditError) as info:
        gateway._call("list vaults", raising(exc))

    assert info.type is expected
    assert str(info.value).startswith("list vaults")


def test_timeout_message_names_the_limit(gateway):
    with pytest.raises(CallTimeoutError, match="no answer within 30.0s"):
        gateway._call("list secrets", raising(ServiceResponseTimeoutError("slow")))


def test_throttling_is_retried_then_surfaces(gateway):
    calls = []

    def throttled():
        calls.append(1)
        raise http_error(429, {"Retry-After": "0"})

    with pytest.raises(ThrottledError) as info:
        gateway._call("list vaults", throttled)

    assert len(calls) == 2
    assert info.value.retry_after == 0.0


def test_throttled_call_succeeds_on_retry(gateway):
    answers = [http_error(429), ["kv-app"]]

    def flaky():
        answer = answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    assert gateway._call("list vaults", flaky) == ["kv-app"]


def test_retry_after_header_parsing():
    assert _retry_after(http_error(429, {"Retry-After": "7"})) == 7.0
    assert _retry_after(http_error(429, {"Retry-After": "soon"})) is None
    assert _retry_after(http_error(429)) is None
    assert _retry_after(HttpResponseError(message="no response")) is None


def test_verify_scope_returns_display_name(gateway):
    gateway.subscriptions = SimpleNamespace(subscriptions=SimpleNamespace(get=lambda sub: SimpleNamespace(display_name="Prod")))
    gateway.resources = SimpleNamespace(resource_groups=SimpleNamespace(check_existence=lambda rg: rg == "rg-app"))

    assert gateway.verify_scope("rg-app") == "Prod"
    with pytest.raises(SetupError, match="rg-nope does not exist"):
        gateway.verify_scope("rg-nope")


def test_verify_scope_unreachable_subscription(gateway):
    gateway.subscriptions = SimpleNamespace(subscriptions=SimpleNamespace(get=raising(http_error(404))))

    with pytest.raises(SetupError, match="is not reachable"):
        gateway.verify_scope()


def test_list_vaults_by_scope(gateway):
    seen = []
    gateway.kv = SimpleNamespace(vaults=SimpleNamespace(
        list_by_subscription=lambda: iter(["kv-a", "kv-b"]),
        list_by_resource_group=lambda rg: seen.append(rg) or iter(["kv-a"]),
    ))

    assert gateway.list_vaults() == ["kv-a", "kv-b"]
    assert gateway.list_vaults("rg-app") == ["kv-a"]
    assert seen == ["rg-app"]


@pytest.mark.parametrize("shape", ["collection", "pager"])
def test_diagnostic_settings_accepts_both_result_shapes(gateway, shape):
    items = [SimpleNamespace(name="audit"), SimpleNamespace(name="metrics")]

    def list_settings(resource_id):
        return SimpleNamespace(value=items) if shape == "collection" else iter(items)

    gateway.monitor = SimpleNamespace(diagnostic_settings=SimpleNamespace(list=list_settings))

    assert [s.name for s in gateway.diagnostic_settings(vault_id("kv-app"))] == ["audit", "metrics"]


def test_list_secrets_converts_properties(gateway):
    props = SimpleNamespace(name="db", enabled=True, expires_on=None, created_on=NOW, content_type="text/plain")
    gateway._secret_clients[VAULT_URI] = SimpleNamespace(list_properties_of_secrets=lambda: iter([props]))

    [secret] = gateway.list_secrets(VAULT_URI)

    assert (secret.name, secret.enabled, secret.expires_on, secret.created_on) == ("db", True, None, NOW)
    assert secret.content_type == "text/plain"


class FakeKeyClient:
    def list_properties_of_keys(self):
        return iter([
            SimpleNamespace(name=n, enabled=True, expires_on=None, created_on=NOW) for n in ("rsa", "ec", "hidden")
        ])

    def get_key(self, name):
        if name == "hidden":
            raise http_error(403)
        if name == "rsa":
            return SimpleNamespace(key_type="RSA", key=SimpleNamespace(n=bytes(256), crv=None))
        return SimpleNamespace(key_type=SimpleNamespace(value="EC"), key=SimpleNamespace(n=None, crv="P-256"))


def test_list_keys_reads_type_size_and_curve(gateway, caplog):
    gateway._key_clients[VAULT_URI] = FakeKeyClient()

    keys = {k.name: k for k in gateway.list_keys(VAULT_URI)}

    assert (keys["rsa"].key_type, keys["rsa"].key_size, keys["rsa"].curve) == ("RSA", 2048, None)
    assert (keys["ec"].key_type, keys["ec"].key_size, keys["ec"].curve) == ("EC", None, "P-256")
    assert (keys["hidden"].key_type, keys["hidden"].key_size) == (None, None)
    assert "Key hidden: details unavailable" in caplog.text


def test_list_certificates_reads_policy_and_thumbprint(gateway):
    props = SimpleNamespace(name="tls", enabled=True, expires_on=NOW, created_on=None, x509_thumbprint=bytes.fromhex("01ab"))
    gateway._cert_clients[VAULT_URI] = SimpleNamespace(
        list_properties_of_certificates=lambda: iter([props]),
        get_certificate_policy=lambda name: SimpleNamespace(issuer_name="Self", subject="CN=app"),
    )

    [cert] = gateway.list_certificates(VAULT_URI)

    assert (cert.issuer, cert.subject, cert.thumbprint) == ("Self", "CN=app", "01ab")


def test_patch_calls_send_vault_properties(gateway):
    updates = []
    gateway.kv = SimpleNamespace(vaults=SimpleNamespace(update=lambda rg, name, params: updates.append((rg, name, params))))

    gateway.enable_soft_delete("rg-app", "kv-app")
    gateway.restrict_network("rg-app", "kv-app")

    assert [(rg, name) for rg, name, _ in updates] == [("rg-app", "kv-app"), ("rg-app", "kv-app")]
    assert updates[0][2].properties.enable_soft_delete is True
    assert updates[1][2].properties.network_acls.default_action == "Deny"
    assert updates[1][2].properties.network_acls.bypass == "AzureServices"


def test_ensure_log_workspace_creates_when_missing(gateway):
    created = []

    def create(rg, name, workspace):
        created.append((rg, name, workspace))
        return SimpleNamespace(result=lambda: SimpleNamespace(id="/workspaces/new"))

    gateway.loganalytics = SimpleNamespace(workspaces=SimpleNamespace(
        get=raising(ResourceNotFoundError(message="not found")),
        begin_create_or_update=create,
    ))

    assert gateway.ensure_log_workspace("rg-app", "WestEurope") == "/workspaces/new"
    assert created[0][1] == "kv-compliance-logs-westeurope"
    assert created[0][2].retention_in_days == 90


def test_policy_client_posts_filter_and_collects_names(monkeypatch):
    sent = {}

    def post(url, headers=None, params=None, timeout=None):
        sent.update(url=url, headers=headers, params=params, timeout=timeout)
        return FakeResponse({"value": [
            {"policyDefinitionName": "kv-deny-public"},
            {"policyAssignmentName": "kv-logs"},
            {"policyDefinitionName": "kv-deny-public"},
            {},
        ]})

    monkeypatch.setattr(policy.requests, "post", post)
    credential = FakeCredential()

    names = PolicyInsightsClient(credential, timeout=5).non_compliant_policies(vault_id("kv-app"))

    assert names == ["kv-deny-public", "kv-logs"]
    assert sent["url"] == f"https://management.azure.com{vault_id('kv-app')}/providers/Microsoft.PolicyInsights/policyStates/latest/queryResults"
    assert sent["headers"] == {"Authorization": "Bearer token-123"}
    assert sent["params"]["$filter"] == "complianceState eq 'NonCompliant'"
    assert sent["timeout"] == 5
    assert credential.scopes == ["https://management.azure.com/.default"]


@pytest.mark.parametrize("status, expected", [
    (403, VaultPermissionError),
    (429, ThrottledError),
    (500, KeyVaultAuditError),
])
def test_policy_http_errors_are_mapped(gateway, monkeypatch, status, expected):
    monkeypatch.setattr(policy.requests, "post", lambda *a, **kw: FakeResponse(status_code=status))

    with pytest.raises(KeyVaultAuditError) as info:
        gateway.non_compliant_policies(vault_id("kv-app"))

    assert info.type is expected


def test_policy_timeout_is_mapped(gateway, monkeypatch):
    monkeypatch.setattr(policy.requests, "post", raising(requests.Timeout("read timed out")))

    with pytest.raises(CallTimeoutError):
        gateway.non_compliant_policies(vault_id("kv-app"))


def test_policy_token_failure_is_a_permission_error(gateway):
    gateway.policy = PolicyInsightsClient(SimpleNamespace(get_token=raising(ClientAuthenticationError(message="no login"))))

    with pytest.raises(VaultPermissionError, match="no login"):
        gateway.non_compliant_policies(vault_id("kv-app"))
