"""In-memory stand-ins for the Azure gateway and the records it returns."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from types import SimpleNamespace

from kvcompliance.errors import KeyVaultAuditError, VaultPermissionError
from kvcompliance.scan.models import KeySummary, NetworkConfig, SecretSummary, VaultSnapshot

SUBSCRIPTION = "00000000-0000-0000-0000-000000000001"
NOW = datetime(2025, 10, 21, 3, 0, tzinfo=timezone.utc)
LATER = datetime(2026, 1, 1, tzinfo=timezone.utc)


def vault_id(name: str, rg: str = "rg-app") -> str:
    return f"/subscriptions/{SUBSCRIPTION}/resourceGroups/{rg}/providers/Microsoft.KeyVault/vaults/{name}"


def make_vault(
    name: str,
    *,
    rg: str = "rg-app",
    location: str = "westeurope",
    soft_delete: bool = True,
    purge_protection: bool = True,
    rbac: bool = True,
    default_action: str = "Deny",
    ip_rules=(),
    vnet_rules=(),
    with_uri: bool = True,
):
    """Management-plane vault record shaped like azure.mgmt.keyvault.models.Vault."""
    acls = SimpleNamespace(
        default_action=default_action,
        bypass="AzureServices",
        ip_rules=[SimpleNamespace(value=ip) for ip in ip_rules],
        virtual_network_rules=[SimpleNamespace(id=v) for v in vnet_rules],
    )
    props = SimpleNamespace(
        vault_uri=f"https://{name}.vault.azure.net/" if with_uri else None,
        enable_soft_delete=soft_delete,
        enable_purge_protection=purge_protection,
        enable_rbac_authorization=rbac,
        network_acls=acls,
        public_network_access="Enabled",
    )
    return SimpleNamespace(name=name, id=vault_id(name, rg), location=location, tags={"env": "test"}, properties=props)


def make_snapshot(name: str = "kv-app", **overrides) -> VaultSnapshot:
    """A fully compliant snapshot unless overridden."""
    base = VaultSnapshot(
        name=name,
        resource_id=vault_id(name),
        resource_group="rg-app",
        location="westeurope",
        vault_uri=f"https://{name}.vault.azure.net/",
        soft_delete_enabled=True,
        purge_protection_enabled=True,
        rbac_enabled=True,
        network=NetworkConfig(default_action="Deny", bypass="AzureServices"),
        diagnostic_logging=True,
        secrets=(SecretSummary("db-password", expires_on=LATER),),
        keys=(KeySummary("signing", expires_on=LATER, key_type="RSA", key_size=2048),),
    )
    return replace(base, **overrides)


class FakeGateway:
    """Records mutating calls and applies them to the stored vault records.

    `denied` holds collection names ("diagnostic settings", "secrets", "keys",
    "certificates", "policy") whose reads raise VaultPermissionError. `failing` holds
    mutating method names that raise KeyVaultAuditError.
    """

    def __init__(self, vaults=(), *, logging=None, secrets=None, keys=None, policies=None, denied=(), failing=()):
        self.vaults = {v.name: v for v in vaults}
        self.logging = dict(logging or {})
        self.secrets = {k: list(v) for k, v in (secrets or {}).items()}
        self.keys = {k: list(v) for k, v in (keys or {}).items()}
        self.policies = dict(policies or {})
        self.denied = set(denied)
        self.failing = set(failing)
        self.mutations = []
        self.broken_vaults = set()

    def _name_from_uri(self, uri: str) -> str:
        return uri.split("//", 1)[1].split(".", 1)[0]

    def _deny(self, what: str) -> None:
        if what in self.denied:
            raise VaultPermissionError(f"{what}: Forbidden")

    def _mutate(self, op: str, target: str) -> None:
        if op in self.failing:
            raise KeyVaultAuditError(f"{op} on {target}: Conflict")
        self.mutations.append((op, target))

    # reads
    def list_vaults(self, resource_group=None):
        vaults = list(self.vaults.values())
        if resource_group:
            vaults = [v for v in vaults if f"/resourceGroups/{resource_group}/" in v.id]
        return vaults

    def get_vault(self, resource_group, name):
        return self.vaults[name]

    def diagnostic_settings(self, resource_id):
        name = resource_id.rsplit("/", 1)[-1]
        if name in self.broken_vaults:
            raise KeyVaultAuditError(f"vault {name}: InternalServerError")
        self._deny("diagnostic settings")
        if not self.logging.get(name, True):
            return []
        return [SimpleNamespace(name="audit", logs=[SimpleNamespace(category="AuditEvent", enabled=True)])]

    def list_secrets(self, vault_uri):
        self._deny("secrets")
        return list(self.secrets.get(self._name_from_uri(vault_uri), []))

    def list_keys(self, vault_uri):
        self._deny("keys")
        return list(self.keys.get(self._name_from_uri(vault_uri), []))

    def list_certificates(self, vault_uri):
        self._deny("certificates")
        return []

    def non_compliant_policies(self, resource_id):
        self._deny("policy")
        return list(self.policies.get(resource_id.rsplit("/", 1)[-1], []))

    # writes
    def enable_soft_delete(self, resource_group, name):
        self._mutate("enable_soft_delete", name)
        self.vaults[name].properties.enable_soft_delete = True

    def enable_purge_protection(self, resource_group, name):
        self._mutate("enable_purge_protection", name)
        self.vaults[name].properties.enable_purge_protection = True

    def enable_rbac(self, resource_group, name):
        self._mutate("enable_rbac", name)
        self.vaults[name].properties.enable_rbac_authorization = True

    def restrict_network(self, resource_group, name):
        self._mutate("restrict_network", name)
        self.vaults[name].properties.network_acls.default_action = "Deny"

    def ensure_log_workspace(self, resource_group, location):
        self._mutate("ensure_log_workspace", resource_group)
        return f"/subscriptions/{SUBSCRIPTION}/resourceGroups/{resource_group}/providers/Microsoft.OperationalInsights/workspaces/kv-compliance-logs-{location}"

    def create_diagnostic_setting(self, resource_id, workspace_id):
        name = resource_id.rsplit("/", 1)[-1]
        self._mutate("create_diagnostic_setting", name)
        self.logging[name] = True

    def set_secret_expiration(self, vault_uri, name, expires_on):
        self._mutate("set_secret_expiration", name)
        vault = self._name_from_uri(vault_uri)
        self.secrets[vault] = [replace(s, expires_on=expires_on) if s.name == name else s for s in self.secrets.get(vault, [])]

    def set_key_expiration(self, vault_uri, name, expires_on):
        self._mutate("set_key_expiration", name)
        vault = self._name_from_uri(vault_uri)
        self.keys[vault] = [replace(k, expires_on=expires_on) if k.name == name else k for k in self.keys.get(vault, [])]
