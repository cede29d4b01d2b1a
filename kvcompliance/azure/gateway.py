"""Capability object through which the scanner and the remediation planner reach Azure.

Every SDK call goes through `_call`, which maps azure-core failures onto the tool's
error taxonomy and retries throttled calls with back-off.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from azure.core.exceptions import (
    AzureError, ClientAuthenticationError, HttpResponseError, ResourceNotFoundError,
    ServiceRequestTimeoutError, ServiceResponseTimeoutError,
)
from azure.keyvault.certificates import CertificateClient
from azure.keyvault.keys import KeyClient
from azure.keyvault.secrets import SecretClient
from azure.mgmt.keyvault import KeyVaultManagementClient
from azure.mgmt.keyvault.models import NetworkRuleSet, VaultPatchParameters, VaultPatchProperties
from azure.mgmt.loganalytics import LogAnalyticsManagementClient
from azure.mgmt.loganalytics.models import Workspace, WorkspaceSku
from azure.mgmt.monitor import MonitorManagementClient
from azure.mgmt.monitor.models import DiagnosticSettingsResource, LogSettings
from azure.mgmt.resource import ResourceManagementClient, SubscriptionClient

from .clients import client_kwargs
from .policy import PolicyInsightsClient
from ..config import Settings
from ..errors import (
    CallTimeoutError, KeyVaultAuditError, SetupError, ThrottledError, VaultPermissionError,
)
from ..remediation.actions import DIAGNOSTIC_SETTING_NAME
from ..scan.models import CertificateSummary, KeySummary, SecretSummary
from ..utils.retry import call_with_retry

LOGGER = logging.getLogger(__name__)

WORKSPACE_PREFIX = "kv-compliance-logs"
WORKSPACE_RETENTION_DAYS = 90


class KeyVaultGateway:
    def __init__(self, credential, settings: Settings):
        self.credential = credential
        self.settings = settings
        sub_id = settings.subscription_id
        kw = client_kwargs(settings)
        self.kv = KeyVaultManagementClient(credential, sub_id, **kw)
        self.monitor = MonitorManagementClient(credential, sub_id, **kw)
        self.loganalytics = LogAnalyticsManagementClient(credential, sub_id, **kw)
        self.resources = ResourceManagementClient(credential, sub_id, **kw)
        self.subscriptions = SubscriptionClient(credential, **kw)
        self.policy = PolicyInsightsClient(credential, timeout=settings.call_timeout)
        self._secret_clients: Dict[str, SecretClient] = {}
        self._key_clients: Dict[str, KeyClient] = {}
        self._cert_clients: Dict[str, CertificateClient] = {}

    # ---------- plumbing ----------
    def _call(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        def attempt():
            try:
                return fn(*args, **kwargs)
            except (ServiceRequestTimeoutError, ServiceResponseTimeoutError) as e:
                raise CallTimeoutError(f"{label}: no answer within {self.settings.call_timeout}s") from e
            except ClientAuthenticationError as e:
                raise VaultPermissionError(f"{label}: {e.message}") from e
            except HttpResponseError as e:
                if e.status_code == 429:
                    raise ThrottledError(f"{label}: throttled", retry_after=_retry_after(e)) from e
                if e.status_code in (401, 403):
                    raise VaultPermissionError(f"{label}: {e.message}") from e
                raise KeyVaultAuditError(f"{label}: {e.message}") from e
            except AzureError as e:
                raise KeyVaultAuditError(f"{label}: {e}") from e
        return call_with_retry(
            attempt,
            attempts=self.settings.max_retries,
            backoff=self.settings.retry_backoff,
            label=label,
        )

    def _secrets(self, vault_uri: str) -> SecretClient:
        if vault_uri not in self._secret_clients:
            self._secret_clients[vault_uri] = SecretClient(vault_url=vault_uri, credential=self.credential, **client_kwargs(self.settings))
        return self._secret_clients[vault_uri]

    def _keys(self, vault_uri: str) -> KeyClient:
        if vault_uri not in self._key_clients:
            self._key_clients[vault_uri] = KeyClient(vault_url=vault_uri, credential=self.credential, **client_kwargs(self.settings))
        return self._key_clients[vault_uri]

    def _certs(self, vault_uri: str) -> CertificateClient:
        if vault_uri not in self._cert_clients:
            self._cert_clients[vault_uri] = CertificateClient(vault_url=vault_uri, credential=self.credential, **client_kwargs(self.settings))
        return self._cert_clients[vault_uri]

    # ---------- scope ----------
    def verify_scope(self, resource_group: Optional[str] = None) -> str:
        """Confirm the subscription (and resource group) resolve; return the subscription display name."""
        sub_id = self.settings.subscription_id
        try:
            sub = self._call("get subscription", self.subscriptions.subscriptions.get, sub_id)
        except KeyVaultAuditError as e:
            raise SetupError(f"Subscription {sub_id} is not reachable: {e}") from e
        if resource_group:
            try:
                exists = self._call("check resource group", self.resources.resource_groups.check_existence, resource_group)
            except KeyVaultAuditError as e:
                raise SetupError(f"Resource group {resource_group} could not be resolved: {e}") from e
            if not exists:
                raise SetupError(f"Resource group {resource_group} does not exist in subscription {sub_id}")
        return getattr(sub, "display_name", "") or ""

    # ---------- reads ----------
    def list_vaults(self, resource_group: Optional[str] = None) -> List[Any]:
        if resource_group:
            return self._call("list vaults", lambda: list(self.kv.vaults.list_by_resource_group(resource_group)))
        return self._call("list vaults", lambda: list(self.kv.vaults.list_by_subscription()))

    def get_vault(self, resource_group: str, name: str):
        return self._call(f"get vault {name}", self.kv.vaults.get, resource_group, name)

    def diagnostic_settings(self, resource_id: str) -> List[Any]:
        def fetch():
            result = self.monitor.diagnostic_settings.list(resource_id)
            # Older API versions return a collection object, newer ones a pager
            items = getattr(result, "value", None)
            return list(items) if items is not None else list(result)
        return self._call("list diagnostic settings", fetch)

    def list_secrets(self, vault_uri: str) -> List[SecretSummary]:
        client = self._secrets(vault_uri)
        props = self._call("list secrets", lambda: list(client.list_properties_of_secrets()))
        return [
            SecretSummary(
                name=p.name,
                enabled=bool(p.enabled),
                expires_on=p.expires_on,
                created_on=p.created_on,
                content_type=p.content_type,
            )
            for p in props
        ]

    def list_keys(self, vault_uri: str) -> List[KeySummary]:
        client = self._keys(vault_uri)
        props = self._call("list keys", lambda: list(client.list_properties_of_keys()))
        out = []
        for p in props:
            key_type = size = curve = None
            try:
                key = self._call(f"get key {p.name}", client.get_key, p.name)
                key_type = str(getattr(key.key_type, "value", key.key_type)) if key.key_type else None
                curve = str(key.key.crv) if getattr(key.key, "crv", None) else None
                n = getattr(key.key, "n", None)
                size = len(n) * 8 if n else None
            except KeyVaultAuditError as e:
                LOGGER.warning("Key %s: details unavailable (%s)", p.name, e)
            out.append(KeySummary(
                name=p.name,
                enabled=bool(p.enabled),
                expires_on=p.expires_on,
                created_on=p.created_on,
                key_type=key_type,
                key_size=size,
                curve=curve,
            ))
        return out

    def list_certificates(self, vault_uri: str) -> List[CertificateSummary]:
        client = self._certs(vault_uri)
        props = self._call("list certificates", lambda: list(client.list_properties_of_certificates()))
        out = []
        for p in props:
            issuer = subject = None
            try:
                policy = self._call(f"get certificate policy {p.name}", client.get_certificate_policy, p.name)
                issuer, subject = policy.issuer_name, policy.subject
            except KeyVaultAuditError as e:
                LOGGER.warning("Certificate %s: policy unavailable (%s)", p.name, e)
            out.append(CertificateSummary(
                name=p.name,
                enabled=bool(p.enabled),
                expires_on=p.expires_on,
                created_on=p.created_on,
                issuer=issuer,
                subject=subject,
                thumbprint=p.x509_thumbprint.hex() if p.x509_thumbprint else None,
            ))
        return out

    def non_compliant_policies(self, resource_id: str) -> List[str]:
        def fetch():
            try:
                return self.policy.non_compliant_policies(resource_id)
            except ClientAuthenticationError as e:
                raise VaultPermissionError(f"policy states: {e.message}") from e
            except requests.Timeout as e:
                raise CallTimeoutError(f"policy states: no answer within {self.settings.call_timeout}s") from e
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status == 429:
                    raise ThrottledError("policy states: throttled") from e
                if status in (401, 403):
                    raise VaultPermissionError(f"policy states: {e}") from e
                raise KeyVaultAuditError(f"policy states: {e}") from e
            except requests.RequestException as e:
                raise KeyVaultAuditError(f"policy states: {e}") from e
        return call_with_retry(fetch, attempts=self.settings.max_retries, backoff=self.settings.retry_backoff, label="policy states")

    # ---------- writes ----------
    def _patch_vault(self, resource_group: str, name: str, label: str, **props: Any) -> None:
        params = VaultPatchParameters(properties=VaultPatchProperties(**props))
        self._call(f"{label} on {name}", self.kv.vaults.update, resource_group, name, params)

    def enable_soft_delete(self, resource_group: str, name: str) -> None:
        self._patch_vault(resource_group, name, "enable soft delete", enable_soft_delete=True)

    def enable_purge_protection(self, resource_group: str, name: str) -> None:
        self._patch_vault(resource_group, name, "enable purge protection", enable_purge_protection=True)

    def enable_rbac(self, resource_group: str, name: str) -> None:
        self._patch_vault(resource_group, name, "enable RBAC", enable_rbac_authorization=True)

    def restrict_network(self, resource_group: str, name: str) -> None:
        acls = NetworkRuleSet(default_action="Deny", bypass="AzureServices")
        self._patch_vault(resource_group, name, "restrict network", network_acls=acls)

    def ensure_log_workspace(self, resource_group: str, location: str) -> str:
        """Return the id of the tool's Log Analytics workspace in the group, creating it when absent."""
        ws_name = f"{WORKSPACE_PREFIX}-{location}".lower()

        def existing():
            try:
                return self.loganalytics.workspaces.get(resource_group, ws_name)
            except ResourceNotFoundError:
                return None

        ws = self._call(f"get workspace {ws_name}", existing)
        if ws is not None:
            return ws.id
        LOGGER.info("Creating Log Analytics workspace %s in %s", ws_name, resource_group)
        ws = self._call(
            f"create workspace {ws_name}",
            lambda: self.loganalytics.workspaces.begin_create_or_update(
                resource_group,
                ws_name,
                Workspace(location=location, sku=WorkspaceSku(name="PerGB2018"), retention_in_days=WORKSPACE_RETENTION_DAYS),
            ).result(),
        )
        return ws.id

    def create_diagnostic_setting(self, resource_id: str, workspace_id: str) -> None:
        setting = DiagnosticSettingsResource(
            workspace_id=workspace_id,
            logs=[LogSettings(category="AuditEvent", enabled=True)],
        )
        self._call(
            "create diagnostic setting",
            self.monitor.diagnostic_settings.create_or_update,
            resource_uri=resource_id,
            name=DIAGNOSTIC_SETTING_NAME,
            parameters=setting,
        )

    def set_secret_expiration(self, vault_uri: str, name: str, expires_on: datetime) -> None:
        client = self._secrets(vault_uri)
        self._call(f"set expiration on secret {name}", client.update_secret_properties, name, expires_on=expires_on)

    def set_key_expiration(self, vault_uri: str, name: str, expires_on: datetime) -> None:
        client = self._keys(vault_uri)
        self._call(f"set expiration on key {name}", client.update_key_properties, name, expires_on=expires_on)


def _retry_after(e: HttpResponseError) -> Optional[float]:
    response = getattr(e, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After") if hasattr(headers, "get") else None
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None
