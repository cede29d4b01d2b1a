"""Read-only facts about a Key Vault captured during one scan pass."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class SecretSummary:
    name: str
    enabled: bool = True
    expires_on: Optional[datetime] = None
    created_on: Optional[datetime] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class KeySummary:
    name: str
    enabled: bool = True
    expires_on: Optional[datetime] = None
    created_on: Optional[datetime] = None
    key_type: Optional[str] = None
    key_size: Optional[int] = None
    curve: Optional[str] = None


@dataclass(frozen=True)
class CertificateSummary:
    name: str
    enabled: bool = True
    expires_on: Optional[datetime] = None
    created_on: Optional[datetime] = None
    issuer: Optional[str] = None
    subject: Optional[str] = None
    thumbprint: Optional[str] = None


@dataclass(frozen=True)
class NetworkConfig:
    default_action: str = "Allow"
    bypass: Optional[str] = None
    ip_rules: Tuple[str, ...] = ()
    vnet_rules: Tuple[str, ...] = ()
    public_network_access: Optional[str] = None

    @property
    def firewall_configured(self) -> bool:
        # Open only when Allow and no rule of either kind exists
        return not (self.default_action.lower() == "allow" and not self.ip_rules and not self.vnet_rules)


@dataclass(frozen=True)
class VaultSnapshot:
    name: str
    resource_id: str
    resource_group: str
    location: str
    vault_uri: str = ""
    tags: Dict[str, str] = field(default_factory=dict, hash=False)
    soft_delete_enabled: bool = False
    purge_protection_enabled: bool = False
    rbac_enabled: bool = False
    network: NetworkConfig = field(default_factory=NetworkConfig)
    diagnostic_logging: Optional[bool] = None  # None when it could not be read
    secrets: Tuple[SecretSummary, ...] = ()
    keys: Tuple[KeySummary, ...] = ()
    certificates: Tuple[CertificateSummary, ...] = ()
    non_compliant_policies: Optional[Tuple[str, ...]] = None
    notes: Tuple[str, ...] = ()

    @property
    def secrets_without_expiration(self) -> Tuple[SecretSummary, ...]:
        return tuple(s for s in self.secrets if s.expires_on is None)

    @property
    def keys_without_expiration(self) -> Tuple[KeySummary, ...]:
        return tuple(k for k in self.keys if k.expires_on is None)


def resource_group_from_id(resource_id: str) -> str:
    """Pull the resource group segment out of an ARM resource id."""
    parts = [p for p in (resource_id or "").split("/") if p]
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[i + 1]
    return ""
