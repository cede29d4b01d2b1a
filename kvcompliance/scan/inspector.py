from __future__ import annotations
import logging
from typing import Any, Iterable, List, Optional, Tuple

from .models import NetworkConfig, VaultSnapshot, resource_group_from_id
from ..errors import CallTimeoutError, KeyVaultAuditError, VaultPermissionError

LOGGER = logging.getLogger(__name__)


def inspect_vault(gateway, vault: Any) -> VaultSnapshot:
    """Read one vault into a VaultSnapshot.

    `vault` is the management-plane record returned by enumeration. Denied or timed-out
    reads of secrets, keys, certificates, diagnostic settings or policy state leave the
    matching field empty/unknown and add a note instead of failing the vault.
    """
    props = getattr(vault, "properties", None)
    resource_id = getattr(vault, "id", "") or ""
    notes: List[str] = []
    vault_uri = getattr(props, "vault_uri", "") or ""

    diagnostic_logging = _read(
        notes, vault.name, "diagnostic settings",
        lambda: _logging_enabled(gateway.diagnostic_settings(resource_id)),
    )

    secrets: Tuple = ()
    keys: Tuple = ()
    certificates: Tuple = ()
    if vault_uri:
        secrets = tuple(_read(notes, vault.name, "secrets", lambda: gateway.list_secrets(vault_uri)) or ())
        keys = tuple(_read(notes, vault.name, "keys", lambda: gateway.list_keys(vault_uri)) or ())
        certificates = tuple(_read(notes, vault.name, "certificates", lambda: gateway.list_certificates(vault_uri)) or ())
    else:
        notes.append("could not enumerate objects: vault has no data-plane URI")

    policies = _read(notes, vault.name, "policy compliance state", lambda: gateway.non_compliant_policies(resource_id))

    return VaultSnapshot(
        name=vault.name,
        resource_id=resource_id,
        resource_group=resource_group_from_id(resource_id),
        location=getattr(vault, "location", "") or "",
        vault_uri=vault_uri,
        tags=dict(getattr(vault, "tags", None) or {}),
        soft_delete_enabled=bool(getattr(props, "enable_soft_delete", False)),
        purge_protection_enabled=bool(getattr(props, "enable_purge_protection", False)),
        rbac_enabled=bool(getattr(props, "enable_rbac_authorization", False)),
        network=_network(props),
        diagnostic_logging=diagnostic_logging,
        secrets=secrets,
        keys=keys,
        certificates=certificates,
        non_compliant_policies=tuple(policies) if policies is not None else None,
        notes=tuple(notes),
    )


def _read(notes: List[str], vault_name: str, what: str, fn):
    try:
        return fn()
    except VaultPermissionError as e:
        LOGGER.warning("Vault %s: could not enumerate %s (permission denied: %s)", vault_name, what, e)
        notes.append(f"could not enumerate {what}: permission denied")
    except CallTimeoutError as e:
        LOGGER.warning("Vault %s: could not enumerate %s (%s)", vault_name, what, e)
        notes.append(f"could not enumerate {what}: timed out")
    except KeyVaultAuditError as e:
        LOGGER.warning("Vault %s: could not enumerate %s (%s)", vault_name, what, e)
        notes.append(f"could not enumerate {what}: {e}")
    return None


def _logging_enabled(settings: Iterable[Any]) -> bool:
    for d in settings:
        for log in getattr(d, "logs", None) or []:
            if getattr(log, "enabled", False):
                return True
    return False


def _network(props: Any) -> NetworkConfig:
    acls = getattr(props, "network_acls", None)
    public_access = _text(getattr(props, "public_network_access", None))
    if acls is None:
        # No rule set at all means the vault accepts traffic from every network
        return NetworkConfig(default_action="Allow", public_network_access=public_access)
    return NetworkConfig(
        default_action=_text(getattr(acls, "default_action", None)) or "Allow",
        bypass=_text(getattr(acls, "bypass", None)),
        ip_rules=tuple(r.value for r in (getattr(acls, "ip_rules", None) or [])),
        vnet_rules=tuple(r.id for r in (getattr(acls, "virtual_network_rules", None) or [])),
        public_network_access=public_access,
    )


def sort_vaults(vaults: Iterable[Any]) -> List[Any]:
    return sorted(vaults, key=lambda v: (v.name or "").lower())


def _text(value: Any) -> Optional[str]:
    """SDK enums arrive either as plain strings or as str-Enum members."""
    if value is None:
        return None
    return str(getattr(value, "value", value))
