from __future__ import annotations
from typing import Any, Dict

from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from ..config import Settings
from ..errors import SetupError

ARM_SCOPE = "https://management.azure.com/.default"


def build_credential(auth_mode: str, tenant_id: str, client_id: str, client_secret: str):
    """Create an Azure credential.

    auth_mode:
      - 'service_principal' (Tenant/Client/Secret)
      - 'default' (DefaultAzureCredential; supports Azure CLI, managed identity, etc.)
    """
    if auth_mode == "default":
        return DefaultAzureCredential(exclude_interactive_browser_credential=True)
    return ClientSecretCredential(tenant_id=tenant_id, client_id=client_id, client_secret=client_secret)


def credential_from_settings(settings: Settings):
    """Build the credential and prove it can mint an ARM token."""
    credential = build_credential(settings.auth_mode, settings.tenant_id, settings.client_id, settings.client_secret)
    try:
        token_for_scope(credential, ARM_SCOPE)
    except ClientAuthenticationError as e:
        raise SetupError(f"Could not establish an Azure session: {e}") from e
    return credential


def token_for_scope(credential, scope: str) -> str:
    """Return an access token string for a resource scope (e.g. 'https://management.azure.com/.default')."""
    return credential.get_token(scope).token


def client_kwargs(settings: Settings) -> Dict[str, Any]:
    """Transport options applied to every SDK client so no single call can hang the scan."""
    return {
        "connection_timeout": settings.call_timeout,
        "read_timeout": settings.call_timeout,
    }
