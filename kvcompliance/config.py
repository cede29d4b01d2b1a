from __future__ import annotations
import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from .errors import SetupError

AUTH_MODES = ("default", "service_principal")


@dataclass(frozen=True)
class Settings:
    subscription_id: str = ""
    resource_group: Optional[str] = None
    auth_mode: str = "default"
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    call_timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 2.0
    mutation_delay: float = 1.0
    expiration_days: int = 90
    artifacts_dir: str = "artifacts"
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)

    def validate(self) -> "Settings":
        if not self.subscription_id:
            raise SetupError("A subscription id is required (--subscription or AZURE_SUBSCRIPTION_ID)")
        if self.auth_mode not in AUTH_MODES:
            raise SetupError(f"Unknown auth mode '{self.auth_mode}', expected one of {', '.join(AUTH_MODES)}")
        if self.auth_mode == "service_principal":
            missing = [n for n in ("tenant_id", "client_id", "client_secret") if not getattr(self, n)]
            if missing:
                raise SetupError(f"Service principal auth requires: {', '.join(missing)}")
        return self


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables."""
    env = os.environ if environ is None else environ
    return Settings(
        subscription_id=env.get("AZURE_SUBSCRIPTION_ID", ""),
        resource_group=env.get("KV_AUDIT_RESOURCE_GROUP") or None,
        auth_mode=env.get("KV_AUDIT_AUTH_MODE", "default").lower(),
        tenant_id=env.get("AZURE_TENANT_ID", ""),
        client_id=env.get("AZURE_CLIENT_ID", ""),
        client_secret=env.get("AZURE_CLIENT_SECRET", ""),
        call_timeout=_number(env, "KV_AUDIT_CALL_TIMEOUT", 30.0, float),
        max_retries=_number(env, "KV_AUDIT_MAX_RETRIES", 3, int),
        retry_backoff=_number(env, "KV_AUDIT_RETRY_BACKOFF", 2.0, float),
        mutation_delay=_number(env, "KV_AUDIT_MUTATION_DELAY", 1.0, float),
        expiration_days=_number(env, "KV_AUDIT_EXPIRATION_DAYS", 90, int),
        artifacts_dir=env.get("KV_AUDIT_ARTIFACTS_DIR", "artifacts"),
        log_level=env.get("KV_AUDIT_LOG_LEVEL", "INFO"),
    )


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise SetupError(f"{key} must be a number, got '{raw}'") from None
    if value < 0:
        raise SetupError(f"{key} must not be negative, got '{raw}'")
    return value
