from __future__ import annotations
from typing import Any, Dict, List, Optional

import requests

from .clients import ARM_SCOPE, token_for_scope

ARM_BASE = "https://management.azure.com"
POLICY_STATES_API = "2019-10-01"


class PolicyInsightsClient:
    """Reads the latest Azure Policy compliance state for a resource through the ARM REST API."""

    def __init__(self, credential, timeout: float = 30.0):
        self.credential = credential
        self.timeout = timeout

    def post(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        token = token_for_scope(self.credential, ARM_SCOPE)
        url = f"{ARM_BASE}{path}"
        r = requests.post(url, headers={"Authorization": f"Bearer {token}"}, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def non_compliant_policies(self, resource_id: str) -> List[str]:
        path = f"{resource_id}/providers/Microsoft.PolicyInsights/policyStates/latest/queryResults"
        data = self.post(path, params={
            "api-version": POLICY_STATES_API,
            "$filter": "complianceState eq 'NonCompliant'",
        })
        names = []
        for state in data.get("value", []):
            name = state.get("policyDefinitionName") or state.get("policyAssignmentName")
            if name and name not in names:
                names.append(name)
        return sorted(names)
