import json
from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=1)
def load_controls() -> dict:
    p = Path(__file__).resolve().parents[1] / "data" / "vault_rules.json"
    controls = json.loads(p.read_text(encoding="utf-8"))
    return {c["issue_id"]: c for c in controls}
