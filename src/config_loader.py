import copy
import os
from typing import Optional

import yaml


DEFAULTS = {
    "default_currency": "CHF",
    "matching": {"amount_tolerance": 0.05, "min_outstanding": 0.01},
    "text_limits": {"reference": 180, "message": 220, "counterparty": 180, "currency": 8},
    "booking": {"max_consecutive_failures": 0},
    "report": {"errors_preview_limit": 5, "error_max_length": 200, "default_source_file": "bank-import.csv"},
}


def _default_path() -> str:
    path = os.getenv("BANK_IMPORT_CONFIG")
    if path:
        return path
    return os.path.join(os.path.dirname(os.path.dirname(__file__)), "config", "bank_import.yml")


def load_bank_import_config(path: Optional[str] = None) -> dict:
    path = path or _default_path()
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return copy.deepcopy(DEFAULTS)

    # shallow merge defaults
    merged = copy.deepcopy(DEFAULTS)
    for k, v in (cfg or {}).items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            mv = dict(merged[k])
            mv.update(v)
            merged[k] = mv
        else:
            merged[k] = v
    return merged
