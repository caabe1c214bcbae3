import os
from typing import List

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _env_float(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    text = value.strip()
    return text or default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Rule-evaluation service that answers POST /run with {result, trace, ...}.
POLICY_API_SERVER = _env_str("POLICY_API_SERVER", "http://localhost:3001").rstrip("/")
POLICY_API_TIMEOUT = _env_float("POLICY_API_TIMEOUT", 30.0, minimum=0.1)

# 0 means "bound the execution walk by the number of nodes in the flow".
FLOW_MAX_STEPS = _env_int("FLOW_MAX_STEPS", 0)

FLOWS_DIR = _env_str("FLOWS_DIR", os.path.join(BACKEND_DIR, "flows"))

LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()
LOG_JSON = _env_bool("LOG_JSON", False)

CORS_ORIGINS = _env_list("CORS_ORIGINS", ["*"])
