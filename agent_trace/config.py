"""Agent trace timeline configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Where Claude Code keeps per-project transcripts, and where reports go
PROJECTS_DIR = Path(os.getenv("ATO_PROJECTS_DIR", str(Path.home() / ".claude" / "projects"))).expanduser()
REPORTS_DIR = Path(os.getenv("ATO_REPORTS_DIR", str(Path.home() / ".ato" / "projects"))).expanduser()

# Batch tuning
PARSE_BATCH_SIZE = max(1, _env_int("ATO_PARSE_BATCH_SIZE", 50))
CONCURRENCY = _env_int("ATO_CONCURRENCY", 0)  # 0 = derive from cpu count
MAX_WORKERS = max(1, _env_int("ATO_MAX_WORKERS", 16))
UNIT_TIMEOUT_SECONDS = _env_float("ATO_UNIT_TIMEOUT_SECONDS", 0.0)  # 0 = no timeout
ISOLATE_FAILURES = _env_bool("ATO_ISOLATE_FAILURES", False)

# Pricing override (YAML), empty = built-in table
PRICING_FILE = os.getenv("ATO_PRICING_FILE", "")

LOG_LEVEL = os.getenv("ATO_LOG_LEVEL", "INFO").upper()
