import os
from dotenv import load_dotenv

# Load params from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = str(raw).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
        return value if value > 0 else default
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
        return value if value >= 0 else default
    except Exception:
        return default


# Logging
LOG_LEVEL = (os.getenv("ACCESSGATE_LOG_LEVEL", "INFO") or "INFO").upper()
LOG_FORMAT = (os.getenv("ACCESSGATE_LOG_FORMAT", "json") or "json").strip().lower()

# Completion ledger (sqlite)
LEDGER_PATH = os.getenv("ACCESSGATE_LEDGER_PATH", "data/accessgate_ledger.db")

# Action execution
RETRY_BASE_DELAY_SECONDS = _env_float("ACCESSGATE_RETRY_BASE_DELAY_SECONDS", 1.0)
EXECUTOR_WORKERS = _env_int("ACCESSGATE_EXECUTOR_WORKERS", 4)
# Threads shared by handler attempts; a hung handler holds one until it returns
ATTEMPT_WORKERS = _env_int("ACCESSGATE_ATTEMPT_WORKERS", 8)

# Simulation fan-out
SIMULATION_WORKERS = _env_int("ACCESSGATE_SIMULATION_WORKERS", min(32, (os.cpu_count() or 1) + 4))

# Number of SoD violations at which the derived SoD risk factor saturates at 1.0
SOD_FACTOR_SATURATION = _env_int("ACCESSGATE_SOD_FACTOR_SATURATION", 3)
SOD_FACTOR_LABEL = "SoD Violations"

# Risk bands, lower bound inclusive
RISK_BAND_MEDIUM = 25
RISK_BAND_HIGH = 50
RISK_BAND_CRITICAL = 75

# Default risk weight vector (sums to 100)
DEFAULT_RISK_WEIGHTS = [
    {"label": "SoD Violations", "value": 30, "description": "Weight for segregation of duties conflicts"},
    {"label": "Privileged Access", "value": 25, "description": "Weight for administrative and privileged roles"},
    {"label": "Unused Access (>90d)", "value": 20, "description": "Weight for dormant entitlements"},
    {"label": "Peer Outlier", "value": 15, "description": "Weight for access deviating from peers"},
    {"label": "Login Anomalies", "value": 10, "description": "Weight for unusual login patterns"},
]

# Estimated per-attempt duration of an action when simulated (milliseconds)
DRY_RUN_DURATION_MS = {
    "grantRole": 400,
    "grantEntitlement": 400,
    "createAccount": 1200,
    "addToGroup": 300,
    "notify": 100,
    "removeRole": 350,
    "removeEntitlement": 350,
    "disableAccount": 800,
    "revokeAccess": 600,
    "scheduleAction": 50,
}
DRY_RUN_DEFAULT_DURATION_MS = 250


def is_strict_lint() -> bool:
    """
    Treat lint warnings as failures in the CLI.
    Defaults to disabled; errors always fail.
    """
    return _env_bool("ACCESSGATE_STRICT_LINT", False)
