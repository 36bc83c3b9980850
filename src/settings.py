"""Static configuration for fiserelay.

All operator-editable settings (endpoints, budgets, known numbers, transport,
logging) live in a single JSON file for quick edits without touching Python.
Secrets are read from the environment (.env).
"""

import json
import os

from dotenv import load_dotenv

from core.config import DedupConfig, DirectoryConfig, ProcessingConfig, RetryConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.environ.get("FISERELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))

load_dotenv()


def _load_json_config() -> dict:
    """Load config.json with a flat, operator-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite ledger and message history.
DB_PATH = _resolve_path(_CONFIG.get("database", {}).get("path", "fiserelay.db"))

# FISE API base URL; the environment wins so deployments need no file edits.
API_BASE_URL = os.getenv("FISE_API_URL") or _CONFIG.get("api", {}).get("base_url", "")

_directory = _CONFIG.get("directory", {})
DIRECTORY = DirectoryConfig(
    timeout_seconds=float(_directory.get("timeout_seconds", 5)),
    max_concurrency=int(_directory.get("max_concurrency", 5)),
)

# Backend sync retries: total attempts and the fixed delay between them.
_backend = _CONFIG.get("backend", {})
RETRY = RetryConfig(
    attempts=int(_backend.get("attempts", 3)),
    delay_seconds=float(_backend.get("retry_delay_seconds", 2)),
    attempt_timeout_seconds=float(_backend.get("attempt_timeout_seconds", 8)),
)

_processing = _CONFIG.get("processing", {})
PROCESSING = ProcessingConfig(
    event_timeout_seconds=float(_processing.get("event_timeout_seconds", 30)),
    call_timeout_seconds=float(_processing.get("call_timeout_seconds", 8)),
    min_length=int(_processing.get("min_length", 10)),
    max_length=int(_processing.get("max_length", 500)),
)

# Repeated (sender, body) pairs inside this window are dropped.
DEDUP = DedupConfig(window_seconds=float(_CONFIG.get("dedup", {}).get("window_seconds", 300)))

# Known numbers used to tell entity confirmations from driver requests.
_roles = _CONFIG.get("roles", {})
ENTITY_NUMBERS = [str(n) for n in _roles.get("entities", [])]
DRIVER_NUMBERS = [str(n) for n in _roles.get("drivers", [])]

# Transport method switches adapters without changing core logic.
_transport = _CONFIG.get("transport", {})
TRANSPORT_METHOD = _transport.get("method", "dry_run")

_server = _CONFIG.get("server", {})
SERVER_HOST = _server.get("host", "0.0.0.0")
SERVER_PORT = int(_server.get("port", 8080))

# Periodic ledger dump for diagnostics; 0 disables it.
_diagnostics = _CONFIG.get("diagnostics", {})
DUMP_INTERVAL_SECONDS = float(_diagnostics.get("dump_interval_seconds", 0))
DUMP_LIMIT = int(_diagnostics.get("dump_limit", 20))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
