# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Machine-specific overrides go to config_local.py (gitignored).

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASKPAD_APP_NAME": "App display name (default: taskpad).",
    "TASKPAD_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "TASKPAD_CONSOLE_ENABLED": "Enable console REPL (true/false, default: true).",
    # Paths (gitignored)
    "TASKPAD_DATA_DIR": "Local data directory (default: .local/taskpad).",
    "TASKPAD_STORE_BACKEND": "Backing store: sqlite or memory (default: sqlite).",
    "TASKPAD_STORE_PATH": "SQLite key-value file (default: <data_dir>/store.sqlite3).",
    # Write scheduling
    "TASKPAD_WRITE_THROTTLE_MS": "Quiet window before a coalesced write (default: 2000).",
    "TASKPAD_MAX_WRITES_PER_MINUTE": "Physical write budget per rolling minute (default: 120).",
    "TASKPAD_TARGET_CHUNK_BYTES": "Target serialized chunk size (default: 7168).",
    # Quotas enforced by the backing store
    "TASKPAD_QUOTA_BYTES_PER_ITEM": "Max bytes per stored record (default: 8192).",
    "TASKPAD_QUOTA_BYTES": "Max bytes across all records (default: 102400).",
}
