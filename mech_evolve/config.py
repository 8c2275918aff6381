"""
mech-evolve configuration
"""
import os
import json
from pathlib import Path

# Project root
BASE_DIR = Path(__file__).resolve().parent.parent

# SQLite database file
_repo_default_db = BASE_DIR / "data" / "evolve.db"
_user_default_db = Path.home() / ".mech-evolve" / "evolve.db"

config_data = {}
_config_file = BASE_DIR / "data" / "config.json"
if _config_file.exists():
    try:
        with open(_config_file, "r", encoding="utf-8") as _f:
            config_data = json.load(_f)
    except (OSError, ValueError):
        config_data = {}

if os.getenv("MECH_EVOLVE_DB"):
    DB_PATH = os.getenv("MECH_EVOLVE_DB")
elif _repo_default_db.parent.exists():
    DB_PATH = str(_repo_default_db)
else:
    # Installed package mode normally runs outside repository checkout.
    DB_PATH = str(_user_default_db)

# HTTP server - default to localhost only
HOST = os.getenv("MECH_EVOLVE_HOST", config_data.get("HOST", "127.0.0.1"))
PORT = int(os.getenv("MECH_EVOLVE_PORT", config_data.get("PORT", "3011")))
LOG_LEVEL = os.getenv("MECH_EVOLVE_LOG_LEVEL", config_data.get("LOG_LEVEL", "INFO")).upper()
SERVICE_NAME = "mech-evolve"
SERVICE_VERSION = "0.1.0"

# Fan-out budget per change event (seconds). Past this the caller gets the
# context-free fallback suggestions instead of agent responses.
FANOUT_TIMEOUT = float(os.getenv("MECH_EVOLVE_FANOUT_TIMEOUT", config_data.get("FANOUT_TIMEOUT", "10")))

# Max example file paths kept per pattern memory entry
PATTERN_EXAMPLE_LIMIT = int(os.getenv("MECH_EVOLVE_PATTERN_EXAMPLES", config_data.get("PATTERN_EXAMPLE_LIMIT", "5")))

# Tier-2 agents considered per factory run
TIER2_AGENT_LIMIT = int(os.getenv("MECH_EVOLVE_TIER2_LIMIT", config_data.get("TIER2_AGENT_LIMIT", "3")))

# Suggestions per agent response
MAX_SUGGESTIONS = 3


def get_config_dict():
    return {
        "HOST": HOST,
        "PORT": PORT,
        "LOG_LEVEL": LOG_LEVEL,
        "FANOUT_TIMEOUT": FANOUT_TIMEOUT,
        "PATTERN_EXAMPLE_LIMIT": PATTERN_EXAMPLE_LIMIT,
        "TIER2_AGENT_LIMIT": TIER2_AGENT_LIMIT,
    }


def save_config_dict(new_data: dict):
    config_file = BASE_DIR / "data" / "config.json"
    config_file.parent.mkdir(parents=True, exist_ok=True)

    current = {}
    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            current = json.load(f)

    current.update(new_data)
    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(current, f, indent=2)
