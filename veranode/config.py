# veranode/config.py
import copy
import os
import yaml
from typing import Any, Dict, List

# -------- Defaults (non-secret) --------
_DEFAULT: Dict[str, Any] = {
    "persistence": {"data_dir": "data", "filename": "vera_state.json", "keep_backups": 3},
    "voting": {
        "base_weight": 1.0,
        "within_area_multiplier": 1.5,
        "outside_area_multiplier": 0.5,
        "min_duration_sec": 0,
        "max_duration_sec": 7 * 24 * 60 * 60,
    },
    # min_total_votes == 0 disables early locking entirely
    "early_lock": {
        "min_total_votes": 0,
        "min_within_area_fraction": 0.5,
        "decisive_margin": 0.75,
    },
    "finality": {
        "tie_break": "LIE",
        "vote_reward": 1.0,
        "vote_penalty": 1.0,
        "scale_by_weight": False,
        "poster_fact_reward": 5.0,
        "poster_lie_penalty": 10.0,
    },
    "accounts": {
        "key_ttl_days": 180,
        "block_threshold": -50.0,
        "warning_threshold": 0.0,
    },
    "ledger": {"genesis_hash": "0" * 64},
    "validator": {
        "driver": "local",  # "local" | "http"
        "url": "http://127.0.0.1:8100/validate",
        "timeout_sec": 10.0,
    },
    "sweep": {"interval_sec": 30.0, "auto_start": False},
    "security": {"token_ttl_sec": 24 * 60 * 60},
    "logging": {"level": "INFO"},
    "server": {
        "host": "0.0.0.0",
        "port": 3008,
    },
    "cors": {
        "origins": [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    },
}

# -------- ENV overrides (secrets never come from YAML) --------
_ENV_MAP = {
    ("persistence", "data_dir"): ("VERANODE_DATA_DIR", str),
    ("validator", "driver"): ("VERANODE_VALIDATOR", str),
    ("validator", "url"): ("VERANODE_VALIDATOR_URL", str),
    ("sweep", "interval_sec"): ("VERANODE_SWEEP_INTERVAL_SEC", float),
    ("sweep", "auto_start"): ("VERANODE_AUTO_SWEEP", lambda v: v.strip() == "1"),
    ("early_lock", "min_total_votes"): ("VERANODE_EARLY_LOCK_MIN_VOTES", int),
    ("finality", "tie_break"): ("VERANODE_TIE_BREAK", str),
    ("logging", "level"): ("VERANODE_LOG_LEVEL", str),
    ("server", "port"): ("VERANODE_PORT", int),
}

CONFIG_FILENAME = "veranode_config.yaml"
MIN_SECRET_LEN = 32


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in (overlay or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for (section, key), (env_name, cast) in _ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        try:
            casted = cast(val)
        except ValueError:
            raise ValueError(f"{env_name}={val!r} is not a valid value for {section}.{key}")
        cfg.setdefault(section, {})
        cfg[section][key] = casted
    return cfg


def default_config() -> Dict[str, Any]:
    return copy.deepcopy(_DEFAULT)


def load_config(repo_root: str) -> Dict[str, Any]:
    """
    Loads the YAML config from repo_root/veranode_config.yaml.
    Returns defaults if the file doesn't exist. A file that exists but
    doesn't parse is an error: running with silently different voting
    policy is worse than not starting.
    """
    path = os.path.join(repo_root, CONFIG_FILENAME)
    cfg = default_config()

    if os.path.exists(path):
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping at the top level")
        cfg = _deep_merge(cfg, data)

    cfg = _apply_env_overrides(cfg)

    origins = cfg.get("cors", {}).get("origins")
    if isinstance(origins, str):
        cfg["cors"]["origins"] = [origins]

    tie = str(cfg["finality"].get("tie_break", "LIE")).upper()
    if tie not in ("FACT", "LIE"):
        raise ValueError("finality.tie_break must be FACT or LIE")
    cfg["finality"]["tie_break"] = tie

    return cfg


# -------- Small helpers used by the app --------
def get_env() -> str:
    return os.getenv("VERANODE_ENV", "dev").lower()


def is_prod() -> bool:
    return get_env() in ("prod", "production")


def get_secret() -> str:
    """
    VERANODE_SECRET signs session tokens and derives the lookup pepper and
    the sealing key. It is intentionally not read from YAML.

    In prod a missing or weak secret raises so the node fails fast.
    """
    raw = os.getenv("VERANODE_SECRET")
    if is_prod():
        if not raw or len(raw) < MIN_SECRET_LEN:
            raise RuntimeError(
                f"VERANODE_SECRET must be set to a strong value (>={MIN_SECRET_LEN} chars) when VERANODE_ENV=prod"
            )
        return raw
    return raw or "dev-only-change-me"


def get_admin_key() -> str:
    raw = os.getenv("VERANODE_ADMIN_KEY")
    if is_prod() and not raw:
        raise RuntimeError("VERANODE_ADMIN_KEY must be set when VERANODE_ENV=prod")
    return raw or "dev-admin-key"


def get_bind_host(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("server", {}).get("host", "0.0.0.0"))


def get_bind_port(cfg: Dict[str, Any]) -> int:
    return int(cfg.get("server", {}).get("port", 3008))


def get_cors_origins(cfg: Dict[str, Any]) -> List[str]:
    return list(cfg.get("cors", {}).get("origins", []))


def get_log_level(cfg: Dict[str, Any]) -> str:
    return str(cfg.get("logging", {}).get("level", "INFO")).upper()
