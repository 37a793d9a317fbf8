import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from evm_lp_paths.core.constants.chains import KRYSTAL_LP_CHAINS

_CONFIG_ENV_KEYS = ("EVM_LP_CONFIG_PATH", "EVM_LP_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"
_PRIVATE_KEY_KEY = "evm_private_key"
_PRIVATE_KEY_ENV = "EVM_LP_PRIVATE_KEY"
_KRYSTAL_API_KEY_ENV = "KRYSTAL_API_KEY"
_DEFAULT_KRYSTAL_BASE_URL = "https://cloud-api.krystal.app"


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except Exception:
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_rpc_urls() -> dict[str, Any]:
    return CONFIG.get("rpc_urls", {})


def get_krystal_base_url() -> str:
    krystal = CONFIG.get("krystal", {})
    base_url = krystal.get("base_url")
    if base_url:
        return str(base_url).strip().rstrip("/")
    return _DEFAULT_KRYSTAL_BASE_URL


def get_discovery_chain_ids() -> list[int]:
    krystal = CONFIG.get("krystal", {})
    chain_ids = krystal.get("chain_ids")
    if chain_ids:
        return [int(c) for c in chain_ids]
    return list(KRYSTAL_LP_CHAINS)


def get_krystal_api_key() -> str | None:
    krystal = CONFIG.get("krystal", {})
    api_key = krystal.get("api_key")
    if api_key:
        return str(api_key).strip()
    return os.environ.get(_KRYSTAL_API_KEY_ENV)


def get_wallet_private_key() -> str | None:
    value = CONFIG.get(_PRIVATE_KEY_KEY)
    if isinstance(value, str) and value.strip():
        return value.strip()
    env_value = os.environ.get(_PRIVATE_KEY_ENV, "").strip()
    return env_value or None


def is_dry_run() -> bool:
    value = CONFIG.get("dry_run")
    if value is None:
        return os.environ.get("EVM_LP_DRY_RUN", "").lower() == "true"
    return bool(value)


@dataclass(frozen=True)
class LpPolicy:
    # Discovery
    min_tvl_usd: float = 250_000.0
    min_apr7d: float = 5.0
    pool_cache_ttl_s: float = 60 * 60
    tick_cache_ttl_s: float = 60
    page_size: int = 200
    pages_per_chain: int = 5
    # Funding
    bridge_trigger_pct: float = 50.0
    swap_trigger_pct: float = 30.0
    negligible_pct: float = 5.0
    max_price_impact_pct: float = 3.0
    min_funded_pct: float = 30.0
    gas_reserve_native: float = 0.005
    min_swap_usd: float = 0.5
    # Lifecycle
    max_gas_pct_of_deploy: float = 5.0
    mint_gas_units: int = 500_000
    deadline_s: int = 600
    max_deploy_usd: float = 500.0
    rebalance_min_tvl_usd: float = 250_000.0


def get_lp_policy() -> LpPolicy:
    """Build the LP policy from ``CONFIG["lp_policy"]``, ignoring unknown keys."""
    overrides = CONFIG.get("lp_policy") or {}
    known = {f.name for f in fields(LpPolicy)}
    return LpPolicy(**{k: v for k, v in overrides.items() if k in known})
