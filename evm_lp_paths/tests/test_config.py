import json

import pytest

from evm_lp_paths.core.config import (
    CONFIG,
    LpPolicy,
    get_discovery_chain_ids,
    get_krystal_api_key,
    get_krystal_base_url,
    get_lp_policy,
    get_wallet_private_key,
    is_dry_run,
    load_config,
    resolve_config_path,
    set_config,
)
from evm_lp_paths.core.constants.chains import KRYSTAL_LP_CHAINS


def test_policy_defaults():
    policy = get_lp_policy()
    assert policy == LpPolicy()
    assert policy.min_tvl_usd == 250_000.0
    assert policy.swap_trigger_pct == 30.0
    assert policy.max_gas_pct_of_deploy == 5.0


def test_policy_overrides_ignore_unknown_keys():
    set_config({"lp_policy": {"min_tvl_usd": 1_000, "deadline_s": 60, "bogus": 1}})
    policy = get_lp_policy()
    assert policy.min_tvl_usd == 1_000
    assert policy.deadline_s == 60
    assert policy.min_apr7d == 5.0


def test_dry_run_config_beats_env(monkeypatch):
    assert not is_dry_run()
    monkeypatch.setenv("EVM_LP_DRY_RUN", "TRUE")
    assert is_dry_run()
    set_config({"dry_run": False})
    assert not is_dry_run()


def test_private_key_from_config_or_env(monkeypatch):
    monkeypatch.setenv("EVM_LP_PRIVATE_KEY", " 0xenv ")
    assert get_wallet_private_key() == "0xenv"
    set_config({"evm_private_key": "0xcfg"})
    assert get_wallet_private_key() == "0xcfg"


def test_krystal_settings(monkeypatch):
    monkeypatch.setenv("KRYSTAL_API_KEY", "from-env")
    assert get_krystal_base_url() == "https://cloud-api.krystal.app"
    assert get_krystal_api_key() == "from-env"
    assert get_discovery_chain_ids() == list(KRYSTAL_LP_CHAINS)

    set_config(
        {"krystal": {"base_url": "https://k.test/ ", "api_key": "cfg", "chain_ids": ["8453", 10]}}
    )
    assert get_krystal_base_url() == "https://k.test"
    assert get_krystal_api_key() == "cfg"
    assert get_discovery_chain_ids() == [8453, 10]


def test_load_config_replaces_in_place(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"rpc_urls": {"8453": "https://base"}}))
    alias = CONFIG

    load_config(path, require_exists=True)

    assert alias["rpc_urls"] == {"8453": "https://base"}


def test_missing_config(tmp_path):
    missing = tmp_path / "nope.json"
    with pytest.raises(FileNotFoundError):
        load_config(missing, require_exists=True)
    load_config(missing)
    assert CONFIG == {}


def test_config_path_from_env(monkeypatch, tmp_path):
    target = tmp_path / "custom.json"
    monkeypatch.setenv("EVM_LP_CONFIG_PATH", str(target))
    assert resolve_config_path() == target
