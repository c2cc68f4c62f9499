import pytest

from veranode import config


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv("VERANODE_TIE_BREAK", raising=False)
    cfg = config.load_config(str(tmp_path))
    assert cfg["finality"]["tie_break"] == "LIE"
    assert cfg["early_lock"]["min_total_votes"] == 0
    assert config.get_bind_port(cfg) == 3008


def test_yaml_then_env(monkeypatch, tmp_path):
    monkeypatch.delenv("VERANODE_TIE_BREAK", raising=False)
    (tmp_path / config.CONFIG_FILENAME).write_text(
        "voting:\n  base_weight: 2.0\nfinality:\n  tie_break: fact\ncors:\n  origins: http://localhost:5173\n"
    )
    monkeypatch.setenv("VERANODE_EARLY_LOCK_MIN_VOTES", "5")
    cfg = config.load_config(str(tmp_path))
    assert cfg["voting"]["base_weight"] == 2.0
    assert cfg["voting"]["within_area_multiplier"] == 1.5
    assert cfg["finality"]["tie_break"] == "FACT"
    assert cfg["early_lock"]["min_total_votes"] == 5
    assert config.get_cors_origins(cfg) == ["http://localhost:5173"]


def test_bad_tie_break(monkeypatch, tmp_path):
    monkeypatch.setenv("VERANODE_TIE_BREAK", "coin")
    with pytest.raises(ValueError):
        config.load_config(str(tmp_path))


def test_prod_requires_secrets(monkeypatch):
    monkeypatch.setenv("VERANODE_ENV", "prod")
    monkeypatch.delenv("VERANODE_SECRET", raising=False)
    monkeypatch.delenv("VERANODE_ADMIN_KEY", raising=False)
    with pytest.raises(RuntimeError):
        config.get_secret()
    with pytest.raises(RuntimeError):
        config.get_admin_key()
