from pathlib import Path

import pytest
from pydantic import ValidationError

from casino.config import LedgerSettings
from casino.ledger import CorruptionPolicy
from casino.main import build_ledger


def test_defaults(monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    config = LedgerSettings(_env_file=None)

    assert config.data_path == Path("balances.json")
    assert config.starting_balance == 1000
    assert config.corruption_policy is CorruptionPolicy.RESET
    assert config.api_port == 3000
    assert config.cors_origins == ["*"]
    assert config.api_admin_token is None


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("CASINO_DATA_PATH", str(tmp_path / "ledger.json"))
    monkeypatch.setenv("CASINO_CORRUPTION_POLICY", "fail")
    monkeypatch.setenv("CASINO_CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("CASINO_API_ADMIN_TOKEN", "  ")
    monkeypatch.setenv("CASINO_STATIC_DIR", "")
    monkeypatch.setenv("PORT", "8080")

    config = LedgerSettings(_env_file=None)

    assert config.data_path == tmp_path / "ledger.json"
    assert config.corruption_policy is CorruptionPolicy.FAIL
    assert config.cors_origins == ["https://a.example", "https://b.example"]
    assert config.api_admin_token is None
    assert config.static_dir is None
    assert config.api_port == 8080

    ledger = build_ledger(config)
    assert ledger.path == tmp_path / "ledger.json"
    assert ledger.corruption_policy is CorruptionPolicy.FAIL
    assert ledger.path.exists()


def test_rejects_negative_starting_balance(monkeypatch):
    monkeypatch.setenv("CASINO_STARTING_BALANCE", "-5")
    with pytest.raises(ValidationError):
        LedgerSettings(_env_file=None)
