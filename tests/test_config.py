from pathlib import Path

import pytest

from config import (
    CredentialConfig,
    LedgerConfig,
    ProverConfig,
    SystemConfig,
    load_config,
    save_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("VOTING_CONTRACT_ADDRESS", raising=False)
    monkeypatch.delenv("VOTING_RPC_URL", raising=False)


def test_defaults():
    config = SystemConfig()
    assert config.prover_config.zkey_file == Path("circuits/build/vote_final.zkey")
    assert config.hasher_config.constants_file is None
    assert config.credential_config.export_path == Path("voting-credentials.json")
    assert config.enable_monitoring


def test_paths_are_coerced():
    config = ProverConfig(wasm_file="a/vote.wasm", cache_dir="cache")
    assert config.wasm_file == Path("a/vote.wasm")
    assert config.cache_dir == Path("cache")


def test_debug_mode_forces_debug_logging():
    assert SystemConfig(enable_debug_mode=True).log_level == "DEBUG"


def test_yaml_round_trip(tmp_path):
    config = SystemConfig(
        prover_config=ProverConfig(artifacts_base_url="https://voting.example/zk",
                                   proof_timeout=120),
        ledger_config=LedgerConfig(contract_address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
                                   account="0x70997970C51812dc3A010C7d01b50e0d17dc79C8"),
        credential_config=CredentialConfig(export_dir=tmp_path / "backups"),
        log_level="WARNING",
        enable_monitoring=False,
    )
    path = tmp_path / "config.yaml"
    save_config(config, path)

    assert load_config(path) == config


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "absent.yaml") == SystemConfig()


def test_unreadable_file_falls_back(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text("ledger: [unclosed")

    assert load_config(path) == SystemConfig()
    assert "Could not load config file" in caplog.text


def test_partial_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("ledger:\n  rpc_url: http://node:8545\n")

    config = load_config(path)
    assert config.ledger_config.rpc_url == "http://node:8545"
    assert config.prover_config == ProverConfig()


def test_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("ledger:\n  contract_address: '0xfile'\n")
    monkeypatch.setenv("VOTING_CONTRACT_ADDRESS", "0xenv")
    monkeypatch.setenv("VOTING_RPC_URL", "http://env:8545")

    config = load_config(path)
    assert config.ledger_config.contract_address == "0xenv"
    assert config.ledger_config.rpc_url == "http://env:8545"
