import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")

ENV_CONTRACT_ADDRESS = "VOTING_CONTRACT_ADDRESS"
ENV_RPC_URL = "VOTING_RPC_URL"


@dataclass
class ProverConfig:
    wasm_file: Path = field(default_factory=lambda: Path("circuits/build/vote.wasm"))
    zkey_file: Path = field(default_factory=lambda: Path("circuits/build/vote_final.zkey"))
    artifacts_base_url: Optional[str] = None
    cache_dir: Path = field(default_factory=lambda: Path(".zk_cache"))
    snarkjs_command: str = "snarkjs"
    proof_timeout: int = 60
    max_workers: int = 1

    def __post_init__(self):
        self.wasm_file = Path(self.wasm_file)
        self.zkey_file = Path(self.zkey_file)
        self.cache_dir = Path(self.cache_dir)


@dataclass
class HasherConfig:
    # circomlibjs-style {"C": [...], "M": [[...]]} JSON; generated constants when unset
    constants_file: Optional[Path] = None

    def __post_init__(self):
        if self.constants_file is not None:
            self.constants_file = Path(self.constants_file)


@dataclass
class LedgerConfig:
    rpc_url: str = "http://127.0.0.1:8545"
    contract_address: str = ""
    account: Optional[str] = None
    confirmation_timeout: int = 120


@dataclass
class CredentialConfig:
    export_dir: Path = field(default_factory=lambda: Path("."))
    filename: str = "voting-credentials.json"

    def __post_init__(self):
        self.export_dir = Path(self.export_dir)

    @property
    def export_path(self) -> Path:
        return self.export_dir / self.filename


@dataclass
class SystemConfig:
    prover_config: ProverConfig = field(default_factory=ProverConfig)
    hasher_config: HasherConfig = field(default_factory=HasherConfig)
    ledger_config: LedgerConfig = field(default_factory=LedgerConfig)
    credential_config: CredentialConfig = field(default_factory=CredentialConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_level: str = "INFO"
    enable_debug_mode: bool = False
    enable_monitoring: bool = True

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        if self.enable_debug_mode:
            self.log_level = "DEBUG"


def apply_env_overrides(config: SystemConfig) -> SystemConfig:
    """Environment wins over file values for deployment-specific settings"""
    address = os.environ.get(ENV_CONTRACT_ADDRESS)
    if address:
        config.ledger_config.contract_address = address

    rpc_url = os.environ.get(ENV_RPC_URL)
    if rpc_url:
        config.ledger_config.rpc_url = rpc_url

    return config


def _from_dict(config_data: Dict[str, Any]) -> SystemConfig:
    prover_data = config_data.get('prover', {}) or {}
    prover_config = ProverConfig(
        wasm_file=prover_data.get('wasm_file', 'circuits/build/vote.wasm'),
        zkey_file=prover_data.get('zkey_file', 'circuits/build/vote_final.zkey'),
        artifacts_base_url=prover_data.get('artifacts_base_url'),
        cache_dir=prover_data.get('cache_dir', '.zk_cache'),
        snarkjs_command=prover_data.get('snarkjs_command', 'snarkjs'),
        proof_timeout=prover_data.get('proof_timeout', 60),
        max_workers=prover_data.get('max_workers', 1),
    )

    hasher_data = config_data.get('hasher', {}) or {}
    hasher_config = HasherConfig(constants_file=hasher_data.get('constants_file'))

    ledger_data = config_data.get('ledger', {}) or {}
    ledger_config = LedgerConfig(
        rpc_url=ledger_data.get('rpc_url', 'http://127.0.0.1:8545'),
        contract_address=ledger_data.get('contract_address', ''),
        account=ledger_data.get('account'),
        confirmation_timeout=ledger_data.get('confirmation_timeout', 120),
    )

    credential_data = config_data.get('credentials', {}) or {}
    credential_config = CredentialConfig(
        export_dir=credential_data.get('export_dir', '.'),
        filename=credential_data.get('filename', 'voting-credentials.json'),
    )

    return SystemConfig(
        prover_config=prover_config,
        hasher_config=hasher_config,
        ledger_config=ledger_config,
        credential_config=credential_config,
        log_dir=config_data.get('log_dir', 'logs'),
        log_level=config_data.get('log_level', 'INFO'),
        enable_debug_mode=config_data.get('enable_debug_mode', False),
        enable_monitoring=config_data.get('enable_monitoring', True),
    )


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    config = None
    if config_path.exists():
        try:
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
            if not isinstance(config_data, dict):
                raise ValueError("top-level YAML value must be a mapping")
            config = _from_dict(config_data)
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.warning(f"Could not load config file {config_path}: {e}")
            logger.warning("Using default configuration")

    return apply_env_overrides(config or SystemConfig())


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    prover = config.prover_config
    hasher = config.hasher_config
    ledger = config.ledger_config
    credentials = config.credential_config

    config_data = {
        'prover': {
            'wasm_file': str(prover.wasm_file),
            'zkey_file': str(prover.zkey_file),
            'artifacts_base_url': prover.artifacts_base_url,
            'cache_dir': str(prover.cache_dir),
            'snarkjs_command': prover.snarkjs_command,
            'proof_timeout': prover.proof_timeout,
            'max_workers': prover.max_workers,
        },
        'hasher': {
            'constants_file': str(hasher.constants_file) if hasher.constants_file else None,
        },
        'ledger': {
            'rpc_url': ledger.rpc_url,
            'contract_address': ledger.contract_address,
            'account': ledger.account,
            'confirmation_timeout': ledger.confirmation_timeout,
        },
        'credentials': {
            'export_dir': str(credentials.export_dir),
            'filename': credentials.filename,
        },
        'log_dir': str(config.log_dir),
        'log_level': config.log_level,
        'enable_debug_mode': config.enable_debug_mode,
        'enable_monitoring': config.enable_monitoring,
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
