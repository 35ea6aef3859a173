"""Configuration management for the voting client."""

from .config import (
    CredentialConfig,
    HasherConfig,
    LedgerConfig,
    ProverConfig,
    SystemConfig,
    apply_env_overrides,
    load_config,
    save_config,
)

__all__ = [
    'SystemConfig',
    'ProverConfig',
    'HasherConfig',
    'LedgerConfig',
    'CredentialConfig',
    'apply_env_overrides',
    'load_config',
    'save_config',
]
