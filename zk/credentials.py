"""
Voter credentials: a secret/nullifier pair and its public Poseidon commitment.

The credential export is the only backup a voter has. Losing it after the
commitment is registered means the registration can never be used to vote.
"""

import json
import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Union

from .errors import MalformedCredential
from .field import canonicalize, parse_field_element, random_field_element
from .poseidon import poseidon_hash

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ('secret', 'nullifier', 'commitment')
DEFAULT_EXPORT_FILENAME = "voting-credentials.json"

CredentialExport = Dict[str, str]


@dataclass(frozen=True)
class Credential:
    """Immutable voter credential. Build it through CredentialManager only."""
    secret: int = field(repr=False)
    nullifier: int = field(repr=False)
    commitment: int

    @property
    def short_commitment(self) -> str:
        return f"{str(self.commitment)[:12]}..."


def compute_commitment(secret: int, nullifier: int) -> int:
    return poseidon_hash([secret, nullifier])


def derive_nullifier_hash(nullifier: int, proposal_id: int) -> int:
    """One value per (credential, proposal); identical inputs give identical output."""
    return poseidon_hash([nullifier, canonicalize(proposal_id)])


class CredentialManager:
    """Generates, serializes and reloads voter credentials"""

    def generate(self) -> Credential:
        """Sample a fresh secret and nullifier. Persists nothing."""
        secret = random_field_element()
        nullifier = random_field_element()
        credential = Credential(secret, nullifier, compute_commitment(secret, nullifier))
        logger.info(f"Generated credential with commitment {credential.short_commitment}")
        return credential

    def from_secrets(self, secret: Any, nullifier: Any) -> Credential:
        """Rebuild a credential from its two secret fields; the commitment is derived"""
        try:
            secret_value = parse_field_element(secret, 'secret')
            nullifier_value = parse_field_element(nullifier, 'nullifier')
        except ValueError as e:
            raise MalformedCredential(str(e)) from e

        return Credential(secret_value, nullifier_value,
                          compute_commitment(secret_value, nullifier_value))

    @staticmethod
    def export(credential: Credential) -> CredentialExport:
        return {
            'secret': str(credential.secret),
            'nullifier': str(credential.nullifier),
            'commitment': str(credential.commitment),
        }

    def import_credential(self, export: Mapping[str, Any]) -> Credential:
        """Parse an export. Any problem raises MalformedCredential before a Credential exists."""
        if not isinstance(export, Mapping):
            raise MalformedCredential("Credential export must be an object")

        missing = [name for name in CREDENTIAL_FIELDS if name not in export]
        if missing:
            raise MalformedCredential(f"Credential export missing field(s): {', '.join(missing)}")

        try:
            values = {name: parse_field_element(export[name], name) for name in CREDENTIAL_FIELDS}
        except ValueError as e:
            raise MalformedCredential(str(e)) from e

        if compute_commitment(values['secret'], values['nullifier']) != values['commitment']:
            raise MalformedCredential("Commitment does not match secret and nullifier")

        return Credential(values['secret'], values['nullifier'], values['commitment'])

    def nullifier_hash(self, credential: Credential, proposal_id: int) -> int:
        return derive_nullifier_hash(credential.nullifier, proposal_id)

    def save(self, credential: Credential, path: Union[str, Path]) -> Path:
        """Write the export artifact readable by the owner only"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(self.export(credential), indent=2).encode()

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, stat.S_IRUSR | stat.S_IWUSR)
        try:
            os.fchmod(fd, stat.S_IRUSR | stat.S_IWUSR)
            os.write(fd, data)
            os.fsync(fd)
        finally:
            os.close(fd)

        logger.info(f"Credential exported to {path}")
        return path

    def load(self, path: Union[str, Path]) -> Credential:
        path = Path(path)
        try:
            export = json.loads(path.read_text())
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedCredential(f"Cannot read credential file {path}: {e}") from e

        return self.import_credential(export)
