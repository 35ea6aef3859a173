"""Exceptions raised by the credential and proof pipeline."""


class ZKError(Exception):
    """Base exception for ZK operations"""
    pass


class EntropyUnavailable(ZKError):
    """The operating system could not supply secure randomness"""
    pass


class MalformedCredential(ZKError):
    """Credential export is missing fields, non-numeric or out of range"""
    pass


class ProofBackendUnavailable(ZKError):
    """Proving backend or circuit assets could not be loaded"""
    pass


class ProofGenerationFailed(ZKError):
    """Proving backend reported a failure"""
    pass


class ProofInputMismatch(ZKError):
    """Backend public signals differ from the locally computed ones"""

    def __init__(self, message: str, expected=None, actual=None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class ProofEncodingError(ZKError):
    """Raw proof cannot be reshaped into verifier layout"""
    pass
