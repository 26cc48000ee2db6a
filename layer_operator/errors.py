"""Typed failures raised by the operator registration workflow."""

from __future__ import annotations

from typing import Optional


class RegistrationError(RuntimeError):
    """Base class for every failure surfaced by the registration pipeline."""

    exit_code: int = 1


class ConfigError(RegistrationError):
    """Settings, secrets or deployment manifests are missing or malformed."""

    exit_code = 2


class SigningError(RegistrationError):
    """The operator key cannot produce or verify an attestation."""

    exit_code = 3


class ChainQueryError(RegistrationError):
    """A read-only RPC call failed or returned an unexpected payload."""

    exit_code = 4


class DigestMismatchError(ChainQueryError):
    """The locally computed digest differs from the contract's own computation."""

    def __init__(self, local_digest: bytes, contract_digest: bytes) -> None:
        super().__init__(
            f"Digest mismatch: computed 0x{local_digest.hex()} but contract returned 0x{contract_digest.hex()}"
        )
        self.local_digest = local_digest
        self.contract_digest = contract_digest


class SubmissionError(RegistrationError):
    """The node refused the registration transaction before inclusion."""

    exit_code = 5

    def __init__(self, message: str, *, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class RevertError(SubmissionError):
    """The registration transaction was mined but the contract call reverted."""

    exit_code = 6

    def __init__(self, reason: Optional[str], *, tx_hash: Optional[str] = None) -> None:
        message = f"Registration reverted: {reason}" if reason else "Registration reverted without a reason"
        super().__init__(message, tx_hash=tx_hash)
        self.reason = reason


class ReceiptTimeoutError(SubmissionError, TimeoutError):
    """No receipt arrived within the configured wait.

    The transaction may still be mined after this is raised.
    """

    exit_code = 7

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(
            f"No receipt for {tx_hash} after {timeout:g}s; the transaction may still be mined",
            tx_hash=tx_hash,
        )
        self.timeout = timeout


__all__ = [
    "ChainQueryError",
    "ConfigError",
    "DigestMismatchError",
    "ReceiptTimeoutError",
    "RegistrationError",
    "RevertError",
    "SigningError",
    "SubmissionError",
]
