"""Operator key handling and attestation signing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as EthKeysValidationError
from eth_utils import to_checksum_address

from .errors import SigningError

LOGGER = logging.getLogger(__name__)

SIGNATURE_LENGTH = 65


class OperatorIdentity:
    """The operator's signing key and the address derived from it.

    The identity is created once per run and handed to the components that
    need it. :meth:`close` drops the key; the identity refuses to sign after.
    """

    def __init__(self, account: LocalAccount) -> None:
        self._account: Optional[LocalAccount] = account
        self._address = to_checksum_address(account.address)

    @classmethod
    def from_key(cls, private_key: str) -> "OperatorIdentity":
        key = private_key.strip()
        if not key.startswith("0x"):
            key = "0x" + key
        try:
            account = Account.from_key(key)
        except Exception as exc:  # eth_keys raises its own ValidationError
            raise SigningError("Operator private key is malformed") from exc
        return cls(account)

    @property
    def address(self) -> str:
        return self._address

    @property
    def closed(self) -> bool:
        return self._account is None

    def close(self) -> None:
        self._account = None

    def __enter__(self) -> "OperatorIdentity":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"OperatorIdentity(address={self._address}, {state})"

    def _require_account(self) -> LocalAccount:
        if self._account is None:
            raise SigningError("Operator identity has been closed")
        return self._account

    def sign_hash(self, digest: bytes) -> bytes:
        if len(digest) != 32:
            raise SigningError(f"Digest must be 32 bytes, got {len(digest)}")
        account = self._require_account()
        try:
            signed = account.unsafe_sign_hash(digest)
        except Exception as exc:
            raise SigningError(f"Unable to sign digest: {exc}") from exc
        return bytes(signed.signature)

    def sign_transaction(self, transaction: Dict[str, Any]) -> bytes:
        account = self._require_account()
        try:
            signed = account.sign_transaction(transaction)
        except Exception as exc:
            raise SigningError(f"Unable to sign registration transaction: {exc}") from exc
        return bytes(signed.raw_transaction)


@dataclass(frozen=True)
class RegistrationAttestation:
    """Signature over a registration digest, bound to its salt and expiry."""

    signature: bytes
    salt: bytes
    expiry: int

    def __post_init__(self) -> None:
        if len(self.signature) != SIGNATURE_LENGTH:
            raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes")
        if len(self.salt) != 32:
            raise ValueError("salt must be 32 bytes")

    def as_contract_tuple(self) -> tuple[bytes, bytes, int]:
        """``SignatureWithSaltAndExpiry`` in ABI argument order."""

        return (self.signature, self.salt, self.expiry)


def sign_digest(identity: OperatorIdentity, digest: bytes) -> bytes:
    """Sign the raw digest bytes without any prefix or rehashing."""

    return identity.sign_hash(digest)


def sign_attestation(identity: OperatorIdentity, digest: bytes, *, salt: bytes, expiry: int) -> RegistrationAttestation:
    signature = sign_digest(identity, digest)
    return RegistrationAttestation(signature=signature, salt=salt, expiry=expiry)


def recover_signer(digest: bytes, signature: bytes) -> str:
    """Return the checksum address that produced ``signature`` over ``digest``."""

    if len(digest) != 32 or len(signature) != SIGNATURE_LENGTH:
        raise SigningError("Cannot recover signer from malformed digest or signature")
    v = signature[64]
    if v >= 27:
        v -= 27
    try:
        public_key = keys.Signature(signature_bytes=signature[:64] + bytes([v])).recover_public_key_from_msg_hash(digest)
    except (BadSignature, EthKeysValidationError) as exc:
        raise SigningError(f"Signature recovery failed: {exc}") from exc
    return public_key.to_checksum_address()


def verify_signature(digest: bytes, signature: bytes, address: str) -> bool:
    try:
        recovered = recover_signer(digest, signature)
    except SigningError:
        LOGGER.debug("Signature did not recover", extra={"event": "signature_unrecoverable"})
        return False
    return recovered == to_checksum_address(address)


__all__ = [
    "OperatorIdentity",
    "RegistrationAttestation",
    "recover_signer",
    "sign_attestation",
    "sign_digest",
    "verify_signature",
]
