"""EIP-712 digest of an operator-to-AVS registration.

The digest must match, byte for byte, what ``AVSDirectory`` recomputes when
the stake registry forwards the operator's signature:

    keccak256(0x1901 || domainSeparator || keccak256(abi.encode(
        OPERATOR_AVS_REGISTRATION_TYPEHASH, operator, avs, salt, expiry)))

The domain separator depends on the deployed contract and the chain id, so
it is read from the chain instead of being recomputed locally.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .chain import ChainReader
from .errors import ChainQueryError, DigestMismatchError

LOGGER = logging.getLogger(__name__)

OPERATOR_AVS_REGISTRATION_TYPEHASH = keccak(
    text="OperatorAVSRegistration(address operator,address avs,bytes32 salt,uint256 expiry)"
)
EIP712_PREFIX = b"\x19\x01"
SALT_LENGTH = 32
MAX_UINT256 = 2**256 - 1


@dataclass(frozen=True)
class RegistrationDigest:
    """A digest together with everything it commits to."""

    digest: bytes
    operator: str
    avs: str
    salt: bytes
    expiry: int
    domain_separator: bytes

    @property
    def hex(self) -> str:
        return "0x" + self.digest.hex()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "digest": self.hex,
            "operator": self.operator,
            "avs": self.avs,
            "salt": "0x" + self.salt.hex(),
            "expiry": self.expiry,
            "domain_separator": "0x" + self.domain_separator.hex(),
        }


def generate_salt() -> bytes:
    """Fresh 32-byte salt from the OS CSPRNG. Never reuse across attempts."""

    return secrets.token_bytes(SALT_LENGTH)


def generate_expiry(window_seconds: int, *, now: Optional[float] = None) -> int:
    if window_seconds <= 0:
        raise ValueError("window_seconds must be positive")
    current = time.time() if now is None else now
    return int(current) + int(window_seconds)


def _validate_inputs(salt: bytes, expiry: int) -> None:
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_LENGTH:
        raise ValueError("salt must be exactly 32 bytes")
    if isinstance(expiry, bool) or not isinstance(expiry, int) or not 0 <= expiry <= MAX_UINT256:
        raise ValueError("expiry must be an unsigned 256-bit integer")


def registration_struct_hash(operator: str, avs: str, salt: bytes, expiry: int) -> bytes:
    _validate_inputs(salt, expiry)
    encoded = encode(
        ["bytes32", "address", "address", "bytes32", "uint256"],
        [
            OPERATOR_AVS_REGISTRATION_TYPEHASH,
            to_checksum_address(operator),
            to_checksum_address(avs),
            bytes(salt),
            expiry,
        ],
    )
    return keccak(encoded)


def compute_digest(domain_separator: bytes, operator: str, avs: str, salt: bytes, expiry: int) -> bytes:
    """Pure EIP-712 hashing step given an already known domain separator."""

    if len(domain_separator) != 32:
        raise ChainQueryError(f"Domain separator must be 32 bytes, got {len(domain_separator)}")
    return keccak(EIP712_PREFIX + domain_separator + registration_struct_hash(operator, avs, salt, expiry))


def build_digest(
    reader: ChainReader,
    avs_directory: str,
    operator: str,
    service_manager: str,
    salt: bytes,
    expiry: int,
    *,
    verify_on_chain: bool = False,
) -> RegistrationDigest:
    """Build the digest the operator has to sign for ``service_manager``.

    With ``verify_on_chain`` the contract's own digest calculation is queried
    as well and any difference raises :class:`DigestMismatchError`.
    """

    _validate_inputs(salt, expiry)
    domain_separator = bytes(reader.domain_separator(avs_directory))
    digest = compute_digest(domain_separator, operator, service_manager, salt, expiry)
    if verify_on_chain:
        contract_digest = bytes(
            reader.calculate_registration_digest(avs_directory, operator, service_manager, salt, expiry)
        )
        if contract_digest != digest:
            raise DigestMismatchError(digest, contract_digest)
    result = RegistrationDigest(
        digest=digest,
        operator=to_checksum_address(operator),
        avs=to_checksum_address(service_manager),
        salt=bytes(salt),
        expiry=expiry,
        domain_separator=domain_separator,
    )
    LOGGER.info("digest_hash: %s", result.hex, extra={"event": "digest_built", "data": {"digest": result.hex}})
    return result


__all__ = [
    "OPERATOR_AVS_REGISTRATION_TYPEHASH",
    "RegistrationDigest",
    "build_digest",
    "compute_digest",
    "generate_expiry",
    "generate_salt",
    "registration_struct_hash",
]
