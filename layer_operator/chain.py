"""Chain access for the registration workflow.

Components depend on the :class:`ChainReader` and :class:`ChainWriter`
protocols; :class:`Web3Chain` implements both on top of web3.py.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from eth_abi import decode as abi_decode
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import Contract
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from .errors import ChainQueryError, SubmissionError
from .signers import OperatorIdentity, RegistrationAttestation

LOGGER = logging.getLogger(__name__)

ABI_DIR = Path(__file__).parent / "abi"
ERROR_STRING_SELECTOR = keccak(text="Error(string)")[:4]
REVERT_PREFIX = "execution reverted"


class ChainReader(Protocol):
    """Read-only chain capability used before submission."""

    def is_operator(self, delegation: str, operator: str) -> bool:  # pragma: no cover - protocol
        ...

    def domain_separator(self, avs_directory: str) -> bytes:  # pragma: no cover - protocol
        ...

    def calculate_registration_digest(
        self, avs_directory: str, operator: str, avs: str, salt: bytes, expiry: int
    ) -> bytes:  # pragma: no cover - protocol
        ...

    def latest_block_timestamp(self) -> int:  # pragma: no cover - protocol
        ...


class ChainWriter(Protocol):
    """State-changing capability used by the submitter."""

    def send_registration(
        self,
        identity: OperatorIdentity,
        stake_registry: str,
        attestation: RegistrationAttestation,
        *,
        gas_limit: int,
    ) -> str:  # pragma: no cover - protocol
        ...

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:  # pragma: no cover - protocol
        ...

    def replay_registration(
        self,
        identity: OperatorIdentity,
        stake_registry: str,
        attestation: RegistrationAttestation,
        *,
        gas_limit: int,
        block_number: int,
    ) -> Optional[str]:  # pragma: no cover - protocol
        ...


class ChainBackend(ChainReader, ChainWriter, Protocol):
    """A single client offering both capabilities, such as :class:`Web3Chain`."""


@lru_cache(maxsize=None)
def load_abi(name: str) -> List[Dict[str, Any]]:
    """Load one of the ABI fragments shipped with the package."""

    path = ABI_DIR / f"{name}.json"
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


@lru_cache(maxsize=1)
def custom_error_selectors() -> Dict[bytes, str]:
    """Map 4-byte selectors of the stake registry's custom errors to their names."""

    selectors: Dict[bytes, str] = {}
    for entry in load_abi("ECDSAStakeRegistry"):
        if entry.get("type") != "error":
            continue
        types = ",".join(item["type"] for item in entry.get("inputs", []))
        selectors[keccak(text=f"{entry['name']}({types})")[:4]] = entry["name"]
    return selectors


def _strip_revert_prefix(message: str) -> str:
    text = message.strip()
    if text.startswith(REVERT_PREFIX):
        text = text[len(REVERT_PREFIX):].lstrip(":").strip()
    return text


def decode_revert_data(data: Any) -> Optional[str]:
    """Decode raw revert data into a reason string.

    ``Error(string)`` payloads yield the string itself, known custom errors
    yield their name and anything else yields the hex selector.
    """

    if data in (None, "", b"", "0x"):
        return None
    try:
        raw = bytes(HexBytes(data))
    except (TypeError, ValueError):
        return None
    if len(raw) < 4:
        return None
    selector, payload = raw[:4], raw[4:]
    if selector == ERROR_STRING_SELECTOR:
        try:
            (reason,) = abi_decode(["string"], payload)
        except Exception:  # eth_abi raises DecodingError subclasses
            return "0x" + raw.hex()
        return reason
    name = custom_error_selectors().get(selector)
    if name is not None:
        return name
    return "0x" + selector.hex()


def decode_revert_reason(exc: ContractLogicError) -> Optional[str]:
    """Extract the verbatim revert reason from a web3 contract error."""

    decoded = decode_revert_data(getattr(exc, "data", None))
    if decoded is not None:
        return decoded
    message = getattr(exc, "message", None) or (exc.args[0] if exc.args else "")
    if not isinstance(message, str):
        return None
    reason = _strip_revert_prefix(message)
    return reason or None


class Web3Chain:
    """``ChainReader`` and ``ChainWriter`` backed by a JSON-RPC node."""

    def __init__(self, rpc_url: str, *, request_timeout: float = 30.0, web3: Optional[Web3] = None) -> None:
        self.rpc_url = rpc_url
        self.web3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        LOGGER.debug("Chain client initialised for %s", rpc_url)

    def contract(self, name: str, address: str) -> Contract:
        return self.web3.eth.contract(address=to_checksum_address(address), abi=load_abi(name))

    # Reads ---------------------------------------------------------------
    def is_operator(self, delegation: str, operator: str) -> bool:
        contract = self.contract("DelegationManager", delegation)
        try:
            result = contract.functions.isOperator(to_checksum_address(operator)).call()
        except (Web3Exception, ValueError, OSError) as exc:
            raise ChainQueryError(f"isOperator query against {delegation} failed: {exc}") from exc
        if not isinstance(result, bool):
            raise ChainQueryError(f"isOperator returned a non-boolean value: {result!r}")
        return result

    def domain_separator(self, avs_directory: str) -> bytes:
        contract = self.contract("AVSDirectory", avs_directory)
        try:
            return bytes(contract.functions.domainSeparator().call())
        except (Web3Exception, ValueError, OSError) as exc:
            raise ChainQueryError(f"domainSeparator query against {avs_directory} failed: {exc}") from exc

    def calculate_registration_digest(
        self, avs_directory: str, operator: str, avs: str, salt: bytes, expiry: int
    ) -> bytes:
        contract = self.contract("AVSDirectory", avs_directory)
        function = contract.functions.calculateOperatorAVSRegistrationDigestHash(
            to_checksum_address(operator), to_checksum_address(avs), salt, expiry
        )
        try:
            return bytes(function.call())
        except (Web3Exception, ValueError, OSError) as exc:
            raise ChainQueryError(f"Digest calculation on {avs_directory} failed: {exc}") from exc

    def latest_block_timestamp(self) -> int:
        try:
            block = self.web3.eth.get_block("latest")
        except (Web3Exception, ValueError, OSError) as exc:
            raise ChainQueryError(f"Unable to fetch the latest block: {exc}") from exc
        return int(block["timestamp"])

    # Writes --------------------------------------------------------------
    def _registration_call(self, identity: OperatorIdentity, stake_registry: str, attestation: RegistrationAttestation):
        contract = self.contract("ECDSAStakeRegistry", stake_registry)
        return contract.functions.registerOperatorWithSignature(attestation.as_contract_tuple(), identity.address)

    def send_registration(
        self,
        identity: OperatorIdentity,
        stake_registry: str,
        attestation: RegistrationAttestation,
        *,
        gas_limit: int,
    ) -> str:
        function = self._registration_call(identity, stake_registry, attestation)
        try:
            tx = function.build_transaction(
                {
                    "from": identity.address,
                    "gas": gas_limit,
                    "nonce": self.web3.eth.get_transaction_count(identity.address, "pending"),
                    "chainId": self.web3.eth.chain_id,
                }
            )
            raw = identity.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(raw)
        except (Web3Exception, ValueError, OSError) as exc:
            raise SubmissionError(f"Node rejected the registration transaction: {exc}") from exc
        return Web3.to_hex(tx_hash)

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except (Web3Exception, ValueError, OSError) as exc:
            raise ChainQueryError(f"Unable to fetch receipt for {tx_hash}: {exc}") from exc
        return dict(receipt)

    def replay_registration(
        self,
        identity: OperatorIdentity,
        stake_registry: str,
        attestation: RegistrationAttestation,
        *,
        gas_limit: int,
        block_number: int,
    ) -> Optional[str]:
        """Re-run the reverted call at ``block_number`` and return its revert reason."""

        function = self._registration_call(identity, stake_registry, attestation)
        try:
            function.call({"from": identity.address, "gas": gas_limit}, block_identifier=block_number)
        except ContractLogicError as exc:
            return decode_revert_reason(exc)
        except (Web3Exception, ValueError, OSError) as exc:
            LOGGER.warning(
                "Revert reason unavailable",
                extra={"event": "revert_replay_failed", "data": {"error": str(exc)}},
            )
            return None
        return None


__all__ = [
    "ChainBackend",
    "ChainReader",
    "ChainWriter",
    "Web3Chain",
    "decode_revert_data",
    "decode_revert_reason",
    "load_abi",
]
