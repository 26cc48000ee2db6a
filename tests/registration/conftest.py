"""Shared fixtures for the registration suites.

The operator key is the first well-known Anvil development key. Contract
addresses are arbitrary but fixed so that digests stay reproducible.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pytest
from eth_utils import to_checksum_address

from layer_operator.config import OperatorSettings
from layer_operator.deployments import NetworkTopology
from layer_operator.digest import compute_digest
from layer_operator.signers import OperatorIdentity

OPERATOR_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OPERATOR_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DELEGATION = "0x" + "cc" * 19 + "03"
AVS_DIRECTORY = "0x" + "aa" * 19 + "02"
SERVICE_MANAGER = "0x" + "bb" * 19 + "01"
STAKE_REGISTRY = "0x" + "dd" * 19 + "04"
# EIP712Domain("EigenLayer", 17000, AVS_DIRECTORY)
DOMAIN_SEPARATOR = bytes.fromhex("5e3a9ba8e5ce73fc063cb679dda74e03fe4245e17cd0c2e78737c9570b65ca76")
TX_HASH = "0x" + "ab" * 32


class StubChain:
    """In-memory stand-in for :class:`layer_operator.chain.Web3Chain`."""

    def __init__(self) -> None:
        self.registered: Any = False
        self.state_error: Optional[Exception] = None
        self.domain = DOMAIN_SEPARATOR
        self.contract_digest: Optional[bytes] = None
        self.block_timestamp = 1_600_000_000
        self.receipt: Dict[str, Any] = {"status": 1, "blockNumber": 42, "gasUsed": 210_000}
        # Number of polls answered with ``None`` first; ``None`` means the receipt never arrives.
        self.pending_polls: Optional[int] = 0
        self.revert_reason: Optional[str] = None
        self.send_error: Optional[Exception] = None
        self.sent: List[Dict[str, Any]] = []
        self.receipt_polls = 0
        self.replays: List[int] = []

    def is_operator(self, delegation: str, operator: str) -> bool:
        if self.state_error is not None:
            raise self.state_error
        return self.registered

    def domain_separator(self, avs_directory: str) -> bytes:
        return self.domain

    def calculate_registration_digest(
        self, avs_directory: str, operator: str, avs: str, salt: bytes, expiry: int
    ) -> bytes:
        if self.contract_digest is not None:
            return self.contract_digest
        return compute_digest(self.domain, operator, avs, salt, expiry)

    def latest_block_timestamp(self) -> int:
        return self.block_timestamp

    def send_registration(self, identity, stake_registry, attestation, *, gas_limit) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(
            {
                "operator": identity.address,
                "stake_registry": stake_registry,
                "attestation": attestation,
                "gas_limit": gas_limit,
            }
        )
        return TX_HASH

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        self.receipt_polls += 1
        if self.pending_polls is None or self.receipt_polls <= self.pending_polls:
            return None
        return dict(self.receipt)

    def replay_registration(self, identity, stake_registry, attestation, *, gas_limit, block_number) -> Optional[str]:
        self.replays.append(block_number)
        return self.revert_reason


@pytest.fixture
def stub_chain() -> StubChain:
    return StubChain()


@pytest.fixture
def topology() -> NetworkTopology:
    return NetworkTopology(
        delegation=to_checksum_address(DELEGATION),
        avs_directory=to_checksum_address(AVS_DIRECTORY),
        service_manager=to_checksum_address(SERVICE_MANAGER),
        stake_registry=to_checksum_address(STAKE_REGISTRY),
    )


@pytest.fixture
def manifests(tmp_path: Path) -> Dict[str, Path]:
    core = tmp_path / "core.json"
    middleware = tmp_path / "middleware.json"
    core.write_text(
        json.dumps({"addresses": {"delegation": DELEGATION, "avsDirectory": AVS_DIRECTORY}}),
        encoding="utf-8",
    )
    middleware.write_text(
        json.dumps({"addresses": {"layerServiceManager": SERVICE_MANAGER, "stakeRegistry": STAKE_REGISTRY}}),
        encoding="utf-8",
    )
    return {"core": core, "middleware": middleware}


@pytest.fixture
def settings(manifests: Dict[str, Path]) -> OperatorSettings:
    return OperatorSettings(
        private_key=OPERATOR_KEY,
        core_deployment_path=manifests["core"],
        middleware_deployment_path=manifests["middleware"],
        receipt_timeout_seconds=1.0,
        receipt_poll_interval_seconds=0.01,
    )


@pytest.fixture
def identity() -> Iterator[OperatorIdentity]:
    with OperatorIdentity.from_key(OPERATOR_KEY) as operator_identity:
        yield operator_identity
