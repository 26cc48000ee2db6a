from __future__ import annotations

import pytest
from eth_abi import encode
from eth_utils import keccak
from web3 import Web3
from web3.exceptions import ContractLogicError

from layer_operator.chain import decode_revert_data, decode_revert_reason, load_abi

STAKE_REGISTRY = Web3.to_checksum_address("0x" + "dd" * 19 + "04")
OPERATOR = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _error_string(reason: str) -> str:
    return "0x08c379a0" + encode(["string"], [reason]).hex()


def test_error_string_payload_is_decoded() -> None:
    assert decode_revert_data(_error_string("AlreadyRegistered")) == "AlreadyRegistered"


def test_custom_error_is_named() -> None:
    selector = keccak(text="OperatorAlreadyRegistered()")[:4]
    assert selector.hex() == "42ee68b5"
    assert decode_revert_data(selector) == "OperatorAlreadyRegistered"
    assert decode_revert_data("0x8baa579f") == "InvalidSignature"


def test_unknown_selector_is_returned_as_hex() -> None:
    assert decode_revert_data("0xdeadbeef00") == "0xdeadbeef"


@pytest.mark.parametrize("data", [None, "", "0x", b"", "0x1234", "zz"])
def test_empty_or_short_payloads_have_no_reason(data) -> None:
    assert decode_revert_data(data) is None


def test_reason_prefers_revert_data() -> None:
    exc = ContractLogicError("execution reverted", data=_error_string("AlreadyRegistered"))
    assert decode_revert_reason(exc) == "AlreadyRegistered"


def test_reason_falls_back_to_message() -> None:
    exc = ContractLogicError("execution reverted: AlreadyRegistered")
    assert decode_revert_reason(exc) == "AlreadyRegistered"
    assert decode_revert_reason(ContractLogicError("execution reverted")) is None


def test_abi_fragments_encode_expected_selectors() -> None:
    web3 = Web3()
    registry = web3.eth.contract(address=STAKE_REGISTRY, abi=load_abi("ECDSAStakeRegistry"))
    calldata = registry.encode_abi(
        "registerOperatorWithSignature",
        args=[(b"\x01" * 65, b"\x02" * 32, 1_700_000_000), OPERATOR],
    )
    assert calldata.startswith("0x3d5611f6")

    delegation = web3.eth.contract(address=STAKE_REGISTRY, abi=load_abi("DelegationManager"))
    assert delegation.encode_abi("isOperator", args=[OPERATOR]).startswith("0x6d70f7ae")

    directory = web3.eth.contract(address=STAKE_REGISTRY, abi=load_abi("AVSDirectory"))
    assert directory.encode_abi("domainSeparator").startswith("0xf698da25")
    assert directory.encode_abi(
        "calculateOperatorAVSRegistrationDigestHash",
        args=[OPERATOR, STAKE_REGISTRY, b"\x00" * 32, 1],
    ).startswith("0xa1060c88")
