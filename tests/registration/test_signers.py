from __future__ import annotations

import pytest
from eth_utils import keccak

from layer_operator.errors import SigningError
from layer_operator.signers import (
    OperatorIdentity,
    RegistrationAttestation,
    recover_signer,
    sign_attestation,
    sign_digest,
    verify_signature,
)

OPERATOR_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DIGEST = keccak(text="operator registration digest")


def test_address_is_derived_from_key_with_or_without_prefix(identity: OperatorIdentity) -> None:
    bare = OperatorIdentity.from_key("ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80")
    assert identity.address == OPERATOR_ADDRESS
    assert bare.address == OPERATOR_ADDRESS


@pytest.mark.parametrize("key", ["", "0x1234", "not-a-key", "0x" + "00" * 32])
def test_malformed_key_raises_signing_error(key: str) -> None:
    with pytest.raises(SigningError) as excinfo:
        OperatorIdentity.from_key(key)
    assert excinfo.value.exit_code == 3
    assert str(excinfo.value) == "Operator private key is malformed"


def test_signature_recovers_to_operator(identity: OperatorIdentity) -> None:
    signature = sign_digest(identity, DIGEST)
    assert len(signature) == 65
    assert signature[-1] in (27, 28)
    assert recover_signer(DIGEST, signature) == OPERATOR_ADDRESS
    assert verify_signature(DIGEST, signature, OPERATOR_ADDRESS.lower())


def test_recovery_accepts_both_recovery_id_forms(identity: OperatorIdentity) -> None:
    signature = sign_digest(identity, DIGEST)
    compact = signature[:64] + bytes([signature[64] - 27])
    assert recover_signer(DIGEST, compact) == OPERATOR_ADDRESS


def test_out_of_range_recovery_id_is_a_signing_error(identity: OperatorIdentity) -> None:
    signature = sign_digest(identity, DIGEST)
    with pytest.raises(SigningError):
        recover_signer(DIGEST, signature[:64] + bytes([5]))
    assert not verify_signature(DIGEST, signature[:64] + bytes([5]), OPERATOR_ADDRESS)


def test_signing_is_deterministic(identity: OperatorIdentity) -> None:
    assert sign_digest(identity, DIGEST) == sign_digest(identity, DIGEST)


def test_flipped_digest_bit_fails_verification(identity: OperatorIdentity) -> None:
    signature = sign_digest(identity, DIGEST)
    tampered = bytes([DIGEST[0] ^ 0x01]) + DIGEST[1:]
    assert not verify_signature(tampered, signature, OPERATOR_ADDRESS)


def test_truncated_signature_fails_verification(identity: OperatorIdentity) -> None:
    signature = sign_digest(identity, DIGEST)
    assert not verify_signature(DIGEST, signature[:64], OPERATOR_ADDRESS)


def test_digest_length_is_enforced(identity: OperatorIdentity) -> None:
    with pytest.raises(SigningError):
        sign_digest(identity, DIGEST[:31])


def test_closed_identity_refuses_to_sign() -> None:
    with OperatorIdentity.from_key("0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80") as identity:
        sign_digest(identity, DIGEST)
    assert identity.closed
    with pytest.raises(SigningError):
        sign_digest(identity, DIGEST)
    with pytest.raises(SigningError):
        identity.sign_transaction({"to": OPERATOR_ADDRESS, "value": 0})


def test_repr_does_not_leak_key(identity: OperatorIdentity) -> None:
    text = repr(identity)
    assert OPERATOR_ADDRESS in text
    assert "ac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80" not in text


def test_attestation_binds_salt_and_expiry(identity: OperatorIdentity) -> None:
    attestation = sign_attestation(identity, DIGEST, salt=b"\x07" * 32, expiry=1_700_000_000)
    signature, salt, expiry = attestation.as_contract_tuple()
    assert recover_signer(DIGEST, signature) == OPERATOR_ADDRESS
    assert salt == b"\x07" * 32
    assert expiry == 1_700_000_000


def test_attestation_rejects_bad_lengths() -> None:
    with pytest.raises(ValueError):
        RegistrationAttestation(signature=b"\x00" * 64, salt=b"\x00" * 32, expiry=1)
    with pytest.raises(ValueError):
        RegistrationAttestation(signature=b"\x00" * 65, salt=b"\x00" * 16, expiry=1)
