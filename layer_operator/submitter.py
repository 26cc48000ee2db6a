"""Submit a signed attestation to the stake registry and wait for the receipt."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .chain import ChainReader, ChainWriter
from .errors import ChainQueryError, ReceiptTimeoutError, RevertError, SubmissionError
from .signers import OperatorIdentity, RegistrationAttestation

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionResult:
    """Identifies the mined registration transaction."""

    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"tx_hash": self.tx_hash, "block_number": self.block_number, "gas_used": self.gas_used}


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


class RegistrationSubmitter:
    """Send ``registerOperatorWithSignature`` and block until it is mined.

    The wait is bounded by ``timeout``. Giving up on the wait, through a
    timeout or an interrupt, does not retract a transaction that was already
    broadcast; it can still be included later.
    """

    def __init__(
        self,
        reader: ChainReader,
        writer: ChainWriter,
        *,
        gas_limit: int,
        timeout: float,
        poll_interval: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if timeout <= 0 or poll_interval <= 0:
            raise ValueError("timeout and poll_interval must be positive")
        self._reader = reader
        self._writer = writer
        self._gas_limit = gas_limit
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def submit(
        self,
        stake_registry: str,
        attestation: RegistrationAttestation,
        identity: OperatorIdentity,
    ) -> SubmissionResult:
        self.ensure_fresh(attestation)
        tx_hash = self._writer.send_registration(
            identity, stake_registry, attestation, gas_limit=self._gas_limit
        )
        LOGGER.info(
            "Registration transaction broadcast: %s",
            tx_hash,
            extra={"event": "registration_sent", "data": {"tx_hash": tx_hash, "gas_limit": self._gas_limit}},
        )
        receipt = self.wait_for_receipt(tx_hash)
        status = _as_int(receipt.get("status"))
        block_number = _as_int(receipt.get("blockNumber"))
        if status != 1:
            reason = None
            if block_number is not None:
                reason = self._writer.replay_registration(
                    identity,
                    stake_registry,
                    attestation,
                    gas_limit=self._gas_limit,
                    block_number=block_number,
                )
            LOGGER.error(
                "Registration reverted",
                extra={"event": "registration_reverted", "data": {"tx_hash": tx_hash, "reason": reason}},
            )
            raise RevertError(reason, tx_hash=tx_hash)
        result = SubmissionResult(
            tx_hash=tx_hash,
            block_number=block_number,
            gas_used=_as_int(receipt.get("gasUsed")),
        )
        LOGGER.info(
            "Operator registered on AVS successfully :%s , tx_hash :%s",
            identity.address,
            tx_hash,
            extra={"event": "registration_mined", "data": result.as_dict()},
        )
        return result

    def ensure_fresh(self, attestation: RegistrationAttestation) -> None:
        """Refuse to broadcast an attestation the chain already considers expired."""

        block_time = self._reader.latest_block_timestamp()
        if attestation.expiry <= block_time:
            raise SubmissionError(
                f"Attestation expired at {attestation.expiry}, chain time is {block_time}; sign a new one"
            )

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """Poll for the receipt until it shows up or the deadline passes.

        The transaction is already broadcast here, so a failed lookup counts as
        "not yet available" and only the deadline ends the wait.
        """

        deadline = self._clock() + self._timeout
        while True:
            try:
                receipt = self._writer.get_receipt(tx_hash)
            except ChainQueryError as exc:
                LOGGER.warning(
                    "Receipt lookup failed, still waiting: %s",
                    exc,
                    extra={"event": "receipt_lookup_failed", "data": {"tx_hash": tx_hash}},
                )
                receipt = None
            if receipt is not None:
                return receipt
            remaining = deadline - self._clock()
            if remaining <= 0:
                LOGGER.error(
                    "Receipt wait timed out",
                    extra={"event": "receipt_timeout", "data": {"tx_hash": tx_hash, "timeout": self._timeout}},
                )
                raise ReceiptTimeoutError(tx_hash, self._timeout)
            self._sleep(min(self._poll_interval, remaining))


__all__ = ["RegistrationSubmitter", "SubmissionResult"]
