"""End-to-end operator registration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .chain import ChainBackend, ChainReader, Web3Chain
from .config import OperatorSettings, RegistrationPolicy
from .deployments import NetworkTopology, load_network_topology
from .digest import RegistrationDigest, build_digest, generate_expiry, generate_salt
from .errors import ChainQueryError, SigningError
from .registration import check_registration_state
from .signers import OperatorIdentity, sign_attestation, verify_signature
from .submitter import RegistrationSubmitter, SubmissionResult

LOGGER = logging.getLogger(__name__)


@dataclass
class RegistrationOutcome:
    operator: str
    topology: NetworkTopology
    already_registered: Optional[bool]
    digest: Optional[RegistrationDigest] = None
    submission: Optional[SubmissionResult] = None

    @property
    def skipped(self) -> bool:
        return self.submission is None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "operator": self.operator,
            "topology": self.topology.as_dict(),
            "already_registered": self.already_registered,
            "skipped": self.skipped,
            "digest": self.digest.as_dict() if self.digest else None,
            "submission": self.submission.as_dict() if self.submission else None,
        }


def build_chain(settings: OperatorSettings) -> Web3Chain:
    return Web3Chain(settings.rpc_url, request_timeout=settings.request_timeout_seconds)


def query_registration_state(
    settings: OperatorSettings,
    chain: ChainReader,
    topology: NetworkTopology,
    operator: str,
) -> Optional[bool]:
    """Run the pre-check and apply the configured policy to its failures.

    Returns ``None`` when the query failed and the policy treats it as advisory.
    """

    try:
        return check_registration_state(chain, topology.delegation, operator)
    except ChainQueryError as exc:
        if settings.registration_policy is RegistrationPolicy.SKIP_IF_REGISTERED:
            raise
        LOGGER.warning(
            "Registration state unknown, submitting anyway: %s",
            exc,
            extra={"event": "registration_state_unknown"},
        )
        return None


def register_operator(
    settings: OperatorSettings,
    *,
    chain: Optional[ChainBackend] = None,
    identity: Optional[OperatorIdentity] = None,
) -> RegistrationOutcome:
    """Resolve, check, digest, sign and submit, strictly in that order.

    No step is retried. A failed run can simply be started again: every run
    draws a new salt and expiry.
    """

    topology = load_network_topology(settings.core_deployment_path, settings.middleware_deployment_path)
    owns_identity = identity is None
    if identity is None:
        identity = OperatorIdentity.from_key(settings.private_key.get_secret_value())
    backend = chain if chain is not None else build_chain(settings)
    try:
        operator = identity.address
        registered = query_registration_state(settings, backend, topology, operator)
        outcome = RegistrationOutcome(operator=operator, topology=topology, already_registered=registered)
        if registered and settings.registration_policy is RegistrationPolicy.SKIP_IF_REGISTERED:
            LOGGER.info(
                "Operator already registered; skipping submission",
                extra={"event": "registration_skipped", "data": {"operator": operator}},
            )
            return outcome

        LOGGER.info(
            "layer_service_manager_address: %s",
            topology.service_manager,
            extra={"event": "service_manager_resolved", "data": {"address": topology.service_manager}},
        )
        salt = generate_salt()
        expiry = generate_expiry(settings.expiry_window_seconds)
        digest = build_digest(
            backend,
            topology.avs_directory,
            operator,
            topology.service_manager,
            salt,
            expiry,
            verify_on_chain=settings.verify_digest_on_chain,
        )
        attestation = sign_attestation(identity, digest.digest, salt=salt, expiry=expiry)
        if not verify_signature(digest.digest, attestation.signature, operator):
            raise SigningError("Attestation signature does not recover to the operator address")
        outcome.digest = digest

        submitter = RegistrationSubmitter(
            backend,
            backend,
            gas_limit=settings.gas_limit,
            timeout=settings.receipt_timeout_seconds,
            poll_interval=settings.receipt_poll_interval_seconds,
        )
        outcome.submission = submitter.submit(topology.stake_registry, attestation, identity)
        return outcome
    finally:
        if owns_identity:
            identity.close()


__all__ = ["RegistrationOutcome", "build_chain", "query_registration_state", "register_operator"]
