"""Pre-submission registration state query."""

from __future__ import annotations

import logging

from .chain import ChainReader
from .errors import ChainQueryError

LOGGER = logging.getLogger(__name__)


def check_registration_state(reader: ChainReader, delegation: str, operator: str) -> bool:
    """Return whether ``operator`` is already registered with the delegation manager."""

    try:
        registered = reader.is_operator(delegation, operator)
    except ChainQueryError:
        raise
    except Exception as exc:
        raise ChainQueryError(f"Registration state query failed: {exc}") from exc
    if not isinstance(registered, bool):
        raise ChainQueryError(f"Registration state query returned {registered!r}, expected a boolean")
    LOGGER.info(
        "is registered %s",
        registered,
        extra={"event": "registration_state", "data": {"operator": operator, "registered": registered}},
    )
    return registered


__all__ = ["check_registration_state"]
