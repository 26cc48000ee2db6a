"""Resolve contract addresses from deployment manifests."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from eth_utils import is_hex_address, to_checksum_address

from .errors import ConfigError

LOGGER = logging.getLogger(__name__)

# Accepted keys per field, in lookup order.
CORE_FIELDS: Dict[str, tuple[str, ...]] = {
    "delegation": ("delegation", "delegationManager"),
    "avs_directory": ("avsDirectory", "avs_directory"),
}
MIDDLEWARE_FIELDS: Dict[str, tuple[str, ...]] = {
    "service_manager": ("layerServiceManager", "serviceManager", "service_manager"),
    "stake_registry": ("stakeRegistry", "stake_registry"),
}


@dataclass(frozen=True)
class NetworkTopology:
    """Checksum addresses of the contracts touched by a registration."""

    delegation: str
    avs_directory: str
    service_manager: str
    stake_registry: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "delegation": self.delegation,
            "avs_directory": self.avs_directory,
            "service_manager": self.service_manager,
            "stake_registry": self.stake_registry,
        }


def read_manifest(path: str | Path) -> Dict[str, Any]:
    """Return the address mapping of a deployment manifest.

    Manifests produced by the deployment scripts nest addresses under an
    ``addresses`` key; flat mappings are accepted as well.
    """

    manifest_path = Path(path)
    try:
        with manifest_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"Unable to read deployment manifest {manifest_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Deployment manifest {manifest_path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Deployment manifest {manifest_path} must be a JSON object")
    addresses = data.get("addresses", data)
    if not isinstance(addresses, dict):
        raise ConfigError(f"'addresses' in {manifest_path} must be a JSON object")
    return addresses


def resolve_address(addresses: Dict[str, Any], field: str, keys: tuple[str, ...], source: Path) -> str:
    for key in keys:
        if key in addresses:
            value = addresses[key]
            if not isinstance(value, str) or not value.startswith("0x") or not is_hex_address(value):
                raise ConfigError(f"'{key}' in {source} is not a 0x-prefixed 20-byte address: {value!r}")
            return to_checksum_address(value)
    raise ConfigError(f"{source} is missing the {field} address (expected one of: {', '.join(keys)})")


def load_network_topology(core_path: str | Path, middleware_path: str | Path) -> NetworkTopology:
    """Parse both manifests into a :class:`NetworkTopology`."""

    core_source = Path(core_path)
    middleware_source = Path(middleware_path)
    core = read_manifest(core_source)
    middleware = read_manifest(middleware_source)
    resolved = {
        field: resolve_address(core, field, keys, core_source) for field, keys in CORE_FIELDS.items()
    }
    resolved.update(
        {
            field: resolve_address(middleware, field, keys, middleware_source)
            for field, keys in MIDDLEWARE_FIELDS.items()
        }
    )
    topology = NetworkTopology(**resolved)
    LOGGER.debug("Network topology resolved", extra={"event": "topology_resolved", "data": topology.as_dict()})
    return topology


__all__ = ["NetworkTopology", "load_network_topology", "read_manifest"]
