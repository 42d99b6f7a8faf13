"""Loading the externally provided transaction signer."""

from __future__ import annotations

import importlib
from logging import getLogger
from typing import TYPE_CHECKING

from ansync.config.errors import ConfigurationError, MissingConfigurationError
from ansync.domain.ports.chain import TransactionSigner

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ansync.config.networks import NetworkConfig

log = getLogger(__name__)

type SignerFactory = Callable[[NetworkConfig], TransactionSigner]


def load_signer_factory(reference: str | None) -> SignerFactory:
    """Resolve a ``module:callable`` reference to a signer factory."""

    if not reference:
        raise MissingConfigurationError(
            "ANSYNC_SIGNER_FACTORY is required to submit transactions (module:callable)"
        )
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigurationError(
            f"Signer factory must look like 'module:callable', got {reference!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import signer module {module_name!r}: {exc}") from exc

    factory = module
    for part in attribute.split("."):
        factory = getattr(factory, part, None)
        if factory is None:
            raise ConfigurationError(f"Signer factory {reference!r} not found")
    if not callable(factory):
        raise ConfigurationError(f"Signer factory {reference!r} is not callable")
    return factory  # type: ignore[return-value]


def build_signers(
    factory: SignerFactory,
    networks: Iterable[NetworkConfig],
) -> dict[str, TransactionSigner]:
    """Create one signer per network and check it signs for the configured address."""

    signers: dict[str, TransactionSigner] = {}
    for network in networks:
        signer = factory(network)
        if not isinstance(signer, TransactionSigner):
            raise ConfigurationError(
                f"Signer for {network.network_id} does not implement TransactionSigner"
            )
        if signer.address != network.signer_address:
            raise ConfigurationError(
                f"Signer for {network.network_id} signs as {signer.address}, "
                f"expected {network.signer_address}"
            )
        log.debug("Loaded signer %s for %s", signer.address, network.network_id)
        signers[network.network_id] = signer
    return signers
