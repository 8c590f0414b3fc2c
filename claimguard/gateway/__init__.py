"""Encryption gateway adapters."""

from .base import EncryptionGateway
from .relayer import RelayerGateway
from .simulated import SimulatedGateway

__all__ = ["EncryptionGateway", "RelayerGateway", "SimulatedGateway"]
