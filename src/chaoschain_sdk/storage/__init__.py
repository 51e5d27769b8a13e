"""Evidence storage on IPFS, Pinata, Irys and 0G."""

from .backends import (
    IrysStorage,
    LocalIPFSStorage,
    PinataStorage,
    StorageBackend,
    ZeroGStorage,
)
from .manager import AutoStorageManager

__all__ = [
    "AutoStorageManager",
    "IrysStorage",
    "LocalIPFSStorage",
    "PinataStorage",
    "StorageBackend",
    "ZeroGStorage",
]
