"""Process integrity proofs."""

from .process import (
    ComputeProvider,
    ProcessIntegrity,
    compute_code_hash,
    compute_execution_hash,
    integrity_checked,
)

__all__ = [
    "ComputeProvider",
    "ProcessIntegrity",
    "compute_code_hash",
    "compute_execution_hash",
    "integrity_checked",
]
