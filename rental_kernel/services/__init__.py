"""Kernel services - stateful operations over the record store."""

from rental_kernel.services.return_store import ReturnRecordStore, ReturnSnapshot

__all__ = [
    "ReturnRecordStore",
    "ReturnSnapshot",
]
