"""Concurrency primitives."""

from harbor.concurrency.locks import SessionLockRegistry

__all__ = ["SessionLockRegistry"]
