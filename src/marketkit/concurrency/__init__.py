"""Concurrency helpers."""

from marketkit.concurrency.locks import KeyedLock

__all__ = ["KeyedLock"]
