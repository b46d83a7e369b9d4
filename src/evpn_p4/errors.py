"""Exceptions raised by the translation library."""

from __future__ import annotations


class TranslationError(Exception):
    """A topology or forwarding object could not be translated."""


class ObjectNotFound(TranslationError, LookupError):
    """A referenced VRF, logical bridge, bridge port or SVI does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class ValueOutOfRange(TranslationError, ValueError):
    """A value does not fit the width of the pipeline field it targets."""

    def __init__(self, what: str, value: int, bits: int = 16) -> None:
        super().__init__(f"{what} {value} does not fit in {bits} bits")
        self.what = what
        self.value = value
        self.bits = bits


class PoolExhausted(RuntimeError):
    """No identifier is left in a resource pool."""
