"""Digest capability used to verify downloaded bodies."""
from __future__ import annotations

import hashlib
from typing import Any, Protocol, Union, runtime_checkable


@runtime_checkable
class Digest(Protocol):
    """Anything that can hash a body into a fixed-size buffer."""

    def reset(self) -> None:
        ...

    def update(self, data: bytes) -> None:
        ...

    def output_size(self) -> int:
        ...

    def finalize_into(self, buffer: bytearray) -> None:
        ...


class HashlibDigest:
    """Adapt a ``hashlib`` hash object to the ``Digest`` capability.

    ``reset`` restores the state the object had when it was wrapped, so an
    already-primed hash (e.g. a keyed BLAKE2) keeps its initial state.
    """

    def __init__(self, algorithm: Union[str, Any]) -> None:
        if isinstance(algorithm, str):
            algorithm = hashlib.new(algorithm)
        if not algorithm.digest_size:
            raise ValueError(f"Variable-length digest {algorithm.name!r} is not supported.")
        self._initial = algorithm.copy()
        self._current = algorithm.copy()

    @property
    def name(self) -> str:
        return self._initial.name

    def reset(self) -> None:
        self._current = self._initial.copy()

    def update(self, data: bytes) -> None:
        self._current.update(data)

    def output_size(self) -> int:
        return self._current.digest_size

    def finalize_into(self, buffer: bytearray) -> None:
        value = self._current.digest()
        if len(buffer) != len(value):
            raise ValueError(f"Buffer must be {len(value)} bytes, got {len(buffer)}.")
        buffer[:] = value
        self.reset()


def as_digest(digest: Union[str, Digest, Any]) -> Digest:
    """Coerce an algorithm name, a ``hashlib`` object or a ``Digest``.

    Args:
        digest: Algorithm name (``"sha256"``), hash object or digest capability.

    Returns:
        Object implementing the ``Digest`` capability.
    """
    if isinstance(digest, Digest):
        return digest
    if isinstance(digest, str) or (hasattr(digest, "copy") and hasattr(digest, "digest_size")):
        return HashlibDigest(digest)
    raise TypeError(f"Unsupported digest: {digest!r}")
