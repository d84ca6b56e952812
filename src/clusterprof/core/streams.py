"""
Archive streams returned by administrative gateways.

An archive stream is a single-use async byte source. Ownership moves from the
gateway that opened it to whoever receives it, and the last owner must close
it. ``aclose()`` releases the underlying resource at most once. Reading after
close raises ``ValueError`` the same way file objects do.
"""

from __future__ import annotations

import abc
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class ArchiveStream(abc.ABC):
    """Abstract single-use readable byte source."""

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes; ``-1`` reads to the end. Returns ``b""`` at EOF."""
        if self._closed:
            raise ValueError("read from closed archive stream")
        return await self._read(size)

    async def aclose(self) -> None:
        """Release the underlying resource. Subsequent calls do nothing."""
        if self._closed:
            return
        self._closed = True
        await self._release()

    async def __aenter__(self) -> ArchiveStream:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @abc.abstractmethod
    async def _read(self, size: int) -> bytes:
        """Read from the underlying source."""

    @abc.abstractmethod
    async def _release(self) -> None:
        """Release the underlying source; called exactly once."""


class BytesArchiveStream(ArchiveStream):
    """Archive stream backed by an in-memory buffer."""

    def __init__(self, data: bytes, name: Optional[str] = None) -> None:
        super().__init__()
        self._data = memoryview(bytes(data))
        self._offset = 0
        self.name = name

    @property
    def size(self) -> int:
        return len(self._data)

    async def _read(self, size: int) -> bytes:
        if size is None or size < 0:
            end = len(self._data)
        else:
            end = min(self._offset + size, len(self._data))
        chunk = self._data[self._offset:end].tobytes()
        self._offset = end
        return chunk

    async def _release(self) -> None:
        logger.debug("Released in-memory archive %s (%d bytes)", self.name or "<unnamed>", len(self._data))
        self._data = memoryview(b"")
        self._offset = 0


__all__ = ["ArchiveStream", "BytesArchiveStream"]
