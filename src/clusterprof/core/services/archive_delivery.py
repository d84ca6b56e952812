"""
Archive stream delivery.

``ArchiveStreamDeliverer.deliver`` copies an open ``ArchiveStream`` into an
``ArchiveSink``: it announces the download headers, writes every chunk and
finishes the sink. The stream is closed exactly once before ``deliver``
returns, whether the copy completes, fails part-way or is cancelled.

Once headers reach the sink the response is committed, so copy failures can
no longer be reported as a structured error. They are logged as
``TransportWriteFailureError`` and returned in the ``DeliveryResult``;
cancellation is re-raised after the stream is closed.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import anyio

from clusterprof.core.exceptions import TransportWriteFailureError
from clusterprof.core.streams import ArchiveStream

logger = logging.getLogger(__name__)

ARCHIVE_MEDIA_TYPE = "application/zip"
DEFAULT_ARCHIVE_FILENAME = "profile.zip"
DEFAULT_CHUNK_SIZE = 64 * 1024


class ArchiveSink(abc.ABC):
    """Destination that receives download headers followed by archive bytes."""

    @abc.abstractmethod
    async def start(self, headers: Mapping[str, str]) -> None:
        """Commit the response headers."""

    @abc.abstractmethod
    async def write(self, chunk: bytes) -> None:
        """Write one chunk of archive bytes."""

    async def finish(self) -> None:
        """Signal that the archive was written completely."""
        return None


class FileArchiveSink(ArchiveSink):
    """Sink writing the archive to a local file.

    The file is written to ``<path>.part`` and renamed on ``finish`` so an
    aborted download never leaves a truncated archive under the final name.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._partial = self.path.with_name(self.path.name + ".part")
        self._file = None
        self.headers: dict[str, str] = {}

    async def start(self, headers: Mapping[str, str]) -> None:
        self.headers = dict(headers)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = await anyio.open_file(self._partial, "wb")

    async def write(self, chunk: bytes) -> None:
        if self._file is None:
            raise RuntimeError("write() called before start()")
        await self._file.write(chunk)

    async def finish(self) -> None:
        if self._file is None:
            raise RuntimeError("finish() called before start()")
        await self._file.aclose()
        self._file = None
        self._partial.replace(self.path)

    async def discard(self) -> None:
        """Remove a partially written archive."""
        if self._file is not None:
            await self._file.aclose()
            self._file = None
        self._partial.unlink(missing_ok=True)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one archive delivery."""

    bytes_sent: int
    completed: bool
    error: Optional[BaseException] = None


class ArchiveStreamDeliverer:
    """Copies archive streams to sinks as ``attachment`` downloads."""

    def __init__(self, *, chunk_size: int = DEFAULT_CHUNK_SIZE, filename: str = DEFAULT_ARCHIVE_FILENAME):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.filename = filename

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": ARCHIVE_MEDIA_TYPE,
            "Content-Disposition": f"attachment; filename={self.filename}",
        }

    async def deliver(self, stream: ArchiveStream, sink: ArchiveSink) -> DeliveryResult:
        """
        Copy ``stream`` into ``sink`` and close the stream.

        Args:
            stream: Open archive stream; ownership passes to this call
            sink: Destination for headers and bytes

        Returns:
            DeliveryResult: Bytes written and whether the copy completed
        """
        bytes_sent = 0
        try:
            try:
                await sink.start(self.headers())
                while True:
                    try:
                        chunk = await stream.read(self.chunk_size)
                    except Exception as e:
                        logger.error("Reading profiling archive failed after %d bytes: %s", bytes_sent, e)
                        return DeliveryResult(bytes_sent=bytes_sent, completed=False, error=e)
                    if not chunk:
                        break
                    await sink.write(chunk)
                    bytes_sent += len(chunk)
                await sink.finish()
            except Exception as e:
                failure = TransportWriteFailureError(bytes_sent, cause=e)
                logger.warning(failure.message)
                return DeliveryResult(bytes_sent=bytes_sent, completed=False, error=failure)

            logger.info("Delivered profiling archive %s (%d bytes)", self.filename, bytes_sent)
            return DeliveryResult(bytes_sent=bytes_sent, completed=True)
        finally:
            with anyio.CancelScope(shield=True):
                await self.close_stream(stream)

    async def close_stream(self, stream: ArchiveStream) -> None:
        """Close ``stream``, logging instead of raising if the release fails."""
        try:
            await stream.aclose()
        except Exception:
            logger.exception("Failed to close profiling archive stream")


__all__ = [
    "ARCHIVE_MEDIA_TYPE",
    "ArchiveSink",
    "ArchiveStreamDeliverer",
    "DEFAULT_ARCHIVE_FILENAME",
    "DEFAULT_CHUNK_SIZE",
    "DeliveryResult",
    "FileArchiveSink",
]
