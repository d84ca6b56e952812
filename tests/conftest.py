"""Global pytest configuration for the cluster profiling service.

Ensures the ``src`` tree is importable regardless of how the repository is
cloned, and provides the shared gateway and stream doubles used across the
unit tests.
"""

import sys
from pathlib import Path

import pytest

# Add the src directory to the Python path so imports can work correctly
project_root = Path(__file__).parent.parent
src_dir = project_root / "src"

if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from clusterprof.core.streams import BytesArchiveStream  # noqa: E402


class TrackingArchiveStream(BytesArchiveStream):
    """In-memory archive stream that counts releases and can fail on demand."""

    def __init__(self, data: bytes = b"", *, fail_on_read: int | None = None, release_error: Exception | None = None):
        super().__init__(data, name="tracking.zip")
        self.release_count = 0
        self.read_count = 0
        self.fail_on_read = fail_on_read
        self.release_error = release_error

    async def _read(self, size: int) -> bytes:
        self.read_count += 1
        if self.fail_on_read is not None and self.read_count >= self.fail_on_read:
            raise OSError("connection reset by peer")
        return await super()._read(size)

    async def _release(self) -> None:
        self.release_count += 1
        await super()._release()
        if self.release_error is not None:
            raise self.release_error


@pytest.fixture
def tracking_stream_factory():
    """Build ``TrackingArchiveStream`` instances and remember them."""
    created: list[TrackingArchiveStream] = []

    def _factory(data: bytes = b"", **kwargs) -> TrackingArchiveStream:
        stream = TrackingArchiveStream(data, **kwargs)
        created.append(stream)
        return stream

    _factory.created = created
    return _factory
