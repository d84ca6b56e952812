"""Streaming response that delivers a profiling archive over ASGI."""

from __future__ import annotations

import logging
from functools import partial
from typing import Mapping, Optional

import anyio
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from clusterprof.core.services.archive_delivery import (
    ARCHIVE_MEDIA_TYPE,
    ArchiveSink,
    ArchiveStreamDeliverer,
    DeliveryResult,
)
from clusterprof.core.streams import ArchiveStream

logger = logging.getLogger(__name__)


class ASGIArchiveSink(ArchiveSink):
    """Sink that writes a chunked HTTP response through an ASGI ``send`` callable."""

    def __init__(self, send: Send, status_code: int = 200, extra_headers: Optional[Mapping[str, str]] = None):
        self._send = send
        self.status_code = status_code
        self.extra_headers = dict(extra_headers or {})
        self.started = False

    async def start(self, headers: Mapping[str, str]) -> None:
        merged = {**self.extra_headers, **headers}
        raw_headers = [(key.lower().encode("latin-1"), value.encode("latin-1")) for key, value in merged.items()]
        await self._send({"type": "http.response.start", "status": self.status_code, "headers": raw_headers})
        self.started = True

    async def write(self, chunk: bytes) -> None:
        await self._send({"type": "http.response.body", "body": chunk, "more_body": True})

    async def finish(self) -> None:
        await self._send({"type": "http.response.body", "body": b"", "more_body": False})


class ArchiveStreamResponse(Response):
    """
    Response that owns an archive stream until it has been delivered.

    Delivery runs alongside a listener for ``http.disconnect``; a client that
    goes away cancels the copy, and the deliverer still closes the stream once.
    """

    media_type = ARCHIVE_MEDIA_TYPE

    def __init__(self, stream: ArchiveStream, deliverer: ArchiveStreamDeliverer, status_code: int = 200):
        self.stream = stream
        self.deliverer = deliverer
        self.status_code = status_code
        self.background = None
        self.result: Optional[DeliveryResult] = None
        self.init_headers(deliverer.headers())

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        extra_headers = {
            key.decode("latin-1"): value.decode("latin-1")
            for key, value in self.raw_headers
            if key not in (b"content-type", b"content-disposition", b"content-length")
        }
        sink = ASGIArchiveSink(send, status_code=self.status_code, extra_headers=extra_headers)
        try:
            async with anyio.create_task_group() as task_group:

                async def wrap(func) -> None:
                    await func()
                    task_group.cancel_scope.cancel()

                task_group.start_soon(wrap, partial(self._deliver, sink))
                await wrap(partial(self._listen_for_disconnect, receive))
        finally:
            # The delivery task may be cancelled before it ever runs
            if not self.stream.closed:
                with anyio.CancelScope(shield=True):
                    await self.deliverer.close_stream(self.stream)

        if self.result is None:
            logger.info("Client disconnected before the profiling archive was delivered")

    async def _deliver(self, sink: ASGIArchiveSink) -> None:
        self.result = await self.deliverer.deliver(self.stream, sink)

    async def _listen_for_disconnect(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break


__all__ = ["ASGIArchiveSink", "ArchiveStreamResponse"]
