#!/usr/bin/env python
"""
Transfers that report their progress.

``ProgressRequest`` is the low-level primitive: it sends one request
through httpx, streaming the body out in chunks and the response in
chunks, and fires lifecycle events on the way (``upload.progress``,
``upload.load``, ``upload.error``, ``upload.abort`` for the outbound
body; ``progress``, ``load``, ``error``, ``abort`` for the inbound
body).

``ProgressTransport`` turns those events into an async sequence of
``ProgressSnapshot`` objects:

    async for snapshot in client.put_progress("big.iso", data):
        print(snapshot.upload, snapshot.download)
    if snapshot.error:
        raise snapshot.error

Events are handed to the consumer through a ``LatestValueSlot``, a
channel of capacity one where the newest value replaces an unread one.
A slow consumer only ever sees the most recent state, and the transfer
never waits for the consumer.

Fractions are in [0, 1], or ``-1`` (``INDETERMINATE``) when the length
of the body is unknown.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any
from typing import AsyncIterator
from typing import Awaitable
from typing import Callable
from typing import DefaultDict
from typing import List
from typing import Optional
from typing import Union

import httpx

from davstream.lib import error
from davstream.lib.python_utilities import to_wire

log = logging.getLogger("davstream")

UPLOAD_EVENTS = ("upload.progress", "upload.load", "upload.error", "upload.abort")
DOWNLOAD_EVENTS = ("progress", "load", "error", "abort")

INDETERMINATE = -1.0
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ProgressEvent:
    type: str
    loaded: int = 0
    total: int = 0
    length_computable: bool = False
    error: Optional[BaseException] = None

    @property
    def fraction(self) -> float:
        if not self.length_computable:
            return INDETERMINATE
        if self.total <= 0:
            return 1.0
        return min(1.0, self.loaded / self.total)


class ProgressRequest:
    """
    One HTTP request with observable progress.  Use it like this:

        req = ProgressRequest(client_factory)
        req.open("PUT", url)
        req.set_request_header("Authorization", "Basic ...")
        req.add_event_listener("upload.progress", on_progress)
        req.start(body)

    ``start`` schedules the transfer as a task on the running event
    loop and returns at once; ``abort`` cancels it, which fires the
    abort events.  After the ``load`` event the response is available
    in ``status``, ``reason``, ``response_headers``, ``response_body``
    and ``response_text``.
    """

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[httpx.AsyncClient]],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._client_factory = client_factory
        self.chunk_size = chunk_size
        self.method: Optional[str] = None
        self.url: Optional[str] = None
        self.headers = httpx.Headers()
        self.listeners: DefaultDict[str, List[Callable[[ProgressEvent], Any]]] = (
            defaultdict(list)
        )
        self.upload_complete = False
        self.status: Optional[int] = None
        self.reason: str = ""
        self.response_headers: Optional[httpx.Headers] = None
        self._charset: Optional[str] = None
        self._buffer = bytearray()
        self._task: Optional[asyncio.Task] = None

    def open(self, method: str, url: Any) -> None:
        self.method = method
        self.url = str(url)

    def set_request_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def add_event_listener(
        self, event: str, callback: Callable[[ProgressEvent], Any]
    ) -> None:
        if event not in UPLOAD_EVENTS + DOWNLOAD_EVENTS:
            raise ValueError(f"unknown progress event {event}")
        self.listeners[event].append(callback)

    def _dispatch(self, event: ProgressEvent) -> None:
        for callback in self.listeners[event.type]:
            callback(event)

    @property
    def response_body(self) -> bytes:
        return bytes(self._buffer)

    @property
    def response_text(self) -> str:
        return self._buffer.decode(self._charset or "utf-8", errors="replace")

    def start(self, body: Union[str, bytes, None] = None) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("request already sent")
        self._task = asyncio.ensure_future(self.send(body))
        return self._task

    def abort(self) -> None:
        if self._task is not None and not self._task.done():
            log.debug(f"aborting {self.method} {self.url}")
            self._task.cancel()

    async def _upload_stream(self, content: bytes) -> AsyncIterator[bytes]:
        total = len(content)
        loaded = 0
        for start in range(0, total, self.chunk_size):
            chunk = content[start : start + self.chunk_size]
            yield chunk
            ## httpx asks for the next chunk once this one is written
            loaded += len(chunk)
            self._dispatch(ProgressEvent("upload.progress", loaded, total, True))
        self.upload_complete = True
        self._dispatch(ProgressEvent("upload.load", total, total, True))

    async def send(self, body: Union[str, bytes, None] = None) -> None:
        if self.method is None:
            raise RuntimeError("open() must be called before send()")

        content = to_wire(body)
        headers = httpx.Headers(self.headers)
        upload = None
        if content is None:
            self.upload_complete = True
        else:
            headers["Content-Length"] = str(len(content))
            upload = self._upload_stream(content)

        log.debug(f"sending progress request - method={self.method}, url={self.url}")
        loaded = 0
        total: Optional[int] = None
        try:
            async with await self._client_factory() as client:
                request = client.build_request(
                    self.method, self.url, headers=headers, content=upload
                )
                response = await client.send(request, stream=True)
                try:
                    self.status = response.status_code
                    self.reason = response.reason_phrase or ""
                    self.response_headers = response.headers
                    self._charset = response.charset_encoding
                    log.debug(f"server responded with {self.status} {self.reason}")
                    try:
                        total = int(response.headers["Content-Length"])
                    except (KeyError, ValueError):
                        total = None
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        self._buffer.extend(chunk)
                        loaded = response.num_bytes_downloaded
                        self._dispatch(
                            ProgressEvent(
                                "progress", loaded, total or 0, total is not None
                            )
                        )
                finally:
                    await response.aclose()
        except httpx.HTTPError as e:
            log.info(f"{self.method} {self.url} failed: {e}")
            if not self.upload_complete:
                self._dispatch(ProgressEvent("upload.error", error=e))
            self._dispatch(ProgressEvent("error", error=e))
            return
        except asyncio.CancelledError:
            if not self.upload_complete:
                self._dispatch(ProgressEvent("upload.abort"))
            self._dispatch(ProgressEvent("abort"))
            raise
        self._dispatch(ProgressEvent("load", loaded, total or loaded, True))


class LatestValueSlot:
    """
    A channel of capacity one.  ``put`` never blocks and replaces any
    value not yet taken, ``get`` waits for a value and takes it.
    """

    def __init__(self) -> None:
        self._value: Any = None
        self._ready = asyncio.Event()

    def put(self, value: Any) -> None:
        self._value = value
        self._ready.set()

    async def get(self) -> Any:
        await self._ready.wait()
        self._ready.clear()
        return self._value


@dataclass(frozen=True)
class ProgressSnapshot:
    upload: float
    download: float
    done: bool
    error: Optional[BaseException]
    request: ProgressRequest

    @property
    def indeterminate(self) -> bool:
        return self.upload < 0 or self.download < 0


class ProgressTransport:
    """
    The async sequence of snapshots for one transfer.  It may be
    iterated once, by one consumer.

    The first snapshot (all zero) is yielded before the request is
    sent.  The sequence ends after the snapshot with ``done=True``.

    A transfer that fails or gets aborted never reaches ``done``.
    With ``stop_on_error`` (the default) the sequence ends after the
    first snapshot carrying the error; without it the sequence keeps
    waiting for more events, which will never come unless someone else
    drives the request.
    """

    def __init__(
        self,
        request: ProgressRequest,
        body: Union[str, bytes, None] = None,
        stop_on_error: bool = True,
    ) -> None:
        self.request = request
        self.body = body
        self.stop_on_error = stop_on_error
        self.upload_complete = body is None
        self.download_complete = False
        self.failed = False
        self.last_error: Optional[BaseException] = None
        self._slot: Optional[LatestValueSlot] = None
        self._crash: Optional[BaseException] = None
        self._consumed = False
        for event in UPLOAD_EVENTS + DOWNLOAD_EVENTS:
            request.add_event_listener(event, self._on_event)

    def _on_event(self, event: ProgressEvent) -> None:
        if event.type == "upload.load":
            self.upload_complete = True
            ## the download has not started yet
            fraction = 0.0
        elif event.type == "load":
            self.download_complete = True
            fraction = 1.0
            status = self.request.status
            if status is not None and not 200 <= status < 300:
                self.last_error = error.exception_by_status[status](
                    url=self.request.url, reason=self.request.reason, status=status
                )
        elif event.type in ("upload.progress", "progress"):
            self.last_error = None
            fraction = event.fraction
        else:
            self.failed = True
            if event.type.endswith("abort"):
                self.last_error = error.TransferError(
                    url=self.request.url, reason="transfer aborted"
                )
            else:
                self.last_error = error.TransferError(
                    url=self.request.url, reason=str(event.error)
                )
                self.last_error.__cause__ = event.error
            fraction = 0.0
        if self._slot is not None:
            self._slot.put(fraction)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._crash = exc
            if self._slot is not None:
                self._slot.put(0.0)

    def __aiter__(self) -> AsyncIterator[ProgressSnapshot]:
        if self._consumed:
            raise RuntimeError("a progress sequence can only be consumed once")
        self._consumed = True
        return self._run()

    async def _run(self) -> AsyncIterator[ProgressSnapshot]:
        self._slot = LatestValueSlot()
        yield ProgressSnapshot(0.0, 0.0, False, None, self.request)

        task = self.request.start(self.body)
        task.add_done_callback(self._on_task_done)
        try:
            while True:
                ## nothing is put into the slot after the load event
                fraction = await self._slot.get()
                if self._crash is not None:
                    raise self._crash
                yield ProgressSnapshot(
                    upload=1.0 if self.upload_complete else fraction,
                    download=fraction if self.upload_complete else 0.0,
                    done=self.download_complete,
                    error=self.last_error,
                    request=self.request,
                )
                if self.download_complete:
                    break
                if self.failed and self.stop_on_error:
                    break
        finally:
            if not task.done():
                task.cancel()
                await asyncio.wait([task])
