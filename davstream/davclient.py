#!/usr/bin/env python
"""
Sync DAVClient - thin wrapper around AsyncDAVClient using anyio.

Every call runs the async implementation to completion in a new event
loop.  Entities coming back from the async client are rebound to the
sync client, so their operations return results rather than
awaitables.

    with DAVClient("https://dav.example.com/files/", username="me", password="secret") as client:
        docs = client.get_root().mkdir("docs")
        report = docs.upload("report.txt", "all fine")
        print(report.download())
"""
import sys
from typing import Any
from typing import Iterator
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Union

import anyio
import httpx
from anyio.from_thread import start_blocking_portal

from davstream.async_davclient import AsyncDAVClient
from davstream.davobject import DAVEntity
from davstream.lib.url import URL
from davstream.negotiation import TypeParser
from davstream.progress import DEFAULT_CHUNK_SIZE
from davstream.progress import ProgressSnapshot
from davstream.progress import ProgressTransport

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

__all__ = ["DAVClient", "get_davclient"]

_EXHAUSTED = object()


def _run_sync(async_fn, *args, **kwargs):
    """
    Execute an async function synchronously.

    Uses anyio.run() to execute the coroutine in a new event loop.
    """

    async def _wrapper():
        return await async_fn(*args, **kwargs)

    return anyio.run(_wrapper)


def _iterate_sync(transport: ProgressTransport) -> Iterator[ProgressSnapshot]:
    """
    Drive an async progress sequence from sync code.  The transfer
    runs in an event loop in a separate thread, and keeps running
    while the consumer is busy with a snapshot.  Leaving the loop
    early cancels the transfer.
    """
    with start_blocking_portal() as portal:
        snapshots = transport.__aiter__()

        async def _next():
            try:
                return await snapshots.__anext__()
            except StopAsyncIteration:
                return _EXHAUSTED

        try:
            while True:
                snapshot = portal.call(_next)
                if snapshot is _EXHAUSTED:
                    break
                yield snapshot
        finally:
            portal.call(snapshots.aclose)


class DAVClient:
    """
    Synchronous WebDAV client - thin wrapper around AsyncDAVClient.

    Takes the same parameters as AsyncDAVClient.
    """

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        proxy: Optional[str] = None,
        auth: Optional[httpx.Auth] = None,
        timeout: Optional[float] = None,
        ssl_verify_cert: Union[bool, str] = True,
        ssl_cert: Union[str, Tuple[str, str], None] = None,
        headers: Optional[Mapping[str, str]] = None,
        huge_tree: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_stop_on_error: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._async = AsyncDAVClient(
            url=url,
            username=username,
            password=password,
            proxy=proxy,
            auth=auth,
            timeout=timeout,
            ssl_verify_cert=ssl_verify_cert,
            ssl_cert=ssl_cert,
            headers=headers,
            huge_tree=huge_tree,
            chunk_size=chunk_size,
            progress_stop_on_error=progress_stop_on_error,
            transport=transport,
        )

    # Expose commonly accessed attributes
    @property
    def url(self) -> URL:
        return self._async.url

    @property
    def headers(self):
        return self._async.headers

    @property
    def username(self):
        return self._async.username

    @property
    def password(self):
        return self._async.password

    @property
    def auth(self):
        return self._async.auth

    @property
    def timeout(self):
        return self._async.timeout

    @property
    def huge_tree(self) -> bool:
        return self._async.huge_tree

    @property
    def negotiator(self):
        return self._async.negotiator

    def get_auth_header(self) -> Optional[str]:
        return self._async.get_auth_header()

    def __enter__(self) -> Self:
        _run_sync(self._async.__aenter__)
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        _run_sync(self._async.__aexit__, exc_type, exc_value, traceback)

    def close(self) -> None:
        _run_sync(self._async.close)

    def _rebind(self, entity: DAVEntity) -> DAVEntity:
        return type(entity)(client=self, url=entity.url, props=entity.props)

    def add_type_parser(self, content_type: str, parser: TypeParser) -> None:
        self._async.add_type_parser(content_type, parser)

    def request(
        self,
        method: str,
        path: Any = "",
        headers: Optional[Mapping[str, Any]] = None,
        body: Union[str, bytes, None] = None,
        raw: bool = False,
    ) -> Any:
        """Send an HTTP request, see AsyncDAVClient.request"""
        return _run_sync(self._async.request, method, path, headers, body, raw)

    def list(self, url: Any) -> List[DAVEntity]:
        return [self._rebind(e) for e in _run_sync(self._async.list, url)]

    def inspect(self, url: Any) -> DAVEntity:
        return self._rebind(_run_sync(self._async.inspect, url))

    def get_root(self) -> DAVEntity:
        return self._rebind(_run_sync(self._async.get_root))

    def get(self, url: Any, raw: bool = False) -> Any:
        return _run_sync(self._async.get, url, raw)

    def put(self, url: Any, data: Union[str, bytes]) -> Any:
        return _run_sync(self._async.put, url, data)

    def delete(self, url: Any) -> Any:
        return _run_sync(self._async.delete, url)

    def mkdir(self, url: Any) -> Any:
        return _run_sync(self._async.mkdir, url)

    def move(self, url: Any, destination: Any) -> Any:
        return _run_sync(self._async.move, url, destination)

    def get_progress(
        self, url: Any, stop_on_error: Optional[bool] = None
    ) -> Iterator[ProgressSnapshot]:
        """GET with progress, as a generator of snapshots"""
        return _iterate_sync(self._async.get_progress(url, stop_on_error=stop_on_error))

    def put_progress(
        self,
        url: Any,
        data: Union[str, bytes],
        stop_on_error: Optional[bool] = None,
    ) -> Iterator[ProgressSnapshot]:
        """PUT with progress, as a generator of snapshots"""
        return _iterate_sync(
            self._async.put_progress(url, data, stop_on_error=stop_on_error)
        )

    def move_and_inspect(self, url: Any, destination: Any) -> DAVEntity:
        return self._rebind(_run_sync(self._async.move_and_inspect, url, destination))

    def put_and_inspect(self, url: Any, data: Union[str, bytes]) -> DAVEntity:
        return self._rebind(_run_sync(self._async.put_and_inspect, url, data))

    def mkdir_and_inspect(self, url: Any) -> DAVEntity:
        return self._rebind(_run_sync(self._async.mkdir_and_inspect, url))


def get_davclient(
    url: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    config_file: Optional[str] = None,
    config_section: Optional[str] = None,
    environment: bool = True,
    check_config_file: bool = True,
    **kwargs,
) -> Optional[DAVClient]:
    """
    This function will yield a DAVClient object.  It will not try to
    connect.  It will read configuration from various sources, in this
    order:

    * Data from the parameters given
    * Environment variables `WEBDAV_URL`, `WEBDAV_USERNAME`, `WEBDAV_PASSWORD`
    * Configuration file, `WEBDAV_CONFIG_FILE` or `~/.config/davstream/webdav.conf`

    Returns None if no server URL is found anywhere.
    """
    from davstream import config

    params = config.connection_params(
        url=url,
        username=username,
        password=password,
        config_file=config_file,
        section_name=config_section,
        environment=environment,
        check_config_file=check_config_file,
    )
    if "url" not in params:
        return None
    params.update(kwargs)
    return DAVClient(**params)
