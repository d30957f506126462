#!/usr/bin/env python
"""
Async-first WebDAV client.

This module provides the core async WebDAV client functionality.
For sync usage, see the davclient.py wrapper.

    async with AsyncDAVClient("https://dav.example.com/files/", username="me", password="secret") as client:
        root = await client.get_root()
        for entity in await root.list():
            print(entity.displayname, entity.resourcetype)
"""
import base64
import logging
import sys
from typing import Any
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Union
from urllib.parse import unquote

import httpx
from lxml import etree
from lxml.etree import _Element

from davstream import __version__
from davstream.davobject import create_entity
from davstream.davobject import DAVEntity
from davstream.elements import dav
from davstream.lib import error
from davstream.lib.python_utilities import to_normal_str
from davstream.lib.python_utilities import to_wire
from davstream.lib.url import URL
from davstream.negotiation import ContentNegotiator
from davstream.negotiation import TypeParser
from davstream.progress import DEFAULT_CHUNK_SIZE
from davstream.progress import ProgressRequest
from davstream.progress import ProgressTransport

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self

log = logging.getLogger("davstream")

## The properties asked for in every PROPFIND
ENTITY_PROPS = [
    dav.DisplayName(),
    dav.ResourceType(),
    dav.CreationDate(),
    dav.GetLastModified(),
    dav.GetEtag(),
    dav.GetContentLength(),
    dav.GetContentType(),
]


class AsyncDAVClient:
    """
    Async WebDAV client using httpx.

    This is the primary implementation. The sync DAVClient wraps this class.

    The client never holds on to entities; entities hold on to the
    client, and every entity operation comes back here.
    """

    proxy: Optional[str] = None
    url: URL = None
    huge_tree: bool = False

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
        """
        Initialize async DAV client.

        Args:
            url: WebDAV server base URL.  A trailing slash is added if missing.
            username: Username for Basic authentication
            password: Password for Basic authentication
            proxy: Proxy server URL
            auth: httpx.Auth object for custom authentication, replaces Basic auth
            timeout: Request timeout in seconds
            ssl_verify_cert: SSL certificate verification (bool or CA bundle path)
            ssl_cert: Client SSL certificate
            headers: Additional headers sent with every request
            huge_tree: Enable huge XML tree parsing
            chunk_size: Chunk size for transfers with progress
            progress_stop_on_error: Default for ending progress sequences on transfer errors
            transport: httpx transport, i.e. httpx.MockTransport in tests
        """
        if not url:
            raise ValueError("A server URL is required")
        if not str(url).endswith("/"):
            url = str(url) + "/"
        self.url = URL.objectify(url)
        log.debug("self.url: " + str(self.url))

        # Handle credentials from URL
        if self.url.username is not None:
            username = unquote(self.url.username)
            password = unquote(self.url.password or "")
            self.url = self.url.unauth()

        self.username = username
        self.password = password
        self.auth = auth
        self._auth_header: Optional[str] = None

        # Configure proxy
        self._proxy = None
        if proxy is not None:
            _proxy = proxy
            if "://" not in proxy:
                _proxy = self.url.scheme + "://" + proxy
            log.debug("init - proxy: %s" % (_proxy))
            self._proxy = _proxy

        self.headers = httpx.Headers(
            {"User-Agent": "python-davstream/" + __version__}
        )
        self.headers.update(headers or {})

        self.timeout = timeout
        self.ssl_verify_cert = ssl_verify_cert
        self.ssl_cert = ssl_cert
        self.huge_tree = huge_tree
        self.chunk_size = chunk_size
        self.progress_stop_on_error = progress_stop_on_error
        self._transport = transport
        self.negotiator = ContentNegotiator(huge_tree=huge_tree)

    async def _get_client(self) -> httpx.AsyncClient:
        """Create a fresh httpx AsyncClient.

        When used from sync wrappers (via anyio.run()), we need to create
        a fresh client each time because the connection pool gets invalidated
        when the event loop closes.
        """
        transport = self._transport
        if transport is None and self._proxy:
            transport = httpx.AsyncHTTPTransport(proxy=self._proxy)

        # Disable connection pooling to avoid stale connections
        # when used from sync context with multiple anyio.run() calls
        limits = httpx.Limits(max_keepalive_connections=0)

        return httpx.AsyncClient(
            auth=self.auth,
            timeout=self.timeout,
            verify=self.ssl_verify_cert,
            cert=self.ssl_cert,
            transport=transport,
            limits=limits,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    async def close(self) -> None:
        """Nothing is kept open between requests; kept for symmetry with the sync client."""
        pass

    def get_auth_header(self) -> Optional[str]:
        """
        The Basic Authorization header for the configured credentials.
        It's computed once; credentials are not expected to change
        during the lifetime of the client.
        """
        if self.auth is not None:
            return None
        if self.username is None and self.password is None:
            return None
        if self._auth_header is None:
            credentials = "%s:%s" % (self.username or "", self.password or "")
            token = base64.b64encode(credentials.encode("utf-8")).decode("ascii")
            self._auth_header = "Basic " + token
        return self._auth_header

    def _build_headers(
        self, headers: Optional[Mapping[str, Any]] = None
    ) -> httpx.Headers:
        ## header names are case insensitive, the caller always wins
        combined_headers = httpx.Headers(self.headers)
        auth_header = self.get_auth_header()
        if auth_header:
            combined_headers["Authorization"] = auth_header
        combined_headers.update({k: str(v) for k, v in (headers or {}).items()})
        return combined_headers

    @staticmethod
    def _loggable_headers(headers: Mapping[str, str]) -> Dict[str, str]:
        return {
            k: ("*****" if k.lower() == "authorization" else v)
            for k, v in headers.items()
        }

    def add_type_parser(self, content_type: str, parser: TypeParser) -> None:
        """Decode responses whose Content-Type contains content_type with parser"""
        self.negotiator.add_type_parser(content_type, parser)

    async def request(
        self,
        method: str,
        path: Any = "",
        headers: Optional[Mapping[str, Any]] = None,
        body: Union[str, bytes, None] = None,
        raw: bool = False,
    ) -> Any:
        """
        Send an HTTP request to the WebDAV server.

        This is the core method that all other HTTP methods use.

        Returns the decoded body, chosen by the Content-Type of the
        response; the status code if the response has no Content-Type;
        the httpx.Response itself if raw is set.  Raises
        error.ProtocolError (or a subclass) if the status is not 2xx.
        """
        url_obj = self.url.join(path)
        combined_headers = self._build_headers(headers)

        log.debug(
            "sending request - method={0}, url={1}, headers={2}\nbody:\n{3}".format(
                method,
                str(url_obj),
                self._loggable_headers(combined_headers),
                to_normal_str(body),
            )
        )

        async with await self._get_client() as client:
            r = await client.request(
                method,
                str(url_obj),
                content=to_wire(body),
                headers=combined_headers,
            )
        log.debug("server responded with %i %s" % (r.status_code, r.reason_phrase))

        if not r.is_success:
            raise error.exception_by_status[r.status_code](
                url=str(url_obj), reason=r.reason_phrase, status=r.status_code
            )
        if raw:
            return r
        if "Content-Type" not in r.headers:
            return r.status_code
        return self.negotiator.decode(r.headers["Content-Type"], r)

    def _progress_request(self, method: str, path: Any) -> ProgressRequest:
        req = ProgressRequest(self._get_client, chunk_size=self.chunk_size)
        req.open(method, self.url.join(path))
        for name, value in self._build_headers().items():
            req.set_request_header(name, value)
        return req

    def _propfind_body(self) -> bytes:
        root = dav.Propfind() + [dav.Prop() + ENTITY_PROPS]
        return etree.tostring(
            root.xmlelement(),
            encoding="utf-8",
            xml_declaration=True,
            pretty_print=bool(error.debug_dump_communication),
        )

    async def propfind(self, url: Any = "", depth: int = 0) -> _Element:
        """PROPFIND for the entity properties; returns the decoded multistatus"""
        tree = await self.request(
            "PROPFIND",
            url,
            {"Depth": str(depth), "Content-Type": 'application/xml; charset="utf-8"'},
            self._propfind_body(),
        )
        if not isinstance(tree, etree._Element):
            raise error.ResponseError(
                url=str(self.url.join(url)),
                reason="expected a multistatus XML body, got %r" % (tree,),
            )
        return tree

    @staticmethod
    def _responses(tree: _Element) -> List[_Element]:
        """
        The general format of inbound data is something like this:

        <multistatus>
            <response>(...)</response>
            <response>(...)</response>
            (...)
        </multistatus>

        but sometimes the multistatus element is missing.  We don't want
        to bother with the multistatus tag, we just want the response list.
        """
        if tree.tag == dav.Response.localname():
            return [tree]
        if tree.tag != dav.MultiStatus.localname():
            error.weirdness("expected a multistatus element", tree)
        return tree.findall(".//" + dav.Response.localname())

    # ==================== Primitive operations ====================

    async def list(self, url: Any) -> List[DAVEntity]:
        """The children of the collection at url"""
        collection_url = self.url.join(url)
        responses = self._responses(await self.propfind(collection_url, depth=1))
        entities = [create_entity(self, r) for r in responses]
        me = collection_url.canonical().strip_trailing_slash()
        children = [
            e for e in entities if e.url.canonical().strip_trailing_slash() != me
        ]
        if len(children) == len(entities) and entities:
            ## the server spelled our own href differently - it's the first one
            error.weirdness(
                "no response in the multistatus matches %s" % collection_url
            )
            children = entities[1:]
        return children

    async def inspect(self, url: Any) -> DAVEntity:
        """The entity at url"""
        responses = self._responses(await self.propfind(url, depth=0))
        if not responses:
            raise error.ResponseError(
                url=str(self.url.join(url)), reason="no response element in multistatus"
            )
        error.assert_(len(responses) == 1)
        return create_entity(self, responses[0])

    async def get_root(self) -> DAVEntity:
        return await self.inspect(self.url)

    async def get(self, url: Any, raw: bool = False) -> Any:
        return await self.request("GET", url, raw=raw)

    async def put(self, url: Any, data: Union[str, bytes]) -> Any:
        return await self.request("PUT", url, body=data)

    async def delete(self, url: Any) -> Any:
        return await self.request("DELETE", url)

    async def mkdir(self, url: Any) -> Any:
        return await self.request("MKCOL", url)

    async def move(self, url: Any, destination: Any) -> Any:
        """
        MOVE url to destination.  A relative destination is resolved
        against url, like a link on the page at url would be.
        """
        source = self.url.join(url)
        return await self.request(
            "MOVE", source, {"Destination": str(source.join(destination))}
        )

    def get_progress(
        self, url: Any, stop_on_error: Optional[bool] = None
    ) -> ProgressTransport:
        """GET with progress; iterate the result with async for"""
        if stop_on_error is None:
            stop_on_error = self.progress_stop_on_error
        return ProgressTransport(
            self._progress_request("GET", url), stop_on_error=stop_on_error
        )

    def put_progress(
        self,
        url: Any,
        data: Union[str, bytes],
        stop_on_error: Optional[bool] = None,
    ) -> ProgressTransport:
        """PUT with progress; iterate the result with async for"""
        if stop_on_error is None:
            stop_on_error = self.progress_stop_on_error
        return ProgressTransport(
            self._progress_request("PUT", url), data, stop_on_error=stop_on_error
        )

    # ==================== Composed operations ====================
    # Used by the entities.  No roll back: if the second step fails,
    # the first one stays done.

    async def move_and_inspect(self, url: Any, destination: Any) -> DAVEntity:
        target = self.url.join(url).join(destination)
        await self.move(url, target)
        return await self.inspect(target)

    async def put_and_inspect(self, url: Any, data: Union[str, bytes]) -> DAVEntity:
        await self.put(url, data)
        return await self.inspect(url)

    async def mkdir_and_inspect(self, url: Any) -> DAVEntity:
        await self.mkdir(url)
        return await self.inspect(url)


def get_async_davclient(
    url: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    config_file: Optional[str] = None,
    config_section: Optional[str] = None,
    environment: bool = True,
    check_config_file: bool = True,
    **kwargs,
) -> Optional[AsyncDAVClient]:
    """
    An AsyncDAVClient configured from the parameters, the environment
    or a config file, see davstream.config.connection_params.  Extra
    keyword arguments go directly to the client.  Returns None if no
    server URL was found anywhere.
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
        log.info("no WebDAV server URL configured")
        return None
    params.update(kwargs)
    return AsyncDAVClient(**params)
