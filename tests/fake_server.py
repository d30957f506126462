"""
An in-memory WebDAV server for the tests, plugged into the clients
through httpx.MockTransport.  It implements just enough of RFC 4918
for the library: PROPFIND (depth 0 and 1), GET, PUT, DELETE, MKCOL
and MOVE, with optional Basic authentication.

Rule: None of the tests should initiate any internet communication.
"""
import base64
from typing import Dict
from typing import List
from typing import Optional
from urllib.parse import quote
from urllib.parse import unquote
from urllib.parse import urlparse

import httpx

BASE_URL = "https://dav.example.com/dav/"
ROOT = "/dav/"

CREATED = "2024-03-01T10:00:00Z"
MODIFIED = "Fri, 01 Mar 2024 10:00:00 GMT"


class FakeDAVServer:
    """
    Holds a tree of collections (paths ending with "/") and members.
    Paths are kept percent-decoded.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        prefix: str = "d",
        content_type: str = "application/xml; charset=utf-8",
    ) -> None:
        self.collections = {ROOT}
        self.members: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.prefix = prefix
        self.multistatus_type = content_type
        self.credentials = None
        if username is not None:
            self.credentials = "Basic " + base64.b64encode(
                f"{username}:{password}".encode("utf-8")
            ).decode("ascii")
        ## leave the collection itself out of depth 1 responses
        self.omit_self_href = False

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    ## setup helpers

    def add_collection(self, path: str) -> None:
        if not path.endswith("/"):
            path += "/"
        self.collections.add(path)

    def add_member(
        self, path: str, content: bytes, content_type: str = "text/plain"
    ) -> None:
        self.members[path] = content
        self.content_types[path] = content_type

    ## request handling

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.credentials and request.headers.get("Authorization") != self.credentials:
            return httpx.Response(401, text="go away")
        path = unquote(request.url.path)
        handler = getattr(self, "do_" + request.method, None)
        if handler is None:
            return httpx.Response(405)
        return handler(request, path)

    def _exists(self, path: str) -> bool:
        return path in self.members or self._as_collection(path) in self.collections

    def _as_collection(self, path: str) -> str:
        return path if path.endswith("/") else path + "/"

    def _parent(self, path: str) -> str:
        return path.rstrip("/").rsplit("/", 1)[0] + "/"

    def _response_xml(self, path: str) -> str:
        p = self.prefix + ":" if self.prefix else ""
        if self._as_collection(path) in self.collections:
            path = self._as_collection(path)
            name = path.rstrip("/").rsplit("/", 1)[-1]
            props = f"<{p}resourcetype><{p}collection/></{p}resourcetype>"
        else:
            name = path.rsplit("/", 1)[-1]
            props = (
                f"<{p}resourcetype/>"
                f"<{p}getcontentlength>{len(self.members[path])}</{p}getcontentlength>"
                f"<{p}getcontenttype>{self.content_types[path]}</{p}getcontenttype>"
                f'<{p}getetag>"{len(self.members[path])}-etag"</{p}getetag>'
            )
        return (
            f"<{p}response>"
            f"<{p}href>{quote(path)}</{p}href>"
            f"<{p}propstat><{p}prop>"
            f"<{p}displayname>{quote(name)}</{p}displayname>"
            f"{props}"
            f"</{p}prop><{p}status>HTTP/1.1 200 OK</{p}status></{p}propstat>"
            f"<{p}propstat><{p}prop><{p}creationdate>{CREATED}</{p}creationdate>"
            f"<{p}getlastmodified>{MODIFIED}</{p}getlastmodified></{p}prop>"
            f"<{p}status>HTTP/1.1 200 OK</{p}status></{p}propstat>"
            f"<{p}propstat><{p}prop><{p}quota-used-bytes/></{p}prop>"
            f"<{p}status>HTTP/1.1 404 Not Found</{p}status></{p}propstat>"
            f"</{p}response>"
        )

    def _children(self, path: str) -> List[str]:
        children = [
            c for c in self.collections if c != path and self._parent(c) == path
        ]
        children += [m for m in self.members if self._parent(m) == path]
        return sorted(children)

    def do_PROPFIND(self, request: httpx.Request, path: str) -> httpx.Response:
        if not self._exists(path):
            return httpx.Response(404)
        nodes = [path]
        if request.headers.get("Depth") == "1" and self._as_collection(path) in self.collections:
            nodes = [self._as_collection(path)] + self._children(
                self._as_collection(path)
            )
            if self.omit_self_href:
                nodes = nodes[1:]
        if self.prefix:
            xmlns = f'xmlns:{self.prefix}="DAV:"'
        else:
            xmlns = 'xmlns="DAV:"'
        p = self.prefix + ":" if self.prefix else ""
        body = (
            '<?xml version="1.0" encoding="utf-8"?>'
            f"<{p}multistatus {xmlns}>"
            + "".join(self._response_xml(n) for n in nodes)
            + f"</{p}multistatus>"
        )
        return httpx.Response(
            207,
            content=body.encode("utf-8"),
            headers={"Content-Type": self.multistatus_type},
        )

    def do_GET(self, request: httpx.Request, path: str) -> httpx.Response:
        if path not in self.members:
            return httpx.Response(404, text="not here")
        return httpx.Response(
            200,
            content=self.members[path],
            headers={"Content-Type": self.content_types[path]},
        )

    def do_PUT(self, request: httpx.Request, path: str) -> httpx.Response:
        if self._parent(path) not in self.collections:
            return httpx.Response(409)
        existed = path in self.members
        self.members[path] = request.content
        self.content_types.setdefault(
            path, request.headers.get("Content-Type", "application/octet-stream")
        )
        return httpx.Response(204 if existed else 201)

    def do_DELETE(self, request: httpx.Request, path: str) -> httpx.Response:
        if not self._exists(path):
            return httpx.Response(404)
        coll = self._as_collection(path)
        self.collections = {
            c for c in self.collections if not c.startswith(coll)
        }
        for m in [m for m in self.members if m == path or m.startswith(coll)]:
            del self.members[m]
        return httpx.Response(204)

    def do_MKCOL(self, request: httpx.Request, path: str) -> httpx.Response:
        if self._exists(path):
            return httpx.Response(405)
        if self._parent(path) not in self.collections:
            return httpx.Response(409)
        self.collections.add(self._as_collection(path))
        return httpx.Response(201)

    def do_MOVE(self, request: httpx.Request, path: str) -> httpx.Response:
        if not self._exists(path):
            return httpx.Response(404)
        destination = unquote(urlparse(request.headers["Destination"]).path)
        if self._parent(destination) not in self.collections:
            return httpx.Response(409)
        if path in self.members:
            self.members[destination] = self.members.pop(path)
            self.content_types[destination] = self.content_types.pop(path)
            return httpx.Response(201)
        src = self._as_collection(path)
        dst = self._as_collection(destination)
        self.collections = {
            dst + c[len(src) :] if c.startswith(src) else c for c in self.collections
        }
        for m in [m for m in self.members if m.startswith(src)]:
            self.members[dst + m[len(src) :]] = self.members.pop(m)
            self.content_types[dst + m[len(src) :]] = self.content_types.pop(m)
        return httpx.Response(201)


def sample_server(**kwargs) -> FakeDAVServer:
    """A server holding a few files, to be shared between the test modules"""
    server = FakeDAVServer(**kwargs)
    server.add_collection("/dav/docs/")
    server.add_collection("/dav/photos/")
    server.add_member("/dav/docs/readme.txt", b"hello world\n")
    server.add_member("/dav/docs/my notes.txt", b"spaces in the name")
    server.add_member("/dav/data.bin", bytes(range(256)), "application/octet-stream")
    return server
