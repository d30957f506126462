#!/usr/bin/env python
"""
Decoding of response bodies, chosen by the Content-Type the server
declares.

Every client owns one ``ContentNegotiator``.  It holds an ordered
registry mapping a content-type fragment to a decode function; the
first fragment found inside the response's Content-Type header wins.
Matching is by substring so that parameters like ``; charset=utf-8``
don't get in the way.
"""
import logging
from typing import Any
from typing import Callable
from typing import Dict
from typing import Optional

import httpx
import lxml.html
from lxml import etree
from lxml.etree import _Element

from davstream.lib.namespace import nsmap

log = logging.getLogger("davstream")

TypeParser = Callable[[httpx.Response], Any]

_DAV_PREFIX = "{%s}" % nsmap["D"]


def strip_dav_namespace(tree: _Element) -> _Element:
    """
    Rewrite all elements in the DAV: namespace to their local name, so
    "displayname" or "resourcetype/collection" can be looked up no
    matter which prefix (d:, D:, a default xmlns) the server used.
    Elements in other namespaces keep their qualified tags.
    """
    for elem in tree.iter():
        if isinstance(elem.tag, str) and elem.tag.startswith(_DAV_PREFIX):
            elem.tag = elem.tag[len(_DAV_PREFIX) :]
    etree.cleanup_namespaces(tree)
    return tree


def parse_xml(content: bytes, huge_tree: bool = False) -> _Element:
    tree = etree.XML(
        content,
        parser=etree.XMLParser(remove_blank_text=True, huge_tree=huge_tree),
    )
    if log.isEnabledFor(logging.DEBUG):
        log.debug(etree.tostring(tree, pretty_print=True))
    return strip_dav_namespace(tree)


def parse_html(content: bytes) -> _Element:
    return lxml.html.document_fromstring(content)


class ContentNegotiator:
    """
    The content-type registry of one client.

    >>> negotiator = ContentNegotiator()
    >>> negotiator.add_type_parser("text/csv", lambda r: r.text.split(","))
    """

    def __init__(self, huge_tree: bool = False) -> None:
        self.huge_tree = huge_tree
        self.types: Dict[str, TypeParser] = {
            "text/plain": lambda r: r.text,
            "application/xml": self._xml,
            "application/html": self._html,
            "application/json": lambda r: r.json(),
            ## what most servers send for multistatus bodies and error pages
            "text/xml": self._xml,
            "text/html": self._html,
        }

    def _xml(self, response: httpx.Response) -> _Element:
        return parse_xml(response.content, huge_tree=self.huge_tree)

    def _html(self, response: httpx.Response) -> _Element:
        return parse_html(response.content)

    def add_type_parser(self, content_type: str, parser: TypeParser) -> None:
        """
        Register parser for responses whose Content-Type contains
        content_type.  An existing entry for the very same key is
        replaced and keeps its position, new keys go last.
        """
        self.types[content_type] = parser

    def find_parser(self, content_type: str) -> Optional[TypeParser]:
        for type_ in self.types:
            if type_ in content_type:
                return self.types[type_]
        return None

    def decode(self, content_type: str, response: httpx.Response) -> Any:
        parser = self.find_parser(content_type or "")
        if parser is None:
            log.debug(f"no parser for content type {content_type}, returning text")
            return response.text
        return parser(response)
