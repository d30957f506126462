#!/usr/bin/env python
"""
This file contains the entity classes: DAVEntity, the common base,
and its two variants, Collection (a "directory") and Member (a
"file").  An entity is a snapshot of what the server told about a
resource at some point: the URL and the merged prop element from a
PROPFIND response.  Nothing is ever written back into an entity;
operations that change things on the server return new entities.

Entities are created by the client (see create_entity) and keep a
reference to it.  All operations go through the client, so with an
AsyncDAVClient the operations return awaitables, with a DAVClient they
return the result directly:

    >>> root = client.get_root()
    >>> for entity in root.list():
    ...     print(entity.displayname, entity.resourcetype)
"""
import copy
import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any
from typing import Optional
from typing import TYPE_CHECKING
from typing import Union
from urllib.parse import quote
from urllib.parse import unquote

from lxml import etree
from lxml.etree import _Element

from davstream.elements import dav
from davstream.lib import error
from davstream.lib.url import URL

if TYPE_CHECKING:
    from davstream.async_davclient import AsyncDAVClient
    from davstream.davclient import DAVClient

log = logging.getLogger("davstream")


def child_url(collection_url: URL, name: str, collection: bool = False) -> URL:
    """The URL of the member called name inside collection_url"""
    path = quote(name)
    if collection and not path.endswith("/"):
        path += "/"
    return collection_url.ensure_trailing_slash().join(path)


def _tag(element_class) -> str:
    return element_class.localname()


def merged_props(response: _Element) -> _Element:
    """
    All the properties of one response element, collected into one
    prop element.  A server may split the properties over several
    propstat elements; the ones reported as 404 (asked for but not
    existing) are skipped.
    """
    prop = etree.Element(_tag(dav.Prop))
    for propstat in response.findall(_tag(dav.PropStat)):
        status = propstat.find(_tag(dav.Status))
        if status is not None and status.text and " 404" in status.text:
            continue
        for p in propstat.findall(_tag(dav.Prop)):
            for child in p:
                prop.append(copy.deepcopy(child))
    return prop


def create_entity(
    client: Union["AsyncDAVClient", "DAVClient"], response: _Element
) -> "DAVEntity":
    """
    Wrap one response element of a multistatus into a Collection or a
    Member, depending on the resourcetype.
    """
    href = response.find(_tag(dav.Href))
    if href is None or not (href.text or "").strip():
        raise error.ResponseError(
            reason="response without href: %s"
            % etree.tostring(response, encoding="unicode")
        )
    props = merged_props(response)
    url = client.url.join(href.text.strip())
    if props.find(_tag(dav.ResourceType) + "/" + _tag(dav.Collection)) is not None:
        return Collection(client=client, url=url.ensure_trailing_slash(), props=props)
    return Member(client=client, url=url, props=props)


class DAVEntity:
    """
    Base class for collections and members.  Should not be
    instantiated directly, use create_entity or the client.
    """

    resourcetype: str = ""

    def __init__(
        self,
        client: Union["AsyncDAVClient", "DAVClient"],
        url: Union[str, URL],
        props: Optional[_Element] = None,
    ) -> None:
        self.client = client
        self._url = URL.objectify(url)
        self._props = props if props is not None else etree.Element(_tag(dav.Prop))

    @property
    def url(self) -> URL:
        return self._url

    @property
    def props(self) -> _Element:
        return self._props

    def __repr__(self) -> str:
        return "%s(%s)" % (self.__class__.__name__, self.url)

    def __str__(self) -> str:
        return str(self.url)

    def _prop_text(self, element_class) -> Optional[str]:
        value = self.props.findtext(_tag(element_class))
        if value is None:
            return None
        return value.strip()

    @property
    def href(self) -> str:
        return str(self.url)

    @property
    def canonical_url(self) -> str:
        return str(self.url.canonical())

    @property
    def name(self) -> str:
        return self.url.name

    @property
    def displayname(self) -> str:
        value = self._prop_text(dav.DisplayName)
        if not value:
            return self.name
        return unquote(value)

    @property
    def creationdate(self) -> Optional[datetime]:
        """creationdate is an RFC 3339 timestamp, i.e. 2024-03-01T10:00:00Z"""
        value = self._prop_text(dav.CreationDate)
        if not value:
            return None
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            error.weirdness("unparseable creationdate", value)
            return None

    @property
    def lastmodified(self) -> Optional[datetime]:
        """getlastmodified is an RFC 1123 date, i.e. Fri, 01 Mar 2024 10:00:00 GMT"""
        value = self._prop_text(dav.GetLastModified)
        if not value:
            return None
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            error.weirdness("unparseable getlastmodified", value)
            return None

    @property
    def etag(self) -> Optional[str]:
        return self._prop_text(dav.GetEtag)

    def get_parent(self) -> Any:
        return self.client.inspect(self.url.parent())

    def move(self, target: Any) -> Any:
        """
        Move this entity to target, resolved against this entity's URL.
        Returns the entity at the new place.  If the move succeeds and
        the following PROPFIND fails, the resource stays moved.
        """
        return self.client.move_and_inspect(self.url, target)

    def rename(self, new_name: str) -> Any:
        """Move this entity to new_name in the same collection"""
        return self.move(self._sibling(new_name))

    def _sibling(self, new_name: str) -> URL:
        return self.url.join(quote(new_name))

    def delete(self) -> Any:
        return self.client.delete(self.url)

    def reload(self) -> Any:
        """A fresh entity for the same URL; this one is left as it is"""
        return self.client.inspect(self.url)


class Collection(DAVEntity):
    """
    A WebDAV collection.  The URL always ends with a slash.
    """

    resourcetype = "collection"

    def _sibling(self, new_name: str) -> URL:
        ## the URL ends with a slash, so the parent is one step further up
        return self.url.join("../" + quote(new_name) + "/")

    def list(self) -> Any:
        return self.client.list(self.url)

    def upload(self, name: str, data: Union[str, bytes]) -> Any:
        """Store data as a new member called name; returns the new Member"""
        return self.client.put_and_inspect(child_url(self.url, name), data)

    def upload_with_progress(
        self, name: str, data: Union[str, bytes], stop_on_error: Optional[bool] = None
    ) -> Any:
        return self.client.put_progress(
            child_url(self.url, name), data, stop_on_error=stop_on_error
        )

    def mkdir(self, name: str) -> Any:
        """Create a sub-collection called name; returns the new Collection"""
        return self.client.mkdir_and_inspect(
            child_url(self.url, name, collection=True)
        )


class Member(DAVEntity):
    """
    A WebDAV resource that is not a collection, i.e. a file.
    """

    resourcetype = "file"

    @property
    def contentlength(self) -> Optional[int]:
        value = self._prop_text(dav.GetContentLength)
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            error.weirdness("unparseable getcontentlength", value)
            return None

    @property
    def contenttype(self) -> Optional[str]:
        return self._prop_text(dav.GetContentType)

    def download(self, raw: bool = False) -> Any:
        return self.client.get(self.url, raw=raw)

    def download_with_progress(self, stop_on_error: Optional[bool] = None) -> Any:
        return self.client.get_progress(self.url, stop_on_error=stop_on_error)

    def update(self, data: Union[str, bytes]) -> Any:
        """Replace the content; returns the reloaded Member"""
        return self.client.put_and_inspect(self.url, data)

    def update_with_progress(
        self, data: Union[str, bytes], stop_on_error: Optional[bool] = None
    ) -> Any:
        return self.client.put_progress(self.url, data, stop_on_error=stop_on_error)
