#!/usr/bin/env python
"""
Async-first WebDAV API.

    from davstream import aio

    async with aio.AsyncDAVClient(url=..., username=..., password=...) as client:
        root = await client.get_root()
        for entity in await root.list():
            print(entity.name)

        async for snapshot in client.put_progress("big.iso", data):
            print(snapshot.upload, snapshot.download)

For sync code, use:

    from davstream import DAVClient
"""
# Re-export async components for convenience
from davstream.async_davclient import AsyncDAVClient
from davstream.async_davclient import get_async_davclient
from davstream.davobject import Collection
from davstream.davobject import DAVEntity
from davstream.davobject import Member
from davstream.progress import ProgressSnapshot
from davstream.progress import ProgressTransport

__all__ = [
    # Client
    "AsyncDAVClient",
    "get_async_davclient",
    # Entities
    "DAVEntity",
    "Collection",
    "Member",
    # Progress
    "ProgressSnapshot",
    "ProgressTransport",
]
