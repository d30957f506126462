#!/usr/bin/env python
"""
Async WebDAV Usage Examples

The async API is available through the davstream.aio module:

    from davstream import aio

    async with aio.AsyncDAVClient(url=..., username=..., password=...) as client:
        root = await client.get_root()

To run this example:

    env WEBDAV_USERNAME=me \
        WEBDAV_PASSWORD=xxx \
        WEBDAV_URL=https://dav.example.com/remote.php/dav/files/me/ \
    python ./examples/async_usage_examples.py
"""
import asyncio
import sys

# Use local davstream library, not system-installed
sys.path.insert(0, "..")
sys.path.insert(0, ".")

from davstream import aio


async def walk(collection, depth=0):
    """Print the tree below collection"""
    for entity in await collection.list():
        print("  " * depth + entity.displayname)
        if isinstance(entity, aio.Collection) and depth < 2:
            await walk(entity, depth + 1)


async def run_examples():
    client = aio.get_async_davclient()
    if client is None:
        sys.exit("Set WEBDAV_URL (and WEBDAV_USERNAME, WEBDAV_PASSWORD)")
    async with client:
        root = await client.get_root()
        await walk(root)

        member = await root.upload("davstream-async-example.txt", "hello")
        try:
            async for snapshot in member.download_with_progress():
                print(f"download {snapshot.download:6.1%}")
            print(snapshot.request.response_text)
        finally:
            await member.delete()


if __name__ == "__main__":
    asyncio.run(run_examples())
