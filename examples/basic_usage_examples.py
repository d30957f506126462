"""
Sync WebDAV Usage Examples

To run this example:

    env WEBDAV_USERNAME=me \
        WEBDAV_PASSWORD=xxx \
        WEBDAV_URL=https://dav.example.com/remote.php/dav/files/me/ \
    python ./examples/basic_usage_examples.py
"""
import sys

## We'll try to use the local davstream library, not the system-installed
sys.path.insert(0, "..")
sys.path.insert(0, ".")

import davstream
from davstream.lib import error


def run_examples():
    """
    Run through all the examples, one by one
    """
    with davstream.get_davclient() as client:
        root = client.get_root()
        print(f"Connected to {root.url}")

        ## List what's in the root collection
        for entity in root.list():
            print(f"{entity.resourcetype:10} {entity.displayname} {entity.lastmodified}")

        ## Create a working collection.  405 means it's already there.
        try:
            workdir = root.mkdir("davstream-example")
        except error.MethodNotAllowedError:
            workdir = client.inspect("davstream-example/")

        try:
            ## Upload a file, and report the progress while doing so
            data = b"0123456789abcdef" * 100000
            for snapshot in workdir.upload_with_progress("numbers.txt", data):
                print(f"upload {snapshot.upload:6.1%} download {snapshot.download:6.1%}")
            if snapshot.error:
                raise snapshot.error

            numbers = client.inspect(workdir.url.join("numbers.txt"))
            print(f"{numbers.name}: {numbers.contentlength} bytes, {numbers.contenttype}")

            ## Rename it, and fetch the content back
            renamed = numbers.rename("numbers.dat")
            assert renamed.download(raw=True).content == data
        finally:
            workdir.delete()


if __name__ == "__main__":
    run_examples()
