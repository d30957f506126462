#!/usr/bin/env python
import logging

__version__ = "0.1.0"

from .davclient import DAVClient
from .davclient import get_davclient
from .davobject import Collection
from .davobject import DAVEntity
from .davobject import Member

# Silence notification of no default logging handler
log = logging.getLogger("davstream")
log.addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "DAVClient",
    "get_davclient",
    "DAVEntity",
    "Collection",
    "Member",
]
