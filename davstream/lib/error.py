#!/usr/bin/env python
import logging
from collections import defaultdict
from typing import Dict
from typing import Optional
from typing import Type

from davstream import __version__

debug_dump_communication = False
try:
    import os

    ## Environmental variables prepended with "PYTHON_DAVSTREAM" are used for debug purposes,
    ## environmental variables prepended with "WEBDAV_" are for connection parameters
    debug_dump_communication = os.environ.get("PYTHON_DAVSTREAM_COMMDUMP", False)
    ## one of DEBUG_PDB, DEBUG, DEVELOPMENT, PRODUCTION
    debugmode = os.environ["PYTHON_DAVSTREAM_DEBUGMODE"]
except KeyError:
    if "dev" in __version__ or __version__ == "(unknown)":
        debugmode = "DEVELOPMENT"
    else:
        debugmode = "PRODUCTION"

log = logging.getLogger("davstream")
if debugmode.startswith("DEBUG"):
    log.setLevel(logging.DEBUG)
else:
    log.setLevel(logging.WARNING)


def weirdness(*reasons):
    from davstream.lib.debug import xmlstring

    reason = " : ".join([xmlstring(x) for x in reasons])
    log.warning(f"Deviation from expectations found: {reason}")
    if debugmode == "DEBUG_PDB":
        log.error(f"Dropping into debugger due to {reason}")
        import pdb

        pdb.set_trace()


def assert_(condition: object) -> None:
    try:
        assert condition
    except AssertionError:
        if debugmode == "PRODUCTION":
            log.error(
                "Deviation from expectations found.  %s" % ERR_FRAGMENT, exc_info=True
            )
        elif debugmode == "DEBUG_PDB":
            log.error("Deviation from expectations found.  Dropping into debugger")
            import pdb

            pdb.set_trace()
        else:
            raise


ERR_FRAGMENT: str = "Please consider raising an issue, include this error and the traceback (if any) and tell what server you are using"


class DAVError(Exception):
    url: Optional[str] = None
    reason: str = "no reason"

    def __init__(self, url: Optional[str] = None, reason: Optional[str] = None) -> None:
        if url:
            self.url = url
        if reason:
            self.reason = reason

    def __str__(self) -> str:
        return "%s at '%s', reason %s" % (
            self.__class__.__name__,
            self.url,
            self.reason,
        )


class ProtocolError(DAVError):
    """
    The server answered with a non-success HTTP status.  The status
    property holds the numeric code, so callers can tell i.e. "not
    found" (404) apart from "already exists" (405/409).
    """

    status: Optional[int] = None

    def __init__(
        self,
        url: Optional[str] = None,
        reason: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(url=url, reason=reason)
        if status is not None:
            self.status = status

    def __str__(self) -> str:
        return "%s at '%s', status %s %s" % (
            self.__class__.__name__,
            self.url,
            self.status,
            self.reason,
        )


class AuthorizationError(ProtocolError):
    """
    The client encountered an HTTP 401 or 403 error and is passing it on
    to the user. The url property will contain the url in question,
    the reason property will contain the excuse the server sent.
    """

    pass


class NotFoundError(ProtocolError):
    pass


class MethodNotAllowedError(ProtocolError):
    pass


class ConflictError(ProtocolError):
    pass


class TransferError(DAVError):
    """
    A progress-reporting transfer failed or was aborted.  Never raised
    by the library; it is handed over in the error field of a
    ProgressSnapshot.
    """

    pass


class ResponseError(DAVError):
    pass


exception_by_status: Dict[int, Type[ProtocolError]] = defaultdict(
    lambda: ProtocolError
)
exception_by_status[401] = AuthorizationError
exception_by_status[403] = AuthorizationError
exception_by_status[404] = NotFoundError
exception_by_status[405] = MethodNotAllowedError
exception_by_status[409] = ConflictError
