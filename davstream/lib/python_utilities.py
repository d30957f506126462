from typing import Optional
from typing import Union


def to_wire(text: Union[str, bytes, None]) -> Optional[bytes]:
    """
    Request bodies go on the wire as they are given - str is encoded
    to UTF-8, bytes are left alone.  No newline translation is done,
    file content must survive a round trip byte by byte.
    """
    if text is None:
        return None
    if isinstance(text, str):
        text = text.encode("utf-8")
    return bytes(text)


def to_normal_str(text: Union[str, bytes, None]) -> Optional[str]:
    """
    Make sure we return a normal string, no matter if we got str or
    bytes.  Used for logging and for percent-decoded names.
    """
    if text is None:
        return text
    if not isinstance(text, str):
        text = text.decode("utf-8", errors="replace")
    return text


def to_unicode(text):
    if text and isinstance(text, bytes):
        return text.decode("utf-8")
    return text
