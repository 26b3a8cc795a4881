"""Shared read-only text helpers for log collectors."""

from __future__ import annotations

import codecs

_BOMS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def detect_encoding(head: bytes) -> str:
    """
    Windows boot logs are written as UTF-16 (ntbtlog.txt) or ANSI/UTF-8 (Panther logs).
    """
    for bom, enc in _BOMS:
        if head.startswith(bom):
            return enc
    # UTF-16LE without BOM: every other byte of ASCII text is NUL.
    if len(head) >= 4 and head[1:2] == b"\x00" and head[3:4] == b"\x00":
        return "utf-16-le"
    return "utf-8"


def decode_log(data: bytes) -> str:
    return data.decode(detect_encoding(data[:4]), errors="replace")


def read_bytes_shared(path: str, offset: int = 0) -> bytes:
    """
    Read from `offset` to EOF.

    Python opens files with FILE_SHARE_READ | FILE_SHARE_WRITE on Windows, so a writer that is appending to the
    log (setup, the boot loader) is never blocked by us.
    """
    with open(path, "rb") as f:
        if offset:
            f.seek(offset)
        return f.read()
