"""Line Prefixer — put ``"<directory>: "`` in front of every output line.

Manifesto:
    Prefixing is driven purely by an "at start of line" flag.  Nothing is
    buffered beyond that flag: bytes go out in the order they arrived, and a
    line may reach the sink in several partial writes.  That keeps output
    responsive at the cost of never reassembling whole lines.

ARCHITECTURE
────────────
::

    prefix_lines(data, prefix, at_line_start) -> (out, at_line_start)
        pure, no I/O

    LinePrefixer(prefix)
      ├── .at_line_start     ─ True until a non-newline byte is emitted
      └── .feed(data)        ─ prefix_lines() with the carried flag

Example::

    >>> p = LinePrefixer("src")
    >>> p.feed(b"one\\ntw")
    b'src: one\\nsrc: tw'
    >>> p.feed(b"o\\n")
    b'o\\n'

Tags:
    within, execution, prefix, output

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os

NEWLINE = b"\n"
SEPARATOR = b": "


def prefix_lines(data: bytes, prefix: bytes, at_line_start: bool) -> tuple[bytes, bool]:
    """Prefix every line start in ``data``.

    ``prefix`` is the full marker to insert (directory name plus ``": "``).
    A marker is only emitted together with the first byte of its line, so an
    empty chunk yields ``b""`` and leaves the flag as it was.

    Returns:
        The bytes to write and the flag to carry into the next call.
    """
    if not data:
        return b"", at_line_start

    out = bytearray()
    pos = 0
    size = len(data)
    while pos < size:
        end = data.find(NEWLINE, pos)
        end = size if end == -1 else end + 1
        if at_line_start:
            out += prefix
        out += data[pos:end]
        at_line_start = data[end - 1] == NEWLINE[0]
        pos = end
    return bytes(out), at_line_start


class LinePrefixer:
    """Carries the prefix and the line-start flag for one output stream."""

    def __init__(self, prefix: str | bytes) -> None:
        name = os.fsencode(prefix) if isinstance(prefix, str) else prefix
        self.prefix = name
        self._marker = name + SEPARATOR
        self.at_line_start = True

    def feed(self, data: bytes) -> bytes:
        out, self.at_line_start = prefix_lines(data, self._marker, self.at_line_start)
        return out


__all__ = ["LinePrefixer", "prefix_lines"]
