# Streaming reader for ar archives.
# Copyright (C) 2025  Arsen Arsenović <arsen@managarm.org>

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.

# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""
This module reads the ``ar`` container Debian packages are wrapped in.  Members are
read sequentially, straight off the underlying stream, so it does not need to be
seekable.
"""

import io
import struct
import typing as T
from dataclasses import dataclass

from debjni.errors import ArchiveFormatError

AR_MAGIC = b"!<arch>\n"

# name, mtime, uid, gid, mode, size, terminator
_HEADER = struct.Struct("16s12s6s6s8s10s2s")
_HEADER_END = b"`\n"


class MemberReader(io.RawIOBase):
    """
    A read-only view of one archive member.  Reads never go past the end of the
    member.
    """

    def __init__(self, source: T.BinaryIO, name: str, size: int) -> None:
        self._source = source
        self.name = name
        self.remaining = size

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: T.Any) -> int:
        if self.remaining == 0:
            return 0
        data = self._source.read(min(len(buffer), self.remaining))
        if not data:
            raise ArchiveFormatError(
                f"ar member {self.name!r} truncated ({self.remaining} bytes missing)"
            )
        buffer[: len(data)] = data
        self.remaining -= len(data)
        return len(data)

    def skip_rest(self) -> None:
        """Discards whatever the consumer did not read."""
        while self.read(128 * 1024):
            pass


@dataclass
class ArMember:
    """An ``ar`` member.  Only valid until the next member is requested."""

    name: str
    size: int
    reader: MemberReader


def _parse_header(header: bytes) -> tuple[str, int]:
    if len(header) < _HEADER.size:
        raise ArchiveFormatError("truncated ar member header")
    raw_name, _mtime, _uid, _gid, _mode, raw_size, terminator = _HEADER.unpack(header)
    if terminator != _HEADER_END:
        raise ArchiveFormatError(f"bad ar member header terminator {terminator!r}")
    try:
        name = raw_name.decode("ascii").rstrip()
        size = int(raw_size.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ArchiveFormatError(f"unparseable ar member header {header!r}") from e
    # GNU ar terminates names with a slash.
    return name.removesuffix("/"), size


def iter_ar_members(stream: T.BinaryIO) -> T.Generator[ArMember, None, None]:
    """
    Yields each member of the ``ar`` archive in ``stream``, in order.  Unread member
    contents are skipped when the next member is requested.

    Raises:
      ArchiveFormatError: on a bad magic number, malformed headers, or truncation.
    """
    if stream.read(len(AR_MAGIC)) != AR_MAGIC:
        raise ArchiveFormatError("not an ar archive (bad magic)")

    while header := stream.read(_HEADER.size):
        name, size = _parse_header(header)
        reader = MemberReader(stream, name, size)
        yield ArMember(name, size, reader)
        reader.skip_rest()
        if size % 2:
            # Members are 2-byte aligned.
            stream.read(1)
