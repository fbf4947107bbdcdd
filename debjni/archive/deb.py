# Debian binary package reading.
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
This module walks the contents of Debian binary packages (``.deb`` files) without
unpacking them to disk.

A ``.deb`` is an ``ar`` archive with three members: ``debian-binary``, which holds the
format version, ``control.tar*`` with the package metadata, and ``data.tar*`` with the
files to install.  The tarballs may be compressed with gzip, xz, bzip2 or zstd.  Both
layers are read in a single sequential pass.
"""

import contextlib
import enum
import io
import logging
import lzma
import tarfile
import typing as T
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass

import zstandard

from debjni.data.deb822 import Deb822Error, Stanza, parse_stanzas
from debjni.errors import ArchiveFormatError

from .ar import ArMember, iter_ar_members

logger = logging.getLogger(__name__)

TERMUX_INSTALL_PREFIX = "./data/data/com.termux/files/usr/"
"""
Prefix of every path in the payload of a Termux package.  Termux installs into
``/data/data/com.termux/files/usr``, and packages store paths relative to the root
with a leading ``./``.
"""

_TAR_MODES = {
    "": "r|",
    ".gz": "r|gz",
    ".xz": "r|xz",
    ".bz2": "r|bz2",
}


class EntryKind(enum.Enum):
    """Classification of a payload entry."""

    REGULAR = enum.auto()
    SYMLINK = enum.auto()
    OTHER = enum.auto()
    """Directories, hard links, device nodes, ...  These are never reported."""


def classify(member: tarfile.TarInfo) -> EntryKind:
    """Determine the kind of ``member`` from its header alone."""
    if member.issym():
        return EntryKind.SYMLINK
    if member.isreg():
        return EntryKind.REGULAR
    return EntryKind.OTHER


@dataclass
class ControlEntry:
    """Fields of the package's ``control`` file."""

    fields: Stanza


@dataclass
class RegularEntry:
    """
    A regular file.  ``reader`` is positioned at its contents and only valid until the
    next entry is requested.
    """

    path: str
    reader: T.IO[bytes]


@dataclass
class SymlinkEntry:
    """A symbolic link pointing at ``target``."""

    path: str
    target: str


DebEntry: T.TypeAlias = ControlEntry | RegularEntry | SymlinkEntry


class DebVisitor(ABC):
    """
    Receives the contents of a package from :py:func:`visit_deb`.  Entries arrive in
    archive order, each exactly once.
    """

    def visit_control(self, entry: ControlEntry) -> None:
        """Called with the ``control`` file, before any payload entry.  Does nothing."""

    @abstractmethod
    def visit_regular(self, entry: RegularEntry) -> None:
        """
        Called for each regular file.  The reader need not be consumed completely;
        leftover content is skipped.
        """

    @abstractmethod
    def visit_symlink(self, entry: SymlinkEntry) -> None:
        """Called for each symbolic link."""


def strip_install_prefix(name: str, install_prefix: str) -> str:
    """
    Removes ``install_prefix`` from payload path ``name``.  The leading ``./`` of the
    prefix is optional in ``name``.

    Raises:
      ArchiveFormatError: if ``name`` does not lie under ``install_prefix``.
    """
    for prefix in (install_prefix, install_prefix.removeprefix("./")):
        if len(name) > len(prefix) and name.startswith(prefix):
            return name[len(prefix) :]
    raise ArchiveFormatError(f"payload path {name!r} is not under {install_prefix!r}")


def _require_utf8(what: str, value: str) -> str:
    # tarfile keeps undecodable bytes as lone surrogates.
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ArchiveFormatError(f"{what} {value!r} is not valid UTF-8") from e
    return value


@contextlib.contextmanager
def _open_member_tar(member: ArMember, stem: str) -> T.Generator[tarfile.TarFile, None, None]:
    """Opens the (possibly compressed) tarball in ``member`` for streaming."""
    compression = member.name.removeprefix(stem)
    # Closing either wrapper would close the member reader, which the ar reader still
    # needs to skip whatever tarfile did not consume.
    buffered = io.BufferedReader(member.reader)
    if compression == ".zst":
        dctx = zstandard.ZstdDecompressor()
        with (
            dctx.stream_reader(buffered, closefd=False) as reader,
            tarfile.open(fileobj=reader, mode="r|") as t,
        ):
            yield t
        return

    mode = _TAR_MODES.get(compression)
    if mode is None:
        raise ArchiveFormatError(f"unsupported compression of {member.name!r}")
    with tarfile.open(fileobj=buffered, mode=mode) as t:
        yield t


def _read_control(t: tarfile.TarFile) -> ControlEntry:
    for x in t:
        if x.name.removeprefix("./") != "control" or not x.isreg():
            continue
        control = t.extractfile(x)
        if not control:
            continue
        with control:
            try:
                stanzas = parse_stanzas(control.read().decode("utf-8"))
            except (UnicodeDecodeError, Deb822Error) as e:
                raise ArchiveFormatError(f"malformed control file: {e}") from e
        if len(stanzas) != 1:
            raise ArchiveFormatError(f"control file has {len(stanzas)} stanzas, expected 1")
        return ControlEntry(stanzas[0])

    raise ArchiveFormatError("control archive has no control file")


def _iter_payload(
    t: tarfile.TarFile, install_prefix: str
) -> T.Generator[RegularEntry | SymlinkEntry, None, None]:
    for x in t:
        kind = classify(x)
        if kind is EntryKind.OTHER:
            continue

        name = _require_utf8("payload path", x.name)
        relative_path = strip_install_prefix(name, install_prefix)
        if kind is EntryKind.SYMLINK:
            yield SymlinkEntry(relative_path, _require_utf8("link target", x.linkname))
            continue

        content = t.extractfile(x)
        if not content:
            raise ArchiveFormatError(f"cannot read {x.name!r}")
        with content:
            yield RegularEntry(relative_path, content)


def iter_deb(
    stream: T.BinaryIO, install_prefix: str = TERMUX_INSTALL_PREFIX
) -> T.Generator[DebEntry, None, None]:
    """
    Lazily walks the package in ``stream``.  Yields a :py:class:`ControlEntry`, then a
    :py:class:`RegularEntry` or :py:class:`SymlinkEntry` for each file or link in the
    payload, with ``install_prefix`` stripped off its path.  Other entries are skipped.

    Raises:
      ArchiveFormatError: on any structural problem.  Nothing after the bad spot is
                          yielded.
    """
    seen_data = False
    try:
        for member in iter_ar_members(stream):
            if member.name == "debian-binary":
                version = member.reader.read()
                if not version.startswith(b"2."):
                    raise ArchiveFormatError(f"unsupported package format {version!r}")
            elif member.name.startswith("control.tar"):
                with _open_member_tar(member, "control.tar") as t:
                    yield _read_control(t)
            elif member.name.startswith("data.tar"):
                if seen_data:
                    raise ArchiveFormatError("package has more than one data member")
                seen_data = True
                with _open_member_tar(member, "data.tar") as t:
                    yield from _iter_payload(t, install_prefix)
            else:
                logger.debug("skipping unknown package member %r", member.name)
    except (tarfile.TarError, zstandard.ZstdError, lzma.LZMAError, zlib.error, EOFError) as e:
        raise ArchiveFormatError(f"malformed package payload: {e}") from e

    if not seen_data:
        raise ArchiveFormatError("package has no data member")


def visit_deb(
    stream: T.BinaryIO, visitor: DebVisitor, install_prefix: str = TERMUX_INSTALL_PREFIX
) -> None:
    """
    Feeds each entry of the package in ``stream`` to ``visitor``.  See
    :py:func:`iter_deb`.
    """
    for entry in iter_deb(stream, install_prefix):
        match entry:
            case RegularEntry():
                visitor.visit_regular(entry)
            case SymlinkEntry():
                visitor.visit_symlink(entry)
            case ControlEntry():
                visitor.visit_control(entry)
