import io

import pytest

from debjni.archive.ar import iter_ar_members
from debjni.archive.deb import (
    TERMUX_INSTALL_PREFIX,
    ControlEntry,
    DebVisitor,
    RegularEntry,
    SymlinkEntry,
    iter_deb,
    strip_install_prefix,
    visit_deb,
)
from debjni.errors import ArchiveFormatError

from .conftest import (
    LIBFOO_ENTRIES,
    TEST_PREFIX,
    directory,
    make_ar,
    make_deb,
    make_tar,
    regular,
    symlink,
)


class RecordingVisitor(DebVisitor):
    def __init__(self) -> None:
        self.events: list[tuple[str, str, object]] = []

    def visit_control(self, entry: ControlEntry) -> None:
        self.events.append(("control", entry.fields["Package"], entry.fields["Version"]))

    def visit_regular(self, entry: RegularEntry) -> None:
        self.events.append(("regular", entry.path, entry.reader.read()))

    def visit_symlink(self, entry: SymlinkEntry) -> None:
        self.events.append(("symlink", entry.path, entry.target))


def _visit(data: bytes) -> list[tuple[str, str, object]]:
    visitor = RecordingVisitor()
    visit_deb(io.BytesIO(data), visitor, TEST_PREFIX)
    return visitor.events


# ============================================================================
# ar container
# ============================================================================


def test_ar_members_in_order():
    data = make_ar([("first", b"odd"), ("second", b"even"), ("third", b"")])
    members = []
    for member in iter_ar_members(io.BytesIO(data)):
        members.append((member.name, member.size, member.reader.read()))
    assert members == [("first", 3, b"odd"), ("second", 4, b"even"), ("third", 0, b"")]


def test_ar_unread_members_are_skipped():
    data = make_ar([("big", b"x" * 100_001), ("small", b"y")])
    names = [member.name for member in iter_ar_members(io.BytesIO(data))]
    assert names == ["big", "small"]


def test_ar_bad_magic():
    with pytest.raises(ArchiveFormatError, match="magic"):
        list(iter_ar_members(io.BytesIO(b"PK\x03\x04 not an ar archive")))


def test_ar_truncated_member():
    data = make_ar([("member", b"0123456789")])[:-4]
    with pytest.raises(ArchiveFormatError, match="truncated"):
        for member in iter_ar_members(io.BytesIO(data)):
            member.reader.read()


def test_ar_truncated_header():
    data = make_ar([("member", b"01")]) + b"garbage"
    with pytest.raises(ArchiveFormatError, match="header"):
        list(iter_ar_members(io.BytesIO(data)))


def test_ar_bad_header_terminator():
    data = bytearray(make_ar([("member", b"01")]))
    data[8 + 58 : 8 + 60] = b"XX"
    with pytest.raises(ArchiveFormatError, match="terminator"):
        list(iter_ar_members(io.BytesIO(bytes(data))))


# ============================================================================
# Debian packages
# ============================================================================


def test_termux_prefix():
    assert TERMUX_INSTALL_PREFIX == "./data/data/com.termux/files/usr/"
    assert len(TERMUX_INSTALL_PREFIX) == 33
    assert strip_install_prefix(
        "./data/data/com.termux/files/usr/lib/libz.so.1", TERMUX_INSTALL_PREFIX
    ) == "lib/libz.so.1"


def test_strip_install_prefix_without_leading_dot():
    assert strip_install_prefix("usr/lib/libfoo.so", "./usr/") == "lib/libfoo.so"


@pytest.mark.parametrize("name", ["./usr", "./usr/", "./opt/lib/libfoo.so", "lib"])
def test_strip_install_prefix_rejects(name):
    with pytest.raises(ArchiveFormatError):
        strip_install_prefix(name, "./usr/")


@pytest.mark.parametrize("compression", ["", "gz", "xz", "bz2", "zst"])
def test_visit_entries(compression):
    events = _visit(make_deb(LIBFOO_ENTRIES, data_compression=compression))
    assert events == [
        ("control", "libfoo", "1.0"),
        ("regular", "lib/libfoo.so", b"0123456789"),
        ("symlink", "lib/libfoo.so.1", "libfoo.so"),
    ]


@pytest.mark.parametrize("compression", ["", "xz", "zst"])
def test_control_compressions(compression):
    events = _visit(make_deb(LIBFOO_ENTRIES, control_compression=compression))
    assert events[0] == ("control", "libfoo", "1.0")


def test_visit_keeps_archive_order_and_skips_others():
    entries = [
        directory("./usr/"),
        symlink("./usr/lib/libz.so", "libz.so.1"),
        directory("./usr/share/"),
        regular("./usr/lib/libz.so.1", b"z" * 5000),
        regular("./usr/bin/tool", b"#!/bin/sh\n"),
        symlink("./usr/bin/alias", "tool"),
    ]
    events = _visit(make_deb(entries))
    assert [(kind, path) for kind, path, _ in events[1:]] == [
        ("symlink", "lib/libz.so"),
        ("regular", "lib/libz.so.1"),
        ("regular", "bin/tool"),
        ("symlink", "bin/alias"),
    ]


def test_partially_read_entries_are_skipped():
    entries = [
        regular("./usr/lib/a.so", b"a" * 70_000),
        regular("./usr/lib/b.so", b"bbb"),
    ]
    seen = []
    for entry in iter_deb(io.BytesIO(make_deb(entries)), TEST_PREFIX):
        if isinstance(entry, RegularEntry):
            seen.append((entry.path, entry.reader.read(2)))
    assert seen == [("lib/a.so", b"aa"), ("lib/b.so", b"bb")]


def test_path_shorter_than_prefix():
    entries = [regular("./usr", b"x"), regular("./usr/lib/libfoo.so", b"foo")]
    visitor = RecordingVisitor()
    with pytest.raises(ArchiveFormatError):
        visit_deb(io.BytesIO(make_deb(entries)), visitor, TEST_PREFIX)
    assert [kind for kind, _, _ in visitor.events] == ["control"]


@pytest.mark.parametrize(
    "entry",
    [
        regular("./usr/lib/\udcff.so", b"x"),
        symlink("./usr/lib/libfoo.so.1", "libfoo\udcfe.so"),
    ],
)
def test_undecodable_names_are_rejected(entry):
    data = make_deb([regular("./usr/lib/libfoo.so", b"foo"), entry])
    visitor = RecordingVisitor()
    with pytest.raises(ArchiveFormatError, match="UTF-8"):
        visit_deb(io.BytesIO(data), visitor, TEST_PREFIX)
    assert [kind for kind, _, _ in visitor.events] == ["control", "regular"]


def test_directories_are_not_prefix_checked():
    events = _visit(make_deb([directory("./"), directory("./etc/"), *LIBFOO_ENTRIES]))
    assert len(events) == 3


def test_missing_data_member():
    data = make_ar([("debian-binary", b"2.0\n")])
    with pytest.raises(ArchiveFormatError, match="no data member"):
        _visit(data)


def test_unsupported_format_version():
    data = make_ar(
        [("debian-binary", b"3.0\n"), ("data.tar", make_tar(LIBFOO_ENTRIES))]
    )
    with pytest.raises(ArchiveFormatError, match="format"):
        _visit(data)


def test_unsupported_compression():
    data = make_ar([("debian-binary", b"2.0\n"), ("data.tar.lz4", b"\x04\x22\x4d\x18")])
    with pytest.raises(ArchiveFormatError, match="compression"):
        _visit(data)


def test_corrupt_payload():
    data = make_ar([("debian-binary", b"2.0\n"), ("data.tar.xz", b"\xfd7zXZ\x00 garbage")])
    with pytest.raises(ArchiveFormatError):
        _visit(data)


def test_unknown_members_are_ignored():
    data = make_ar(
        [
            ("debian-binary", b"2.0\n"),
            ("_gpgorigin", b"signature"),
            ("data.tar.gz", make_tar(LIBFOO_ENTRIES, "gz")),
        ]
    )
    assert [kind for kind, _, _ in _visit(data)] == ["regular", "symlink"]


def test_control_without_control_file():
    data = make_ar(
        [
            ("debian-binary", b"2.0\n"),
            ("control.tar", make_tar([regular("./md5sums", b"")])),
            ("data.tar", make_tar(LIBFOO_ENTRIES)),
        ]
    )
    with pytest.raises(ArchiveFormatError, match="control"):
        _visit(data)


def test_visiting_twice_is_identical():
    data = make_deb(LIBFOO_ENTRIES)
    assert _visit(data) == _visit(bytes(data))
