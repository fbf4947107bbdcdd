"""Shared pytest fixtures and builders for debjni tests."""

import io
import tarfile
import threading
import typing as T

import pytest
import requests
import zstandard

from debjni.data.config import ExtractorConfig, RepositoryConfig

REPO_URL = "https://repo"
TEST_PREFIX = "./usr/"

# ============================================================================
# Archive builders
# ============================================================================

Entry: T.TypeAlias = tuple[str, str, T.Any]
"""``(kind, name, payload)``: kind is ``file``, ``symlink`` or ``dir``."""


def regular(name: str, data: bytes) -> Entry:
    return ("file", name, data)


def symlink(name: str, target: str) -> Entry:
    return ("symlink", name, target)


def directory(name: str) -> Entry:
    return ("dir", name, None)


def make_tar(entries: T.Iterable[Entry], compression: str = "") -> bytes:
    """Builds a tarball, compressed with ``compression`` (``gz``, ``xz``, ``bz2``, ``zst``)."""
    buf = io.BytesIO()
    mode = "w" if compression in ("", "zst") else f"w:{compression}"
    with tarfile.open(fileobj=buf, mode=mode, format=tarfile.GNU_FORMAT) as t:
        for kind, name, payload in entries:
            info = tarfile.TarInfo(name)
            if kind == "file":
                info.size = len(payload)
                info.mode = 0o644
                t.addfile(info, io.BytesIO(payload))
            elif kind == "symlink":
                info.type = tarfile.SYMTYPE
                info.linkname = payload
                t.addfile(info)
            else:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                t.addfile(info)
    data = buf.getvalue()
    if compression == "zst":
        return zstandard.ZstdCompressor().compress(data)
    return data


def make_ar(members: T.Iterable[tuple[str, bytes]]) -> bytes:
    out = io.BytesIO()
    out.write(b"!<arch>\n")
    for name, data in members:
        header = f"{name + '/':<16}{0:<12}{0:<6}{0:<6}{'100644':<8}{len(data):<10}`\n"
        out.write(header.encode("ascii"))
        out.write(data)
        if len(data) % 2:
            out.write(b"\n")
    return out.getvalue()


def make_control(package: str = "libfoo", version: str = "1.0") -> bytes:
    return f"Package: {package}\nVersion: {version}\nArchitecture: aarch64\n".encode()


def make_deb(
    entries: T.Iterable[Entry],
    data_compression: str = "xz",
    control: bytes | None = None,
    control_compression: str = "gz",
) -> bytes:
    """Builds a ``.deb`` holding ``entries`` in its payload."""
    control_tar = make_tar(
        [directory("./"), regular("./control", control or make_control())],
        control_compression,
    )
    suffix = f".{data_compression}" if data_compression else ""
    return make_ar(
        [
            ("debian-binary", b"2.0\n"),
            (f"control.tar{'.' + control_compression if control_compression else ''}", control_tar),
            (f"data.tar{suffix}", make_tar(entries, data_compression)),
        ]
    )


LIBFOO_ENTRIES: list[Entry] = [
    directory("./"),
    directory("./usr/"),
    directory("./usr/lib/"),
    regular("./usr/lib/libfoo.so", b"0123456789"),
    symlink("./usr/lib/libfoo.so.1", "libfoo.so"),
]
"""The two-entry library package most tests use."""


def render_index(packages: T.Iterable[dict[str, str]]) -> bytes:
    stanzas = ("\n".join(f"{k}: {v}" for k, v in p.items()) for p in packages)
    return ("\n\n".join(stanzas) + "\n").encode()


def index_entry(name: str, filename: str, version: str = "1.0") -> dict[str, str]:
    return {
        "Package": name,
        "Version": version,
        "Architecture": "all",
        "Filename": filename,
        "Size": "1234",
    }


# ============================================================================
# Fake HTTP transport
# ============================================================================


class FakeResponse:
    def __init__(
        self,
        url: str,
        body: bytes = b"",
        status_code: int = 200,
        broken_after: int | None = None,
    ) -> None:
        self.url = url
        self.body = body
        self.status_code = status_code
        self.broken_after = broken_after

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: T.Any) -> None:
        self.close()

    def close(self) -> None:
        pass

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}")

    @property
    def content(self) -> bytes:
        return self.body

    def iter_content(self, chunk_size: int = 1) -> T.Iterator[bytes]:
        # Small chunks, so that readers have to stitch them together.
        chunk_size = min(chunk_size, 1000)
        body = self.body if self.broken_after is None else self.body[: self.broken_after]
        for i in range(0, len(body), chunk_size):
            yield body[i : i + chunk_size]
        if self.broken_after is not None:
            raise requests.exceptions.ChunkedEncodingError("Connection broken: IncompleteRead")


class BrokenBody(T.NamedTuple):
    """A body that the connection drops after ``length`` bytes of."""

    body: bytes
    length: int


Route: T.TypeAlias = bytes | int | Exception | BrokenBody


class FakeSession:
    """Serves canned responses from a :py:class:`FakeRepo`."""

    def __init__(self, repo: "FakeRepo") -> None:
        self.repo = repo
        self.closed = False

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc: T.Any) -> None:
        self.close()

    def close(self) -> None:
        self.closed = True

    def get(self, url: str, **kwargs: T.Any) -> FakeResponse:
        assert "timeout" in kwargs
        with self.repo.lock:
            self.repo.requested.append(url)
        route = self.repo.routes.get(url, 404)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, int):
            return FakeResponse(url, b"", route)
        if isinstance(route, BrokenBody):
            return FakeResponse(url, route.body, broken_after=route.length)
        return FakeResponse(url, route)


class FakeRepo:
    def __init__(self, url: str = REPO_URL) -> None:
        self.url = url
        self.routes: dict[str, Route] = {}
        self.requested: list[str] = []
        self.lock = threading.Lock()

    def index_url(self, arch: str, index_name: str = "Packages") -> str:
        return f"{self.url}/dists/stable/main/binary-{arch}/{index_name}"

    def add_index(self, arch: str, packages: T.Iterable[dict[str, str]]) -> None:
        self.routes[self.index_url(arch)] = render_index(packages)

    def add_file(self, filename: str, data: Route) -> None:
        self.routes[f"{self.url}/{filename}"] = data

    def session(self) -> FakeSession:
        return FakeSession(self)

    def count(self, url: str) -> int:
        return self.requested.count(url)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_repo() -> FakeRepo:
    return FakeRepo()


@pytest.fixture
def config() -> ExtractorConfig:
    return ExtractorConfig(
        repository=RepositoryConfig(url=REPO_URL),
        install_prefix=TEST_PREFIX,
        request_timeout=5.0,
    )
