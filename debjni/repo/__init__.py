# APT repository access.
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
This module contains helpers for dealing with APT repositories: fetching and parsing
``Packages`` indices, and resolving package names against them.
"""

import bz2
import gzip
import logging
import lzma
import zlib

import requests
import zstandard

from debjni.data.config import ExtractorConfig, RepositoryConfig
from debjni.data.deb822 import Stanza, iter_stanzas
from debjni.data.package import PackageIndex, PackageMetadata, fuse_with_slashes
from debjni.errors import IndexFetchError, PackageNotFound

logger = logging.getLogger(__name__)


def index_url(repository: RepositoryConfig, arch: str) -> str:
    """URL of the ``Packages`` index for ``arch`` in ``repository``."""
    return fuse_with_slashes(
        repository.url,
        "dists",
        repository.distribution,
        repository.component,
        f"binary-{arch}",
        repository.index_name,
    )


def decompress_index(index_name: str, data: bytes) -> bytes:
    """
    Decompresses raw index ``data`` based on the suffix of ``index_name``.  Names
    without a known compression suffix are returned unchanged.
    """
    if index_name.endswith(".gz"):
        return gzip.decompress(data)
    if index_name.endswith(".xz"):
        return lzma.decompress(data)
    if index_name.endswith(".bz2"):
        return bz2.decompress(data)
    if index_name.endswith(".zst"):
        dctx = zstandard.ZstdDecompressor()
        with dctx.stream_reader(data) as reader:
            return reader.read()
    return data


def _stanza_to_metadata(stanza: Stanza, repo_url: str) -> PackageMetadata:
    size = stanza.get("Size")
    return PackageMetadata(
        name=stanza["Package"],
        version=stanza.get("Version", ""),
        architecture=stanza.get("Architecture", ""),
        filename=stanza["Filename"],
        size=int(size) if size else None,
        sha256=stanza.get("SHA256"),
        depends=stanza.get("Depends", ""),
        repo_url=repo_url,
    )


def parse_index(text: str, arch: str, repo_url: str) -> PackageIndex:
    """
    Parses the text of a ``Packages`` index.

    When a package name appears more than once, the last stanza wins, matching how
    APT treats later entries of an index.  Each such overwrite is logged.

    Raises:
      IndexFetchError: if the index is not well-formed, or a stanza lacks the
                       ``Package`` or ``Filename`` field.
    """
    packages: dict[str, PackageMetadata] = {}
    try:
        for stanza in iter_stanzas(text.splitlines()):
            if "Package" not in stanza or "Filename" not in stanza:
                raise IndexFetchError(
                    f"stanza without Package or Filename in {arch} index: {stanza!r}",
                    arch=arch,
                )
            metadata = _stanza_to_metadata(stanza, repo_url)
            previous = packages.get(metadata.name)
            if previous is not None:
                logger.warning(
                    "%s index lists %s twice (%s, then %s), keeping the latter",
                    arch,
                    metadata.name,
                    previous.version,
                    metadata.version,
                )
            packages[metadata.name] = metadata
    except ValueError as e:
        # Deb822Error, a bad Size, or a field pydantic rejected.
        raise IndexFetchError(f"malformed {arch} index: {e}", arch=arch) from e

    return PackageIndex.build(arch, packages)


def fetch_index(
    session: requests.Session, config: ExtractorConfig, arch: str
) -> PackageIndex:
    """
    Downloads and parses the index for ``arch``.  ``arch`` may also be the name of the
    architecture-independent index.

    Raises:
      IndexFetchError: if the index is unreachable or malformed.
    """
    repository = config.repository
    url = index_url(repository, arch)
    logger.debug("fetching %s index from %s", arch, url)
    try:
        with session.get(url, timeout=config.request_timeout) as resp:
            resp.raise_for_status()
            raw = resp.content
    except requests.RequestException as e:
        raise IndexFetchError(f"failed fetching {url}: {e}", arch=arch) from e

    try:
        text = decompress_index(repository.index_name, raw).decode("utf-8")
    except (OSError, EOFError, lzma.LZMAError, zlib.error, zstandard.ZstdError) as e:
        raise IndexFetchError(f"failed decompressing {url}: {e}", arch=arch) from e
    except UnicodeDecodeError as e:
        raise IndexFetchError(f"{url} is not UTF-8: {e}", arch=arch) from e

    index = parse_index(text, arch, repository.url)
    logger.info("%s index lists %d packages", arch, len(index))
    return index


def resolve(name: str, arch_index: PackageIndex, all_index: PackageIndex) -> PackageMetadata:
    """
    Looks ``name`` up in ``arch_index``, falling back to ``all_index``.  The
    architecture-specific entry always takes precedence, as a package may exist in
    both with different builds.

    Raises:
      PackageNotFound: if neither index has ``name``.
    """
    metadata = arch_index.get(name) or all_index.get(name)
    if metadata is None:
        raise PackageNotFound(
            f"cannot find package {name!r} in the {arch_index.architecture} or "
            f"{all_index.architecture} index",
            package=name,
            arch=arch_index.architecture,
        )
    return metadata
