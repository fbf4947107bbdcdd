# Per-architecture package extraction.
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
This module extracts the payload of one package, for one architecture, into the
``jniLibs`` directory of that architecture.

Android only packages files named ``lib*.so`` found directly inside an ABI
directory, so every regular file of the package is stored as ``${N}.so``, with ``N``
counting up from zero in archive order.  Two manifests describe how to undo this:

``files.so``
  One ``${N}.so←${path}`` line per regular file.
``symlinks.so``
  One ``${target}←${path}`` line per symbolic link.

Paths are relative to the package's install prefix.  Lines are separated by a
newline, without a trailing one.  Symbolic links are only recorded, never created.
"""

import logging
import os.path as path
import shutil
import tempfile
import typing as T

import requests

import debjni.utils.fs as dju_fs
import debjni.utils.logging as dju_logging
from debjni.archive.deb import (
    ControlEntry,
    DebVisitor,
    RegularEntry,
    SymlinkEntry,
    visit_deb,
)
from debjni.data.config import ExtractorConfig
from debjni.data.package import PackageIndex
from debjni.errors import ArchiveFetchError, DebJniError, FilesystemWriteError
from debjni.repo import fetch_index, resolve
from debjni.scaffold import jni_libs_dir
from debjni.utils.http import open_body

logger = logging.getLogger(__name__)

MANIFEST_ARROW = "←"
FILES_MANIFEST = "files.so"
SYMLINKS_MANIFEST = "symlinks.so"


class Manifests(T.NamedTuple):
    """Contents of the two manifest files, exactly as written."""

    files: str
    symlinks: str


def manifest_line(left: str, right: str) -> str:
    return f"{left}{MANIFEST_ARROW}{right}"


class JniLibsVisitor(DebVisitor):
    """
    Writes each regular file into ``output_directory`` under its sequence number, and
    collects the manifest lines.
    """

    def __init__(
        self,
        output_directory: str,
        log: logging.LoggerAdapter[logging.Logger] | logging.Logger = logger,
    ) -> None:
        self.output_directory = output_directory
        self.counter = 0
        self.file_mapping: list[str] = []
        self.symlinks: list[str] = []
        self.log = log

    def visit_control(self, entry: ControlEntry) -> None:
        self.log.debug(
            "package %s version %s",
            entry.fields.get("Package", "?"),
            entry.fields.get("Version", "?"),
        )

    def visit_regular(self, entry: RegularEntry) -> None:
        artifact = f"{self.counter}.so"
        artifact_path = path.join(self.output_directory, artifact)
        try:
            with open(artifact_path, "wb") as output:
                shutil.copyfileobj(entry.reader, output)
        except requests.RequestException:
            # The body failed to download; _download_and_visit reports that.
            raise
        except OSError as e:
            raise FilesystemWriteError(f"cannot write {artifact_path}: {e}") from e
        self.log.debug("%s -> %s", entry.path, artifact)
        self.file_mapping.append(manifest_line(artifact, entry.path))
        self.counter += 1

    def visit_symlink(self, entry: SymlinkEntry) -> None:
        self.symlinks.append(manifest_line(entry.target, entry.path))

    def manifests(self) -> Manifests:
        return Manifests("\n".join(self.file_mapping), "\n".join(self.symlinks))


def _download_and_visit(
    session: requests.Session, url: str, visitor: DebVisitor, config: ExtractorConfig
) -> None:
    try:
        with session.get(url, stream=True, timeout=config.request_timeout) as resp:
            resp.raise_for_status()
            visit_deb(open_body(resp), visitor, config.install_prefix)
    except requests.RequestException as e:
        raise ArchiveFetchError(f"failed fetching {url}: {e}") from e


def _extract(
    package_name: str,
    arch: str,
    all_index: PackageIndex,
    output_root: dju_fs.AnyPath,
    config: ExtractorConfig,
    session: requests.Session,
) -> Manifests:
    log = dju_logging.context_logger(logger, package_name, arch)
    output_dir = jni_libs_dir(output_root, config.abi_for(arch))

    arch_index = fetch_index(session, config, arch)
    package = resolve(package_name, arch_index, all_index)
    log.info("extracting %s %s from %s", package.name, package.version, package.package_url)

    # Files are staged so that a failed extraction leaves nothing behind.
    try:
        staging_dir = tempfile.mkdtemp(prefix=".staging-", dir=output_dir)
    except OSError as e:
        raise FilesystemWriteError(f"cannot create staging directory: {e}") from e
    try:
        visitor = JniLibsVisitor(staging_dir, log)
        _download_and_visit(session, package.package_url, visitor, config)

        manifests = visitor.manifests()
        try:
            dju_fs.write_text(path.join(staging_dir, FILES_MANIFEST), manifests.files)
            dju_fs.write_text(path.join(staging_dir, SYMLINKS_MANIFEST), manifests.symlinks)
            # Publishing is the last step, and is undone if it fails midway.
            dju_fs.move_children(staging_dir, output_dir)
        except OSError as e:
            raise FilesystemWriteError(f"cannot write into {output_dir}: {e}") from e
    finally:
        shutil.rmtree(staging_dir, ignore_errors=True)

    log.info(
        "extracted %d files and %d symlinks", len(visitor.file_mapping), len(visitor.symlinks)
    )
    return manifests


def extract_for_architecture(
    package_name: str,
    arch: str,
    all_index: PackageIndex,
    output_root: dju_fs.AnyPath,
    config: ExtractorConfig,
    session: requests.Session,
) -> Manifests:
    """
    Extracts ``package_name`` for ``arch`` into its ``jniLibs`` directory under
    ``output_root``, which must already exist.  The package is looked up in the index
    of ``arch`` first, then in ``all_index``.

    Returns:
      The manifests written next to the extracted files.

    Raises:
      DebJniError: on any failure, with ``package`` and ``arch`` set.  No extracted
                   file is left in place in that case.
    """
    try:
        return _extract(package_name, arch, all_index, output_root, config, session)
    except DebJniError as e:
        e.package = e.package or package_name
        e.arch = e.arch or arch
        raise
