# Multi-architecture extraction.
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
This module runs the extraction of a package for every requested architecture, in
parallel, one thread per architecture.

The architecture-independent index is fetched once, before any worker starts, and is
shared read-only by all of them.  Everything else (HTTP session, output directory,
manifests) belongs to a single worker.  A failing worker does not stop its siblings.
"""

import logging
import typing as T
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

import requests

import debjni.utils.fs as dju_fs
import debjni.utils.logging as dju_logging
from debjni.data.config import ExtractorConfig
from debjni.data.package import PackageIndex
from debjni.errors import DebJniError
from debjni.extract import Manifests, extract_for_architecture
from debjni.repo import fetch_index
from debjni.scaffold import create_project_layout
from debjni.utils.http import create_session

logger = logging.getLogger(__name__)

SessionFactory: T.TypeAlias = T.Callable[[], requests.Session]


@dataclass
class RunResult:
    """Outcome of :py:func:`run`."""

    package: str

    manifests: dict[str, Manifests] = field(default_factory=dict)
    """Manifests written for each architecture that succeeded."""

    failures: dict[str, Exception] = field(default_factory=dict)
    """Error that stopped each architecture that failed."""

    @property
    def ok(self) -> bool:
        """``True`` iff every architecture succeeded."""
        return not self.failures


def _extraction_job(
    package_name: str,
    arch: str,
    all_index: PackageIndex,
    output_root: dju_fs.AnyPath,
    config: ExtractorConfig,
    session_factory: SessionFactory,
) -> Manifests:
    with session_factory() as session:
        return extract_for_architecture(
            package_name, arch, all_index, output_root, config, session
        )


def run(
    package_name: str,
    output_root: dju_fs.AnyPath,
    config: ExtractorConfig,
    architectures: T.Iterable[str] | None = None,
    session_factory: SessionFactory = create_session,
) -> RunResult:
    """
    Creates the project in ``output_root`` and extracts ``package_name`` into it for
    each of ``architectures`` (by default, every configured one).

    Waits for every architecture to finish, successfully or not.  Output of the
    architectures that succeeded is kept even if others failed.

    Raises:
      ValueError: if an architecture is not configured.  Nothing is written.
      OutputExistsError: if ``output_root`` exists.  Nothing is written.
      IndexFetchError: if the architecture-independent index cannot be fetched.
      FilesystemWriteError: if the project scaffold cannot be written.
    """
    if architectures is None:
        architectures = config.architectures
    arches = list(dict.fromkeys(architectures))
    if not arches:
        raise ValueError("no architectures to extract")
    abis = [config.abi_for(arch) for arch in arches]

    log = dju_logging.context_logger(logger, package_name)
    create_project_layout(output_root, package_name, abis)

    try:
        with session_factory() as session:
            all_index = fetch_index(session, config, config.all_architecture)
    except DebJniError as e:
        e.package = package_name
        raise

    result = RunResult(package_name)
    with ThreadPoolExecutor(max_workers=len(arches), thread_name_prefix="debjni") as pool:
        futures = {
            pool.submit(
                _extraction_job,
                package_name,
                arch,
                all_index,
                output_root,
                config,
                session_factory,
            ): arch
            for arch in arches
        }
        # Does not return before every job is done.
        for future in as_completed(futures):
            arch = futures[future]
            try:
                result.manifests[arch] = future.result()
            except DebJniError as e:
                log.error("%s", e.describe())
                result.failures[arch] = e
            except Exception as e:
                log.error("%s: unexpected failure", arch, exc_info=e)
                result.failures[arch] = e

    if result.ok:
        log.info("extracted for %s", ", ".join(arches))
    return result
