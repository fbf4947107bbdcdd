# Package index data model.
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
This module contains the in-memory form of an APT package index.
"""

import types
import typing as T
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


def fuse_with_slashes(first: str, *args: str) -> str:
    """
    Merges multiple strings such that there is exactly one slash between all of them.
    If the strings already contained slashes inbetween, they're collapsed down to one
    slash.
    """
    if len(args) == 0:
        return first

    first = first.rstrip("/")
    last = args[-1].lstrip("/")
    middle = (arg.strip("/") for arg in args[:-1])
    return "/".join((first, *middle, last))


class PackageMetadata(BaseModel):
    """
    A single package, as described by one stanza of a ``Packages`` index.  Not
    complete - unused fields are missing.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    """Value of the ``Package`` field."""

    version: str = Field(default="")
    architecture: str = Field(default="")

    filename: str
    """Path of the ``.deb``, relative to the repository root."""

    size: int | None = Field(default=None)
    sha256: str | None = Field(default=None)
    """Recorded for information only.  Downloads are not verified."""

    depends: str = Field(default="")
    """Raw ``Depends`` field.  Not resolved."""

    repo_url: str
    """Root URL of the repository this index was read from."""

    @property
    def package_url(self) -> str:
        """URL the package archive can be downloaded from."""
        return fuse_with_slashes(self.repo_url, self.filename)


@dataclass(frozen=True)
class PackageIndex:
    """
    A parsed package index for one architecture.  Read-only once built, so that it can
    be shared between threads without locking.
    """

    architecture: str
    """Architecture this index was fetched for.  May be the ``all`` pseudo-architecture."""

    packages: T.Mapping[str, PackageMetadata]
    """Mapping from package name to metadata."""

    @classmethod
    def build(cls, architecture: str, packages: dict[str, PackageMetadata]) -> "PackageIndex":
        """Freezes ``packages`` (a copy of it) into a new index."""
        return cls(architecture, types.MappingProxyType(dict(packages)))

    def get(self, name: str) -> PackageMetadata | None:
        return self.packages.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)
