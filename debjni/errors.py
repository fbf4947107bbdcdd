# Error kinds.
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
This module contains the exceptions raised while converting a package.

Every error is fatal to the unit of work it happens in.  Nothing in ``debjni`` retries.
"""


class DebJniError(Exception):
    """
    Base class of all ``debjni`` errors.
    """

    def __init__(
        self, message: str, *, package: str | None = None, arch: str | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.package = package
        """Package being processed when the error happened, if known."""
        self.arch = arch
        """Architecture being processed when the error happened, if known."""

    @property
    def kind(self) -> str:
        """Short, user-facing name of the failure kind."""
        return type(self).__name__

    def describe(self) -> str:
        """Formats the error as ``package/arch: Kind: message``."""
        context = "/".join(x for x in (self.package, self.arch) if x)
        if context:
            return f"{context}: {self.kind}: {self.message}"
        return f"{self.kind}: {self.message}"


class IndexFetchError(DebJniError):
    """The package index could not be downloaded or parsed."""


class PackageNotFound(DebJniError):
    """The package is present neither in the architecture index nor in the ``all`` one."""


class ArchiveFetchError(DebJniError):
    """Downloading the package archive failed."""


class ArchiveFormatError(DebJniError):
    """The package archive, or its payload, is malformed."""


class OutputExistsError(DebJniError):
    """The output directory is already present."""


class FilesystemWriteError(DebJniError):
    """Writing an extracted artifact or a manifest failed."""
