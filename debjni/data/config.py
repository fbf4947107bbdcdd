# Configuration file models
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
Data models and validation schemas for configuration files.
"""

import logging
import os
import sys

from typing import TypeVar

import toml
from pydantic import BaseModel, Field, ValidationError

from debjni.archive.deb import TERMUX_INSTALL_PREFIX

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


DEFAULT_ARCHITECTURES: dict[str, str] = {
    "arm": "armeabi-v7a",
    "aarch64": "arm64-v8a",
    "i686": "x86",
    "x86_64": "x86_64",
}
"""Repository architectures mapped to the Android ABI directory they populate."""


class LoggingConfig(BaseModel):
    """
    Common logging configuration.
    """

    debug: bool = Field(default=False)
    """
    If ``true``, enables logging the debug level.
    """


class RepositoryConfig(BaseModel):
    """
    Location of the APT repository packages are pulled from.

    The index for architecture ``arch`` is expected at
    ``${url}/dists/${distribution}/${component}/binary-${arch}/${index_name}``, and
    the ``Filename`` field of each index entry is relative to ``url``.
    """

    url: str = Field(default="https://packages.termux.dev/apt/termux-main")
    """Repository root URL."""

    distribution: str = Field(default="stable")
    """Distribution (suite) to read indices of."""

    component: str = Field(default="main")
    """Component within the distribution."""

    index_name: str = Field(default="Packages")
    """
    File name of the index within each ``binary-${arch}`` directory.  A ``.gz``,
    ``.xz``, ``.bz2`` or ``.zst`` suffix makes the index be decompressed accordingly.
    """


class ExtractorConfig(BaseModel):
    """
    Configuration model for ``debjni``.
    """

    log: LoggingConfig = Field(default_factory=LoggingConfig)
    """
    Logger configuration.  See :py:class:`LoggingConfig`.
    """

    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    """
    Repository to fetch from.  See :py:class:`RepositoryConfig`.
    """

    architectures: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ARCHITECTURES), min_length=1
    )
    """
    Repository architectures to extract, mapped to the name of the ``jniLibs``
    subdirectory (the Android ABI) their libraries go into.
    """

    all_architecture: str = Field(default="all")
    """
    Name of the architecture-independent index.  Consulted when a package is missing
    from an architecture's own index.
    """

    install_prefix: str = Field(default=TERMUX_INSTALL_PREFIX, pattern=r"^.+/$")
    """
    Leading part of every payload path, stripped to obtain the paths recorded in the
    manifests.  Must end in a slash.
    """

    request_timeout: float = Field(default=60.0, gt=0)
    """
    Seconds to wait on a single HTTP request before giving up.
    """

    def abi_for(self, arch: str) -> str:
        """
        Get the ABI directory name for ``arch``.

        Raises:
          ValueError: if ``arch`` is not configured.
        """
        try:
            return self.architectures[arch]
        except KeyError:
            raise ValueError(
                f"unknown architecture {arch!r} (known: {', '.join(self.architectures)})"
            ) from None


def load_and_validate_config(config_file: str | None, model: type[M]) -> M:
    """
    Validate and load a config file as the given model.

    Args:
      config_file: Path of the TOML file to load.  If ``None``, ``$DEBJNI_CONFIG`` is
                   consulted, and if that is unset too, the model defaults are used.
      model: A Pydantic model by which to validate the loaded config

    Returns:
      A parsed config.

    Raises:
      SystemExit: if configuration parsing fails.  Exit code 1.
    """

    config_file = config_file or os.getenv("DEBJNI_CONFIG")
    if not config_file:
        return model()

    try:
        with open(config_file, "r") as config:
            return model.model_validate(toml.load(config))
    except (ValidationError, toml.TomlDecodeError):
        logger.exception("failed to parse config %r", config_file)
        sys.exit(1)
    except Exception:
        logger.exception("failed to load config %r", config_file)
        sys.exit(1)
