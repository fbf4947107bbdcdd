# Android project scaffolding.
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
This module lays out the Android project the extracted libraries are placed into.
"""

import os
import os.path as path
import re
import typing as T

import jinja2

import debjni.utils.fs as dju_fs
from debjni.errors import FilesystemWriteError, OutputExistsError

JNI_LIBS_PATH = path.join("app", "src", "main", "jniLibs")
"""Location of the per-ABI library directories, relative to the project root."""

_TEMPLATES = {
    "settings.gradle": "settings.gradle",
    "build.gradle": "build.gradle",
    "app-build.gradle": path.join("app", "build.gradle"),
    "AndroidManifest.xml": path.join("app", "src", "main", "AndroidManifest.xml"),
}
"""Maps template names to where they are rendered in the project."""


def jni_libs_dir(output_root: dju_fs.AnyPath, abi: str) -> str:
    """Directory libraries for ``abi`` are extracted into."""
    return path.join(output_root, JNI_LIBS_PATH, abi)


def application_id(package_name: str) -> str:
    """
    Derives an Android application ID from a repository package name.  Characters Java
    does not allow in package names are replaced by underscores.
    """
    return "com.termux.jni." + re.sub(r"[^A-Za-z0-9_]", "_", package_name)


def _create_environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.PackageLoader("debjni.scaffold", "templates"),
        keep_trailing_newline=True,
        undefined=jinja2.StrictUndefined,
    )


def create_project_layout(
    output_root: dju_fs.AnyPath, package_name: str, abis: T.Iterable[str]
) -> None:
    """
    Creates the project directory ``output_root``, its ``jniLibs`` directory for each
    of ``abis``, and the Gradle build files.

    Raises:
      OutputExistsError: if ``output_root`` already exists.  Nothing is written.
      FilesystemWriteError: if creating any file or directory fails.
    """
    try:
        os.mkdir(output_root)
    except FileExistsError:
        raise OutputExistsError(
            f"Output directory already exists: {output_root}", package=package_name
        ) from None
    except OSError as e:
        raise FilesystemWriteError(
            f"cannot create {output_root}: {e}", package=package_name
        ) from e

    env = _create_environment()
    try:
        for abi in abis:
            os.makedirs(jni_libs_dir(output_root, abi))
        for template_name, target in _TEMPLATES.items():
            content = env.get_template(template_name).render(
                package_name=package_name,
                application_id=application_id(package_name),
            )
            dju_fs.write_text(path.join(output_root, target), content)
    except OSError as e:
        raise FilesystemWriteError(
            f"cannot write project scaffold: {e}", package=package_name
        ) from e
