# Filesystem utilities.
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
This package contains utilities used for dealing with the filesystem.
"""

import contextlib
import os
import os.path as path
import tempfile
import typing as T

AnyPath: T.TypeAlias = os.PathLike[str] | str


@contextlib.contextmanager
def atomic_write_open(fpath: AnyPath, mode: str, **kwargs: T.Any) -> T.Generator[T.IO[T.Any], None, None]:
    """
    Opens a temporary file next to ``fpath``, renaming it over ``fpath`` once the
    ``with`` block completes.  If the block raises, the temporary file is removed and
    ``fpath`` is left untouched.

    Extra keyword arguments are passed to :py:func:`tempfile.NamedTemporaryFile`.
    """
    path_dir = path.dirname(fpath)
    with tempfile.NamedTemporaryFile(
        prefix=".", dir=path_dir, delete=False, mode=mode, **kwargs
    ) as f:
        try:
            yield f
        except BaseException:
            f.close()
            os.unlink(f.name)
            raise
    os.rename(f.name, fpath)


def write_text(fpath: AnyPath, content: str) -> None:
    """
    Atomically writes ``content`` into ``fpath`` as UTF-8, exactly as given.
    """
    with atomic_write_open(fpath, "w", encoding="utf-8", newline="") as f:
        # Fix the temporary file permissions being over-restrictive.
        os.chmod(f.name, 0o644)
        f.write(content)


def move_children(src: AnyPath, dst: AnyPath) -> None:
    """
    Renames every entry of directory ``src`` into ``dst``.  Both must be on the same
    filesystem.  If a rename fails, the entries already moved are put back into
    ``src`` before the error propagates.
    """
    moved: list[str] = []
    try:
        for name in sorted(os.listdir(src)):
            os.rename(path.join(src, name), path.join(dst, name))
            moved.append(name)
    except OSError:
        for name in reversed(moved):
            os.rename(path.join(dst, name), path.join(src, name))
        raise
