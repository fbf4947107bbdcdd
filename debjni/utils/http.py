# HTTP helpers.
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
This module contains helpers for talking to package repositories over HTTP.
"""

import io
import typing as T

import requests


def create_session() -> requests.Session:
    """
    Creates a :py:class:`requests.Session` identifying as ``debjni``.  Sessions are not
    safe to share between threads; create one per thread.
    """
    from debjni import __version__

    session = requests.Session()
    session.headers["User-Agent"] = f"debjni/{__version__}"
    return session


class ResponseReader(io.RawIOBase):
    """
    Exposes the body of a streamed :py:class:`requests.Response` as a raw binary file,
    so that it can be consumed incrementally by readers expecting a file object.

    Transport errors surface from ``read`` as :py:class:`requests.RequestException`.
    """

    def __init__(self, response: requests.Response, chunk_size: int = 128 * 1024) -> None:
        self._chunks = response.iter_content(chunk_size)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: T.Any) -> int:
        while not self._pending:
            chunk = next(self._chunks, None)
            if chunk is None:
                return 0
            self._pending = chunk
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


def open_body(response: requests.Response) -> T.BinaryIO:
    """Get a buffered, read-only file object over the body of ``response``."""
    return T.cast(T.BinaryIO, io.BufferedReader(ResponseReader(response)))
