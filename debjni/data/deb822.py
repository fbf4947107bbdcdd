# deb822 control file parsing.
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
This module parses the deb822 format used by ``Packages`` indices and by the
``control`` file of binary packages.

The format is a series of stanzas separated by blank lines.  Each stanza is a list of
``Key: value`` fields; a line starting with a space or a tab continues the previous
field.
"""

import typing as T

Stanza: T.TypeAlias = dict[str, str]
"""One stanza, mapping field names to their (possibly multi-line) values."""


class Deb822Error(ValueError):
    """Raised on input that is not deb822."""

    def __init__(self, lineno: int, message: str) -> None:
        super().__init__(f"line {lineno}: {message}")
        self.lineno = lineno


def iter_stanzas(lines: T.Iterable[str]) -> T.Generator[Stanza, None, None]:
    """
    Parses ``lines`` lazily, yielding one dictionary per stanza.  Field order is
    preserved.  Field names keep their original case.

    Raises:
      Deb822Error: on a line that is neither a field, a continuation, nor blank.
    """
    current: Stanza = {}
    last_key: str | None = None
    for lineno, raw_line in enumerate(lines, start=1):
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            if current:
                yield current
            current = {}
            last_key = None
            continue

        if line[0] in " \t":
            if last_key is None:
                raise Deb822Error(lineno, "continuation line outside of a field")
            # A lone "." stands for an empty line in multi-line values.
            cont = line.strip()
            current[last_key] += "\n" + ("" if cont == "." else cont)
            continue

        if line.startswith("#"):
            continue

        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            raise Deb822Error(lineno, f"expected a field, got {line!r}")
        last_key = key.strip()
        current[last_key] = value.strip()

    if current:
        yield current


def parse_stanzas(text: str) -> list[Stanza]:
    """Parses the entirety of ``text``.  See :py:func:`iter_stanzas`."""
    return list(iter_stanzas(text.splitlines()))
