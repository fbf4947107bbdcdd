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
Helper functions for some logging-related tasks.
"""

import logging
import typing as T

if T.TYPE_CHECKING:
    from debjni.data.config import LoggingConfig


LOG_TS_FORMAT = "%Y-%m-%d %H:%M:%S%z"
"""Format that timestamps will be logged in."""


def _get_formatter() -> logging.Formatter:
    return logging.Formatter(
        fmt="[%(asctime)s %(levelname)7s%(debjni_context)s] %(name)s: %(message)s",
        datefmt=LOG_TS_FORMAT,
    )


class ContextFormattingFilter(logging.Filter):
    """
    A filter that formats our contextual information.  For now, those are the
    ``package`` and ``arch`` strings.
    """

    _CONTEXT_FIELDS = ("package", "arch")

    def filter(self, record: logging.LogRecord) -> bool:
        record.debjni_context = "/".join(
            getattr(record, field) for field in self._CONTEXT_FIELDS if hasattr(record, field)
        )
        for field in self._CONTEXT_FIELDS:
            try:
                delattr(record, field)
            except AttributeError:
                pass
        if record.debjni_context:  # type: ignore[attr-defined]
            record.debjni_context = f" {record.debjni_context}"  # type: ignore[attr-defined]
        return True


def create_stream_handler(stream: T.TextIO | None = None) -> logging.StreamHandler[T.TextIO]:
    handler = logging.StreamHandler(stream)
    handler.setFormatter(_get_formatter())
    handler.addFilter(ContextFormattingFilter())
    return handler


def context_logger(
    logger: logging.Logger, package: str, arch: str | None = None
) -> logging.LoggerAdapter[logging.Logger]:
    """
    Wraps ``logger`` so that its records carry the package (and, optionally,
    architecture) being processed.
    """
    extra = dict(package=package)
    if arch is not None:
        extra["arch"] = arch
    return logging.LoggerAdapter(logger, extra)


def apply_logging_config(config: "LoggingConfig") -> None:
    """
    Given a :py:class:`LoggingConfig`, apply the logging configuration to stdlib
    :py:mod:`logging`.
    """

    # Tell `logging` about us.
    handler = create_stream_handler()
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if config.debug else logging.INFO)
