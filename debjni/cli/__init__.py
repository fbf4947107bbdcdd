# debjni command line interface
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

import argparse
import logging
import sys

import debjni.data.config as config
import debjni.utils.logging as dju_logging
from debjni.errors import DebJniError, OutputExistsError
from debjni.scheduler import run
from debjni.utils.argparse import create_root_parser

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    parser = create_root_parser(
        "Turn a package from an APT repository into an Android project bundling its "
        "shared libraries."
    )
    parser.add_argument(
        "--config",
        help="TOML configuration file (default: $DEBJNI_CONFIG, or built-in defaults)",
    )
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument(
        "--arch",
        action="append",
        dest="architectures",
        metavar="ARCH",
        help="only extract for ARCH; may be repeated (default: all configured)",
    )
    parser.add_argument("package", help="name of the package to extract")
    parser.add_argument("output_dir", help="project directory to create; must not exist")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _create_parser()
    args = parser.parse_args(argv)

    extractor_config = config.load_and_validate_config(args.config, config.ExtractorConfig)
    if args.debug:
        extractor_config.log.debug = True
    dju_logging.apply_logging_config(extractor_config.log)
    logger.debug("config loaded: %r", extractor_config)

    try:
        result = run(
            args.package,
            args.output_dir,
            extractor_config,
            architectures=args.architectures,
        )
    except ValueError as e:
        parser.error(str(e))
    except OutputExistsError:
        logger.error("Output directory already exists: %s", args.output_dir)
        sys.exit(1)
    except DebJniError as e:
        logger.error("%s", e.describe())
        sys.exit(1)

    if not result.ok:
        logger.error(
            "extracting %s failed for: %s", args.package, ", ".join(sorted(result.failures))
        )
        sys.exit(1)
