"""Argument parsing functionality for depmirror."""

import argparse

from .constants import Constants


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="depmirror",
        description=(
            "depmirror - mirror npm packages, their dependencies and prebuilt binaries"
        ),
        add_help=True,
    )

    parser.add_argument("-m", "--manifest",
                        dest="MANIFEST",
                        help=f"Path to the manifest (default: {Constants.PACKAGE_JSON_FILE})",
                        action="store",
                        type=str)
    parser.add_argument("-r", "--root",
                        dest="ROOT",
                        help="Mirror root folder",
                        action="store",
                        type=str)
    parser.add_argument("-u", "--local-url",
                        dest="LOCAL_URL",
                        help="Base URL the mirror root is served from",
                        action="store",
                        type=str)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help=f"Upstream registry (default: {Constants.REGISTRY_URL_NPM})",
                        action="store",
                        type=str)

    binary_group = parser.add_argument_group("prebuilt binaries")
    binary_group.add_argument("--abi",
                              dest="ABI",
                              help="Node ABI version to fetch binaries for, e.g. 93 (repeatable)",
                              action="append",
                              type=str)
    binary_group.add_argument("--arch",
                              dest="ARCH",
                              help="CPU architecture, e.g. x64 (repeatable)",
                              action="append",
                              type=str)
    binary_group.add_argument("--platform",
                              dest="PLATFORM",
                              help="Platform, e.g. linux, darwin, win32 (repeatable)",
                              action="append",
                              type=str)

    parser.add_argument("--prune",
                        dest="PRUNE",
                        help="Remove files in the mirror root not produced by this run.",
                        action="store_true")
    parser.add_argument("--pretty",
                        dest="PRETTY",
                        help="Pretty-print mirrored metadata files.",
                        action="store_true")

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
