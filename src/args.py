"""Argument parsing functionality for modstage."""

import argparse

from constants import Constants


def build_parser():
    """Build the argument parser (separate from parsing for tests)."""
    parser = argparse.ArgumentParser(
        prog="modstage",
        description=(
            "modstage - resolve a mod's dependencies and run its settings/data stage "
            "scripts in a sandboxed Lua interpreter"
        ),
        add_help=True,
    )

    parser.add_argument("-m", "--mod-path",
                        dest="MOD_PATH",
                        help="Directory holding mod folders and zip archives",
                        action="store",
                        type=str)
    parser.add_argument("-d", "--data-path",
                        dest="DATA_PATH",
                        help="Host data directory holding the built-in mods (core, base, ...)",
                        action="store",
                        type=str)
    parser.add_argument("-t", "--target",
                        dest="TARGETS",
                        help="Mod to build; repeat to build several targets",
                        action="append",
                        type=str,
                        default=[])

    parser.add_argument("--dump-data",
                        dest="DUMP_DATA",
                        help="Write data.raw of each target as <target>" + Constants.DUMP_SUFFIX,
                        action="store_true",
                        default=None)
    parser.add_argument("--dump-history",
                        dest="DUMP_HISTORY",
                        help="Write which mod created each prototype of the target as <target>" + Constants.HISTORY_SUFFIX,
                        action="store_true",
                        default=None)
    parser.add_argument("--full-debug",
                        dest="FULL_DEBUG",
                        help="Keep the Lua debug library available to mod scripts",
                        action="store_true",
                        default=None)
    parser.add_argument("-o", "--output-dir",
                        dest="OUTPUT_DIR",
                        help="Directory for data and history dumps (default: current directory)",
                        action="store",
                        type=str)
    parser.add_argument("-w", "--workers",
                        dest="WORKERS",
                        help="Number of targets built concurrently",
                        action="store",
                        type=int)

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
