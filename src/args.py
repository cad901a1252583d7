"""Argument parsing functionality for depforge."""

import argparse

from constants import Constants


def _add_network_options(parser):
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help="Deadline in seconds for each network attempt",
                        action="store",
                        type=float)
    parser.add_argument("--retries",
                        dest="RETRIES",
                        help="Attempts per network operation before giving up",
                        action="store",
                        type=int)
    parser.add_argument("--fetch-timeout",
                        dest="FETCH_TIMEOUT",
                        help="Deadline in seconds for fetching one recipe, retries included",
                        action="store",
                        type=float)
    parser.add_argument("--max-reopens",
                        dest="MAX_REOPENS",
                        help="How often the resolver may revisit one package",
                        action="store",
                        type=int)
    parser.add_argument("--cookbook",
                        dest="COOKBOOKS",
                        help="Extra local cookbook folder to search first (repeatable)",
                        action="append",
                        type=str,
                        default=[])


def build_parser():
    """Build the argument parser with one sub-command per workflow."""
    parser = argparse.ArgumentParser(
        prog="depforge",
        description="depforge - dependency manager for Buck projects",
        add_help=True,
    )
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Only report errors on the console.",
                        action="store_true")
    parser.add_argument("-C", "--directory",
                        dest="PROJECT_DIR",
                        help="Project directory (default: current directory)",
                        action="store",
                        type=str,
                        default=".")
    parser.add_argument("--config",
                        dest="CONFIG",
                        help=f"Configuration file (default: ~/{Constants.CONFIG_DIR}/{Constants.CONFIG_FILE})",
                        action="store",
                        type=str)

    subparsers = parser.add_subparsers(dest="COMMAND", metavar="command")
    subparsers.required = True

    subparsers.add_parser("init", help=f"Create {Constants.PROJECT_FILE} in the project directory")

    resolve = subparsers.add_parser("resolve", help=f"Resolve dependencies and write {Constants.LOCK_FILE}")
    _add_network_options(resolve)

    install = subparsers.add_parser(
        "install",
        help="Install locked dependencies, or add a dependency and install",
    )
    install.add_argument("DEPENDENCIES",
                         help="Dependencies to add, as org/recipe or org/recipe@requirement",
                         nargs="*",
                         metavar="dependency")
    _add_network_options(install)

    uninstall = subparsers.add_parser("uninstall", help="Remove dependencies and re-install")
    uninstall.add_argument("DEPENDENCIES",
                           help="Dependencies to remove, as org/recipe",
                           nargs="+",
                           metavar="dependency")
    _add_network_options(uninstall)

    update = subparsers.add_parser("update", help="Re-resolve to the newest compatible versions")
    update.add_argument("DEPENDENCIES",
                        help="Only update these dependencies, as org/recipe (default: all)",
                        nargs="*",
                        metavar="dependency")
    _add_network_options(update)

    recipes = subparsers.add_parser("recipes", help="List the recipes available from the configured cookbooks")
    recipes.add_argument("--cookbook",
                         dest="COOKBOOKS",
                         help="Extra local cookbook folder to list (repeatable)",
                         action="append",
                         type=str,
                         default=[])

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
