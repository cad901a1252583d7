"""depforge - dependency manager for Buck projects.

    Returns:
        int: Exit code
"""
import asyncio
import logging
import sys
from pathlib import Path

from acquisition.events import EventKind
from args import parse_args
from cli_config import apply_cli_overrides
from common.errors import (
    ArchiveError,
    DocumentError,
    FetchRecipeError,
    FileConflictError,
    HashMismatchError,
    RecipeUnavailableError,
    ResolutionDidNotConvergeError,
    TransportError,
    UnsatisfiableVersionError,
)
from common.http_client import HttpClient
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from reporter import EventReporter
from sources import standard
from tasks import add_dependencies, init, install, list_recipes, resolve_dependencies, uninstall, update
from tasks.common import read_config_file
from versioning.parser import parse_dependency_token, parse_recipe_identifier

logger = logging.getLogger(__name__)


def _setup_logging(args):
    """Configure logging from --loglevel, --logfile and --quiet."""
    level = "ERROR" if getattr(args, "QUIET", False) else getattr(args, "LOG_LEVEL", None)
    configure_logging(level, getattr(args, "LOG_FILE", None))


def _command_stream(args, project_directory, source, http, config):
    command = args.COMMAND
    limits = {"max_reopens": config.max_reopens, "fetch_timeout": config.fetch_timeout}
    if command == "resolve":
        return resolve_dependencies(project_directory, source, **limits)
    if command == "install":
        if args.DEPENDENCIES:
            additions = [parse_dependency_token(token) for token in args.DEPENDENCIES]
            return add_dependencies(project_directory, additions, source, http, **limits)
        return install(project_directory, source, http, **limits)
    if command == "uninstall":
        identifiers = [parse_recipe_identifier(token) for token in args.DEPENDENCIES]
        return uninstall(project_directory, identifiers, source, http, **limits)
    if command == "update":
        identifiers = [parse_recipe_identifier(token) for token in args.DEPENDENCIES] or None
        return update(project_directory, source, http, identifiers=identifiers, **limits)
    raise ValueError(f"Unknown command: {command}")


async def _print_recipes(config):
    recipes = await list_recipes(config.cookbooks)
    if not recipes:
        logger.info("No recipes found in %d cookbook(s)", len(config.cookbooks))
    for identifier in recipes:
        print(identifier)


async def run_command(args):
    """Run the selected workflow, reporting its events through logging."""
    project_directory = Path(args.PROJECT_DIR)
    reporter = EventReporter()

    if args.COMMAND == "init":
        await reporter.consume(init(project_directory))
        return

    config = None
    async for event in read_config_file(Path(args.CONFIG) if args.CONFIG else None):
        reporter.report(event)
        if event.kind is EventKind.READ_CONFIG_FILE:
            config = event.config
    config = apply_cli_overrides(config, args)

    if args.COMMAND == "recipes":
        await _print_recipes(config)
        return

    async with HttpClient(
        timeout=config.http_timeout,
        retries=config.http_retries,
        backoff=config.http_backoff,
    ) as http:
        source = standard(config, http)
        stream = _command_stream(args, project_directory, source, http, config)
        await reporter.consume(stream)


def exit_code_for(exc):
    """Map an error to the process exit code."""
    if isinstance(exc, (UnsatisfiableVersionError, ResolutionDidNotConvergeError,
                        HashMismatchError, RecipeUnavailableError)):
        return ExitCodes.RESOLUTION_ERROR
    if isinstance(exc, (TransportError, FetchRecipeError)):
        return ExitCodes.CONNECTION_ERROR
    return ExitCodes.FILE_ERROR


def run(args):
    """Run a parsed command line and return its ExitCodes value."""
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )
    try:
        asyncio.run(run_command(args))
    except FileNotFoundError as exc:
        if Path(exc.filename or "").name == Constants.PROJECT_FILE:
            logging.error("No %s found; run 'depforge init' first", Constants.PROJECT_FILE)
        else:
            logging.error("File not found: %s", exc.filename)
        return ExitCodes.FILE_ERROR
    except (TransportError, FetchRecipeError, UnsatisfiableVersionError,
            ResolutionDidNotConvergeError, HashMismatchError) as exc:
        logging.error("%s", exc)
        return exit_code_for(exc)
    except (FileConflictError, DocumentError, ArchiveError) as exc:
        logging.error("%s", exc)
        return ExitCodes.FILE_ERROR
    except ValueError as exc:
        logging.error("Invalid argument: %s", exc)
        return ExitCodes.FILE_ERROR
    except OSError as exc:
        logging.error("IO error: %s, aborting", exc)
        return ExitCodes.FILE_ERROR

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action=args.COMMAND, outcome="success"),
        )
    return ExitCodes.SUCCESS


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)
    sys.exit(run(args).value)


if __name__ == "__main__":
    main()
