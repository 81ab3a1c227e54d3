"""modstage - run a mod's settings and data stages outside the game.

    Discovers mods, resolves each target's dependencies, activates the
    resolved set and executes its scripts in a sandboxed interpreter.

    Returns:
        int: Exit code
"""
import logging
import sys

# internal module imports
from constants import ExitCodes, Constants
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from args import parse_args
from cli_config import ConfigError, resolve_config

# Package imports support both source and installed modes:
# - Source/tests: import via src.*
# - Installed console script: import via top-level packages
try:
    from src.datastage.driver import (
        STAGE_LOAD, STAGE_TIMEOUT, BuildError, BuildResult, build_many, build_target,
    )
    from src.mods.errors import ModError
    from src.mods.registry import ModRegistry
except ImportError:  # Fall back when 'src' package is not available
    from datastage.driver import (
        STAGE_LOAD, STAGE_TIMEOUT, BuildError, BuildResult, build_many, build_target,
    )
    from mods.errors import ModError
    from mods.registry import ModRegistry

logger = logging.getLogger(__name__)


def exit_code_for(error: BuildError) -> ExitCodes:
    """Map a failed build stage to the process exit code."""
    if error.stage in (STAGE_LOAD, STAGE_TIMEOUT):
        return ExitCodes.LOAD_ERROR
    return ExitCodes.RESOLUTION_ERROR


def report(result: BuildResult) -> None:
    logger.info("[%s] load order: %s", result.target, " -> ".join(result.order))
    for line in result.diagnostics:
        logger.warning("[%s] %s", result.target, line)
    if result.dump_path is not None:
        logger.info("[%s] data written to %s", result.target, result.dump_path)
    if result.history_path is not None:
        logger.info("[%s] prototype history written to %s", result.target, result.history_path)


def run(cfg) -> ExitCodes:
    """Discover mods and build every configured target."""
    if not cfg.targets:
        logger.error("No target mod given (use -t/--target or 'targets' in the config file)")
        return ExitCodes.FILE_ERROR
    if not cfg.mod_path and not cfg.data_path:
        logger.error("Neither a mod path nor a data path was given")
        return ExitCodes.FILE_ERROR

    try:
        if cfg.mod_path:
            registry = ModRegistry.load(cfg.mod_path, cfg.data_path)
        else:
            registry = ModRegistry.discover(None, cfg.data_path)
    except ModError as e:
        logger.error("Mod discovery failed: %s", e)
        return ExitCodes.FILE_ERROR

    if len(cfg.targets) == 1 or cfg.workers == 1:
        outcomes = {}
        for target in cfg.targets:
            try:
                outcomes[target] = build_target(
                    registry, target,
                    dump_data=cfg.dump_data, dump_history=cfg.dump_history,
                    full_debug=cfg.full_debug, output_dir=cfg.output_dir,
                )
            except BuildError as e:
                outcomes[target] = e
    else:
        outcomes = build_many(
            registry, cfg.targets, max_workers=cfg.workers,
            dump_data=cfg.dump_data, dump_history=cfg.dump_history,
            full_debug=cfg.full_debug, output_dir=cfg.output_dir,
        )

    worst = ExitCodes.SUCCESS
    for target, outcome in outcomes.items():
        if isinstance(outcome, BuildError):
            logger.error("[%s] %s failed: %s", target, outcome.stage, outcome.cause)
            code = exit_code_for(outcome)
            if code.value > worst.value:
                worst = code
            continue
        report(outcome)
    return worst


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(getattr(args, "LOG_LEVEL", None))

    try:
        cfg = resolve_config(args)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if cfg.log_level:
        configure_logging(cfg.log_level)
    if cfg.log_file:
        try:
            add_file_handler(cfg.log_file)
            logger.info("Logging to file: %s", cfg.log_file)
        except OSError as e:
            logger.error("Cannot open log file %s: %s", cfg.log_file, e)
            sys.exit(ExitCodes.FILE_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(
                event="function_entry",
                component="cli",
                action="main",
                targets=",".join(cfg.targets),
                workers=cfg.workers,
                game_version=Constants.GAME_VERSION,
            ),
        )

    code = run(cfg)
    sys.exit(code.value)


if __name__ == "__main__":
    main()
