"""Build pipeline: resolve a target, activate its mod set, run the stages.

Each build works on its own fork of the registry and its own interpreter,
so independent targets can be built concurrently. Packages (and their zip
readers) are shared between builds; zip access is serialized inside
``ZipSource``.
"""
from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

try:
    from ..common.logging_utils import Timer
    from ..constants import Constants
    from ..mods.errors import ModError
    from ..mods.registry import ModRegistry
    from ..resolver.dependency_resolver import DependencyResolver, Resolution
    from ..resolver.errors import ResolutionError
    from ..versioning.models import ResolutionRequest, Version
except ImportError:
    from common.logging_utils import Timer
    from constants import Constants
    from mods.errors import ModError
    from mods.registry import ModRegistry
    from resolver.dependency_resolver import DependencyResolver, Resolution
    from resolver.errors import ResolutionError
    from versioning.models import ResolutionRequest, Version
from .data_loader import DataLoader
from .errors import DataLoaderError

logger = logging.getLogger(__name__)

STAGE_RESOLVE = "resolve"
STAGE_ENABLE = "enable"
STAGE_LOAD = "load"
STAGE_TIMEOUT = "timeout"


class MissingModsError(Exception):
    """Resolved mods that the registry could not activate."""

    def __init__(self, missing: Dict[str, Optional[Version]]):
        self.missing = dict(missing)
        names = ", ".join(
            f"{name} {version}" if version is not None else name
            for name, version in sorted(self.missing.items())
        )
        super().__init__(f"missing mods: {names}")


class BuildError(Exception):
    """A build failed; ``stage`` names where and ``cause`` carries the underlying error."""

    def __init__(self, target: str, stage: str, cause: BaseException):
        self.target = target
        self.stage = stage
        self.cause = cause
        self.mod = getattr(cause, "mod", None) or target
        super().__init__(f"[{target}] {stage} failed: {cause}")


@dataclass
class BuildResult:
    target: str
    resolution: Resolution
    order: List[str]
    loader: DataLoader
    duration_ms: int = 0
    dump_path: Optional[Path] = None
    history_path: Optional[Path] = None
    diagnostics: List[str] = field(default_factory=list)


def build_target(registry: ModRegistry, target: str, *, dump_data: bool = False,
                 dump_history: bool = False, full_debug: bool = False,
                 output_dir: Optional[Union[str, Path]] = None) -> BuildResult:
    """Resolve, activate and load ``target`` with its dependencies.

    The registry itself is never modified; activation happens on a fork.
    Loading never starts when the resolved set cannot be enabled in full.

    Raises:
        BuildError: Wrapping the failure with the stage it happened in.
    """
    fork = registry.fork()
    with Timer() as timer:
        try:
            resolution = DependencyResolver(fork).resolve(ResolutionRequest.for_target(target))
        except (ResolutionError, ModError) as e:
            raise BuildError(target, STAGE_RESOLVE, e) from e
        logger.info("[%s] resolved %d mod(s): %s", target, len(resolution.order),
                    ", ".join(resolution.order))

        missing = fork.enable_set(resolution.selected)
        if missing:
            raise BuildError(target, STAGE_ENABLE, MissingModsError(missing))

        try:
            active, order = fork.active_with_order()
        except ResolutionError as e:
            raise BuildError(target, STAGE_ENABLE, e) from e

        try:
            loader = DataLoader(
                active, order,
                dump_data=dump_data,
                dump_history=target if dump_history else None,
                full_debug=full_debug,
            )
            loader.load(output_dir or Constants.DEFAULT_OUTPUT_DIR, target)
        except (DataLoaderError, OSError, TypeError, ValueError) as e:
            raise BuildError(target, STAGE_LOAD, e) from e

    out_dir = Path(output_dir or Constants.DEFAULT_OUTPUT_DIR)
    dump_path = out_dir / f"{target}{Constants.DUMP_SUFFIX}" if dump_data else None
    history_path = out_dir / f"{target}{Constants.HISTORY_SUFFIX}" if dump_history else None
    logger.info("[%s] loaded in %d ms", target, timer.duration_ms())
    return BuildResult(
        target=target,
        resolution=resolution,
        order=order,
        loader=loader,
        duration_ms=timer.duration_ms(),
        dump_path=dump_path,
        history_path=history_path,
        diagnostics=[d.describe() for d in loader.loader.diagnostics],
    )


def build_many(registry: ModRegistry, targets: Iterable[str], *, max_workers: int = Constants.DEFAULT_WORKERS,
               timeout: Optional[float] = None, dump_data: bool = False,
               dump_history: bool = False, full_debug: bool = False,
               output_dir: Optional[Union[str, Path]] = None) -> Dict[str, Union[BuildResult, BuildError]]:
    """Build several targets on a thread pool, one interpreter per build.

    Builds cannot be interrupted mid-script; when ``timeout`` expires the
    unfinished targets are reported as timed out and their results dropped.
    """
    targets = list(dict.fromkeys(targets))
    results: Dict[str, Union[BuildResult, BuildError]] = {}
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=max(1, max_workers))
    try:
        futures = {
            executor.submit(
                build_target, registry, target,
                dump_data=dump_data, dump_history=dump_history, full_debug=full_debug, output_dir=output_dir,
            ): target
            for target in targets
        }
        try:
            for future in concurrent.futures.as_completed(futures, timeout=timeout):
                target = futures[future]
                try:
                    results[target] = future.result()
                except BuildError as e:
                    logger.debug("%s", e)
                    results[target] = e
        except concurrent.futures.TimeoutError:
            for future, target in futures.items():
                if target not in results:
                    future.cancel()
                    results[target] = BuildError(
                        target, STAGE_TIMEOUT, TimeoutError(f"not finished after {timeout}s")
                    )
    finally:
        executor.shutdown(wait=timeout is None, cancel_futures=True)
    return {target: results[target] for target in targets}
