"""Dependency closure and load-order computation for mod sets.

Resolution walks the requested roots breadth-first, picking for every mod the
latest available version that satisfies all constraints gathered so far.
When a later constraint rejects an already selected version, that version is
banned and the walk restarts. A ban remembers the requirer (and its version)
whose constraint caused it, and only applies while that requirer is not
selected at some other version. Every restart adds a ban not seen before, so
the loop terminates. The visited set is the active set, and the load order
is a topological sort of it with ties broken by name.
"""
from __future__ import annotations

import heapq
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

try:
    from ..constants import Constants
    from ..common.logging_utils import extra_context, is_debug_enabled
    from ..versioning.models import Dependency, ResolutionRequest, Version
except ImportError:
    from constants import Constants
    from common.logging_utils import extra_context, is_debug_enabled
    from versioning.models import Dependency, ResolutionRequest, Version
from .errors import DependencyCycle, IncompatibleModPresent, MissingRequiredMod, UnsatisfiableVersion

logger = logging.getLogger(__name__)

ROOT_REQUIRER = "<request>"

Requirement = Tuple[str, Dependency]


class ModCatalog(Protocol):
    """What the resolver needs to know about available mods."""

    def versions(self, name: str) -> List[Version]:
        ...

    def dependencies(self, name: str, version: Version) -> Sequence[Dependency]:
        ...


@dataclass
class Resolution:
    """Resolver output: chosen versions and a total load order."""
    selected: Dict[str, Version]
    order: List[str]
    dropped_optional: List[str] = field(default_factory=list)

    @property
    def active(self) -> Set[str]:
        return set(self.selected)


@dataclass(frozen=True)
class _Ban:
    version: Version
    requirer: str
    requirer_version: Optional[Version]

    def applies(self, selected: Mapping[str, Version]) -> bool:
        current = selected.get(self.requirer)
        return current is None or current == self.requirer_version


@dataclass
class _Restart:
    name: str
    ban: _Ban


@dataclass
class _Closure:
    selected: Dict[str, Version]
    requirements: Dict[str, List[Requirement]]
    incompatible: List[Requirement]
    optional_seen: Set[str]


def _describe(requirements: Iterable[Requirement]) -> List[str]:
    return [f"{requirer} ({dep.describe_constraint()})" for requirer, dep in requirements]


class DependencyResolver:
    """Turns a ResolutionRequest into the minimal active set plus load order."""

    def __init__(self, catalog: ModCatalog, implicit_roots: Sequence[str] = (Constants.CORE_MOD,)):
        self.catalog = catalog
        self.implicit_roots = tuple(implicit_roots)

    def resolve(self, request: ResolutionRequest) -> Resolution:
        """Resolve the request.

        Raises:
            MissingRequiredMod: A required mod is not available at all.
            UnsatisfiableVersion: No version fits every requirer.
            IncompatibleModPresent: A mod marked incompatible ends up active.
            DependencyCycle: Required dependencies form a cycle.
        """
        roots = list(request.roots)
        requested = {dep.name for dep in roots}
        roots.extend(Dependency(name) for name in self.implicit_roots if name not in requested)

        banned: Dict[str, Set[_Ban]] = defaultdict(set)
        while True:
            outcome = self._closure(roots, banned)
            if isinstance(outcome, _Closure):
                break
            logger.debug("Version %s of %s rejected by %s, restarting",
                         outcome.ban.version, outcome.name, outcome.ban.requirer)
            banned[outcome.name].add(outcome.ban)

        self._check_incompatible(outcome)

        selected = outcome.selected
        graph = build_order_graph(
            {name: self.catalog.dependencies(name, version) for name, version in selected.items()}
        )
        order = load_order(graph)
        dropped = sorted(outcome.optional_seen - set(selected))

        if is_debug_enabled(logger):
            logger.debug(
                "Resolved mod set",
                extra=extra_context(
                    event="resolution",
                    component="resolver",
                    count=len(selected),
                    order=",".join(order),
                ),
            )
        return Resolution(selected=selected, order=order, dropped_optional=dropped)

    def _closure(self, roots: Sequence[Dependency], banned: Mapping[str, Set[_Ban]]):
        selected: Dict[str, Version] = {}
        requirements: Dict[str, List[Requirement]] = defaultdict(list)
        incompatible: List[Requirement] = []
        optional_seen: Set[str] = set()
        queue = deque((ROOT_REQUIRER, dep) for dep in roots)

        while queue:
            requirer, dep = queue.popleft()
            name = dep.name

            if dep.is_incompatible:
                incompatible.append((requirer, dep))
                continue

            requirements[name].append((requirer, dep))
            if dep.is_optional:
                optional_seen.add(name)
                current = selected.get(name)
                if current is not None and not dep.allows(current):
                    return self._reject(name, current, requirer, selected, requirements[name])
                continue

            available = self.catalog.versions(name)
            if not available:
                raise MissingRequiredMod(name, requirer)

            current = selected.get(name)
            if current is not None:
                if dep.allows(current):
                    continue
                return self._reject(name, current, requirer, selected, requirements[name])

            excluded = {ban.version for ban in banned.get(name, ()) if ban.applies(selected)}
            pick = self._pick(name, requirements[name], excluded)
            if pick is None:
                raise UnsatisfiableVersion(name, _describe(requirements[name]))

            selected[name] = pick
            logger.debug("Selected %s %s (required by %s)", name, pick, requirer)
            for child in self.catalog.dependencies(name, pick):
                queue.append((name, child))

        return _Closure(selected, requirements, incompatible, optional_seen)

    def _reject(self, name: str, current: Version, requirer: str,
                selected: Mapping[str, Version], reqs: List[Requirement]) -> _Restart:
        if self._pick(name, reqs, {current}) is None:
            raise UnsatisfiableVersion(name, _describe(reqs))
        return _Restart(name, _Ban(current, requirer, selected.get(requirer)))

    def _pick(self, name: str, reqs: Iterable[Requirement], excluded: Set[Version]) -> Optional[Version]:
        """Latest non-excluded version allowed by every requirement."""
        reqs = list(reqs)
        fitting = [
            v for v in self.catalog.versions(name)
            if v not in excluded and all(dep.allows(v) for _, dep in reqs)
        ]
        return max(fitting) if fitting else None

    @staticmethod
    def _check_incompatible(closure: _Closure) -> None:
        for requirer, dep in closure.incompatible:
            version = closure.selected.get(dep.name)
            if version is not None and dep.allows(version):
                raise IncompatibleModPresent(dep.name, requirer)


def build_order_graph(dependencies: Mapping[str, Iterable[Dependency]]) -> Dict[str, Set[str]]:
    """Map each mod to the mods that must load before it.

    Only dependencies present in ``dependencies`` and affecting load order
    (required or optional, not lazy or incompatible) add an edge. ``core``
    always precedes every other mod.
    """
    present = set(dependencies)
    graph: Dict[str, Set[str]] = {name: set() for name in present}
    for name, deps in dependencies.items():
        for dep in deps:
            if dep.affects_load_order and dep.name in present and dep.name != name:
                graph[name].add(dep.name)
        if name != Constants.CORE_MOD and Constants.CORE_MOD in present:
            graph[name].add(Constants.CORE_MOD)
    return graph


def load_order(graph: Mapping[str, Iterable[str]]) -> List[str]:
    """Topologically sort ``graph`` (name -> predecessors), ties by name.

    Raises:
        DependencyCycle: Naming the mods that take part in a cycle.
    """
    preds = {name: set(p) & set(graph) for name, p in graph.items()}
    succs: Dict[str, Set[str]] = {name: set() for name in preds}
    for name, p in preds.items():
        for before in p:
            succs[before].add(name)

    indegree = {name: len(p) for name, p in preds.items()}
    ready = [name for name, n in indegree.items() if n == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for after in sorted(succs[name]):
            indegree[after] -= 1
            if indegree[after] == 0:
                heapq.heappush(ready, after)

    if len(order) != len(preds):
        raise DependencyCycle(_cycle_members(preds, set(preds) - set(order)))
    return order


def _cycle_members(preds: Mapping[str, Set[str]], remaining: Set[str]) -> Set[str]:
    """Strip mods that merely depend on a cycle, leaving its members."""
    remaining = set(remaining)
    changed = True
    while changed:
        changed = False
        for name in sorted(remaining):
            has_dependent = any(name in preds[other] for other in remaining if other != name)
            if not has_dependent:
                remaining.discard(name)
                changed = True
    return remaining
