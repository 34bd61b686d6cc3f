# seriesflow/core/graph.py
"""
Transform dependency graph.

Transform A depends on transform B when one of A's sources is B's destination.
Evaluation order comes from Kahn's algorithm, run every time: independent
transforms are popped in ascending `order`, and whatever is left with a
nonzero in-degree (a cycle, or anything downstream of one) is appended in
insertion order and reported as a CyclicDependency diagnostic.
"""
from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence

from .exceptions import SeriesNotFound, TransformNotFound
from .store import SeriesStore
from .transforms import Transform

logger = logging.getLogger(__name__)


# ---- diagnostics / reports ----
@dataclass(frozen=True, slots=True)
class CyclicDependency:
    names: tuple[str, ...]

    def __str__(self) -> str:
        return "cyclic dependency between transforms: " + ", ".join(self.names)


@dataclass(frozen=True, slots=True)
class EvaluationOrder:
    transforms: tuple[Transform, ...]
    cyclic: CyclicDependency | None = None

    def __iter__(self) -> Iterator[Transform]:
        return iter(self.transforms)

    def __len__(self) -> int:
        return len(self.transforms)

    def names(self) -> list[str]:
        return [t.destination for t in self.transforms]


@dataclass(frozen=True, slots=True)
class TransformFailure:
    name: str
    error: Exception

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass(frozen=True, slots=True)
class EvaluationReport:
    evaluated: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failures: tuple[TransformFailure, ...] = ()
    cyclic: CyclicDependency | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


# ---- ordering ----
def kahn_order(
    names: Sequence[str],
    dependencies: Mapping[str, Iterable[str]],
    priority: Mapping[str, Any] | None = None,
) -> tuple[list[str], list[str]]:
    """
    Topological order of `names` (producers first) and the leftover names.

    Only dependencies on names in `names` count; self dependencies are
    ignored. Ready nodes are popped by (priority, position). Leftovers keep
    the relative order of `names`.
    """
    position = {name: i for i, name in enumerate(names)}
    in_degree = {name: 0 for name in names}
    dependents: dict[str, list[str]] = {name: [] for name in names}

    for name in names:
        for dep in set(dependencies.get(name, ())):
            if dep == name or dep not in position:
                continue
            in_degree[name] += 1
            dependents[dep].append(name)

    def key(name: str) -> tuple[Any, int]:
        rank = priority[name] if priority is not None else position[name]
        return rank, position[name]

    ready = [(key(n), n) for n in names if in_degree[n] == 0]
    heapq.heapify(ready)
    ordered: list[str] = []
    while ready:
        _, name = heapq.heappop(ready)
        ordered.append(name)
        for child in dependents[name]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                heapq.heappush(ready, (key(child), child))

    emitted = set(ordered)
    leftovers = [n for n in names if n not in emitted]
    return ordered, leftovers


def definition_sources(definition: Mapping[str, Any]) -> list[str]:
    """Every source name a serialized transform definition declares."""
    sources: list[str] = []
    if definition.get("linked_source"):
        sources.append(definition["linked_source"])
    sources.extend(definition.get("additional_sources") or ())
    sources.extend(definition.get("sources") or ())
    if definition.get("source"):
        sources.append(definition["source"])
    return sources


def order_definitions(
    definitions: Sequence[Mapping[str, Any]],
) -> tuple[list[Mapping[str, Any]], CyclicDependency | None]:
    """
    Order serialized transform definitions so producers are created before consumers.

    Definitions caught in a cycle are appended in their original order.
    """
    by_name: dict[str, Mapping[str, Any]] = {}
    for definition in definitions:
        by_name[definition["destination"]] = definition
    names = list(by_name)
    deps = {name: definition_sources(d) for name, d in by_name.items()}
    ordered, leftovers = kahn_order(names, deps)

    cyclic = None
    if leftovers:
        cyclic = CyclicDependency(tuple(leftovers))
        logger.warning("%s; creating them in their original order", cyclic)
    return [by_name[n] for n in ordered + leftovers], cyclic


class TransformGraph:
    """
    Set of transforms keyed by destination name.

    Design goals:
    - re-adding a destination replaces the previous transform
    - ordering is recomputed on demand, never cached across graph edits
    - one failing transform never stops the others
    """

    def __init__(self) -> None:
        self._transforms: dict[str, Transform] = {}

    # ---- dict-like API ----
    def __len__(self) -> int:
        return len(self._transforms)

    def __iter__(self) -> Iterator[str]:
        return iter(self._transforms)

    def __contains__(self, name: object) -> bool:
        return name in self._transforms

    def __getitem__(self, name: str) -> Transform:
        return self.get(name)

    def get(self, name: str) -> Transform:
        try:
            return self._transforms[name]
        except KeyError:
            raise TransformNotFound(name) from None

    def transforms(self) -> list[Transform]:
        return list(self._transforms.values())

    def reactive(self) -> list[Transform]:
        return [t for t in self._transforms.values() if t.reactive]

    def static(self) -> list[Transform]:
        return [t for t in self._transforms.values() if not t.reactive]

    # ---- edits ----
    def add(self, transform: Transform) -> Transform | None:
        """Register `transform`; returns the transform it replaced, if any."""
        previous = self._transforms.get(transform.destination)
        self._transforms[transform.destination] = transform
        return previous

    def remove(self, name: str) -> Transform | None:
        return self._transforms.pop(name, None)

    def clear(self) -> None:
        self._transforms.clear()

    def reset_all(self) -> None:
        for transform in self._transforms.values():
            transform.reset()

    # ---- analysis ----
    def evaluation_order(self, transforms: Iterable[Transform] | None = None) -> EvaluationOrder:
        selected = self.transforms() if transforms is None else list(transforms)
        by_name = {t.destination: t for t in selected}
        names = list(by_name)
        deps = {name: t.dependencies() for name, t in by_name.items()}
        priority = {name: t.order for name, t in by_name.items()}
        ordered, leftovers = kahn_order(names, deps, priority)

        cyclic = CyclicDependency(tuple(leftovers)) if leftovers else None
        return EvaluationOrder(tuple(by_name[n] for n in ordered + leftovers), cyclic)

    def dependents_closure(self, names: Iterable[str]) -> set[str]:
        """`names` plus every transform destination that transitively reads from them."""
        closure = set(names)
        changed = True
        while changed:
            changed = False
            for transform in self._transforms.values():
                if transform.destination in closure:
                    continue
                if any(source in closure for source in transform.dependencies()):
                    closure.add(transform.destination)
                    changed = True
        return closure

    # ---- evaluation ----
    def evaluate_all(self, store: SeriesStore, *, force: bool = False) -> EvaluationReport:
        """
        Recompute static transforms whose sources changed, in dependency order.

        With `force`, every static transform is recomputed.
        """
        order = self.evaluation_order(self.static())
        if order.cyclic is not None:
            logger.warning("%s; evaluating them in insertion order", order.cyclic)

        evaluated: list[str] = []
        updated: list[str] = []
        skipped: list[str] = []
        failures: list[TransformFailure] = []
        for transform in order:
            name = transform.destination
            if not force and not transform.needs_update(store):
                skipped.append(name)
                continue
            produced = self._run(transform, store, failures)
            if produced is None:
                continue
            evaluated.append(name)
            if produced:
                updated.append(name)

        logger.debug("evaluated %d transforms (%d updated, %d failed)", len(evaluated), len(updated), len(failures))
        return EvaluationReport(
            evaluated=tuple(evaluated),
            updated=tuple(updated),
            skipped=tuple(skipped),
            failures=tuple(failures),
            cyclic=order.cyclic,
        )

    def evaluate_reactive(self, store: SeriesStore, tracker_time: float) -> EvaluationReport:
        """
        Recompute every reactive transform at `tracker_time`, then the static
        transforms reading (directly or not) from their destinations.
        """
        order = self.evaluation_order(self.reactive())
        evaluated: list[str] = []
        updated: list[str] = []
        failures: list[TransformFailure] = []
        for transform in order:
            transform.set_time_tracker(tracker_time)
            produced = self._run(transform, store, failures)
            if produced is None:
                continue
            evaluated.append(transform.destination)
            if produced:
                updated.append(transform.destination)

        downstream = self.dependents_closure(t.destination for t in order)
        followers = [t for t in self.static() if t.destination in downstream]
        skipped: list[str] = []
        for transform in self.evaluation_order(followers):
            if not transform.needs_update(store):
                skipped.append(transform.destination)
                continue
            produced = self._run(transform, store, failures)
            if produced is None:
                continue
            evaluated.append(transform.destination)
            if produced:
                updated.append(transform.destination)

        return EvaluationReport(
            evaluated=tuple(evaluated),
            updated=tuple(updated),
            skipped=tuple(skipped),
            failures=tuple(failures),
            cyclic=order.cyclic,
        )

    @staticmethod
    def _run(transform: Transform, store: SeriesStore, failures: list[TransformFailure]) -> bool | None:
        try:
            produced = transform.calculate(store)
        except SeriesNotFound as e:
            # source not loaded (yet): common while streaming
            logger.debug("transform '%s' skipped, missing source %s", transform.destination, e)
            failures.append(TransformFailure(transform.destination, e))
            return None
        except Exception as e:
            logger.warning("transform '%s' failed: %s", transform.destination, e)
            failures.append(TransformFailure(transform.destination, e))
            return None
        transform.mark_evaluated(store)
        return bool(produced)
