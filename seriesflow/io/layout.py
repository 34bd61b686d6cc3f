# seriesflow/io/layout.py
"""
Layout persistence: what an engine needs to rebuild its derived state.

A layout carries transform definitions, plotted curves (with their windows
and transforms), the retention horizon, the relative-time flag and the
tracker time. It never carries series data. Documents are plain dicts;
`dumps()` / `loads()` turn them into JSON text (the undo history stores that
text).
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from seriesflow.core.curves import (
    Curve,
    NumericCurve,
    StringCurve,
    TransformedSeries,
    UserDefinedCurve,
)
from seriesflow.core.exceptions import InvalidTransform
from seriesflow.core.graph import CyclicDependency, TransformFailure, order_definitions
from seriesflow.core.transforms import SisoTransform, transform_from_dict
from seriesflow.core.windowing import Window
from seriesflow.core.xy import XYSeries

if TYPE_CHECKING:
    from seriesflow.engine import DataflowEngine

logger = logging.getLogger(__name__)

LAYOUT_VERSION = 1


@dataclass(frozen=True, slots=True)
class LayoutReport:
    created: tuple[str, ...] = ()
    curves: tuple[str, ...] = ()
    failures: tuple[TransformFailure, ...] = ()
    cyclic: CyclicDependency | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


# ---- curves ----
def curve_to_dict(curve: Curve) -> dict[str, Any]:
    match curve:
        case NumericCurve(name=name):
            return {"kind": "numeric", "name": name}
        case StringCurve(name=name):
            return {"kind": "string", "name": name}
        case UserDefinedCurve(name=name):
            return {"kind": "user_defined", "name": name}
        case XYSeries():
            return {
                "kind": "xy",
                "name": curve.name,
                "x": curve.x_name,
                "y": curve.y_name,
                "window": None if curve.window is None else curve.window.to_dict(),
            }
        case TransformedSeries():
            data = curve.to_dict()
            data["kind"] = "transformed"
            return data
    raise TypeError(f"not a curve: {curve!r}")


def curve_from_dict(engine: "DataflowEngine", data: Mapping[str, Any]) -> Curve:
    kind = data.get("kind")
    match kind:
        case "numeric":
            return NumericCurve(data["name"])
        case "string":
            return StringCurve(data["name"])
        case "user_defined":
            return UserDefinedCurve(data["name"])
        case "xy":
            window = data.get("window")
            return XYSeries(
                data["x"],
                data["y"],
                engine.store,
                name=data.get("name"),
                window=None if window is None else Window.from_dict(window),
            )
        case "transformed":
            transform = None
            if data.get("transform") is not None:
                transform = transform_from_dict(data["transform"])
                if not isinstance(transform, SisoTransform):
                    raise InvalidTransform(f"curve '{data.get('alias')}' needs a single-input transform")
            return TransformedSeries(data["source"], engine.store, transform, alias=data.get("alias"))
    raise ValueError(f"unknown curve kind {kind!r}")


def _unchanged(transform, definition: Mapping[str, Any]) -> bool:
    try:
        return transform.to_dict() == dict(definition)
    except InvalidTransform:
        # wraps a Python callable: always replaced
        return False


# ---- documents ----
def save_layout(engine: "DataflowEngine") -> dict[str, Any]:
    transforms = []
    for transform in engine.graph.transforms():
        try:
            transforms.append(transform.to_dict())
        except InvalidTransform as e:
            logger.warning("transform '%s' not saved: %s", transform.destination, e)

    max_range = engine.max_range_x
    return {
        "version": LAYOUT_VERSION,
        "max_range_x": None if math.isinf(max_range) else max_range,
        "remove_time_offset": engine.remove_time_offset,
        "tracker_time": engine.tracker.tracker_time,
        "transforms": transforms,
        "curves": [curve_to_dict(c) for c in engine.tracker.curves()],
    }


def load_layout(engine: "DataflowEngine", doc: Mapping[str, Any]) -> LayoutReport:
    """
    Apply a layout document to `engine`.

    Transforms missing from the document are deleted; new or changed ones are
    created producers-first. A definition that fails to build is reported and
    skipped without affecting the others.
    """
    version = doc.get("version", LAYOUT_VERSION)
    if version > LAYOUT_VERSION:
        raise ValueError(f"layout version {version} is newer than supported ({LAYOUT_VERSION})")

    max_range = doc.get("max_range_x")
    engine.set_retention(math.inf if max_range is None else float(max_range))

    failures: list[TransformFailure] = []

    # ---- transforms ----
    definitions = list(doc.get("transforms") or ())
    ordered, cyclic = order_definitions(definitions)
    wanted = {d["destination"] for d in ordered}
    stale = [name for name in engine.graph if name not in wanted]
    if stale:
        engine.delete_series(stale, record=False)

    created: list = []
    for definition in ordered:
        name = definition["destination"]
        if name in engine.graph and _unchanged(engine.graph.get(name), definition):
            continue
        try:
            created.append(transform_from_dict(definition))
        except Exception as e:
            logger.warning("could not create transform '%s': %s", name, e)
            failures.append(TransformFailure(name, e))
    if created:
        report = engine.add_transforms(created, record=False)
        failures.extend(report.failures)

    # ---- curves ----
    engine.tracker.clear_curves()
    curves: list[str] = []
    for data in doc.get("curves") or ():
        try:
            curve = curve_from_dict(engine, data)
            engine.add_curve(curve, record=False)
        except Exception as e:
            label = data.get("name") or data.get("alias") or "?"
            logger.warning("could not restore curve '%s': %s", label, e)
            failures.append(TransformFailure(label, e))
            continue
        curves.append(curve.name)

    engine.set_remove_time_offset(bool(doc.get("remove_time_offset", False)), record=False)
    engine.tracker.update_range()
    engine.set_tracker_time(float(doc.get("tracker_time", engine.tracker.tracker_time)))

    logger.info("layout loaded: %d transforms created, %d curves", len(created), len(curves))
    return LayoutReport(
        created=tuple(t.destination for t in created),
        curves=tuple(curves),
        failures=tuple(failures),
        cyclic=cyclic,
    )


def dumps(doc: Mapping[str, Any]) -> str:
    return json.dumps(doc, indent=2, sort_keys=True)


def loads(text: str) -> dict[str, Any]:
    doc = json.loads(text)
    if not isinstance(doc, dict):
        raise ValueError("a layout must be a JSON object")
    return doc
