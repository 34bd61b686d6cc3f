# seriesflow/core/__init__.py
"""
Core dataflow objects for seriesflow.

This module defines the data model and its derivation machinery:
- Series / SeriesStore: mutable time series with bounded retention
- windowing: index ranges of the points inside a time window
- transforms + TransformGraph: derived series, evaluated in dependency order
- curves: plottable variants (plain, XY, transformed)
- TrackerController / Playback: the shared time cursor
- SnapshotManager: undo/redo history

The core layer is independent from I/O and file formats.
"""

from .series import Series, SeriesKind
from .metadata import SeriesMeta
from .store import SeriesStore, MergePolicy, MergeResult
from .windowing import Window, index_range, window_range, center_time
from .xy import XYSeries
from .transforms import (
    Transform,
    SisoTransform,
    Derivative,
    Scale,
    Absolute,
    MovingAverage,
    TimeWindowTransform,
    CustomFunction,
    ReactiveFunction,
    registered_transforms,
    create_transform,
    transform_from_dict,
)
from .curves import (
    Curve,
    NumericCurve,
    StringCurve,
    UserDefinedCurve,
    TransformedSeries,
    curve_for,
)
from .graph import (
    TransformGraph,
    EvaluationOrder,
    EvaluationReport,
    CyclicDependency,
    TransformFailure,
    order_definitions,
)
from .timers import DelayedCallback
from .tracker import TrackerController, UpdateReport
from .playback import Playback
from .undo import Snapshot, SnapshotManager
from .config import EngineConfig
from .exceptions import (
    CoreError,
    InvalidSeries,
    InvalidTransform,
    InvalidConfig,
    InvalidWindow,
    SeriesKindMismatch,
    SeriesNotFound,
    TransformNotFound,
    AxisMisalignment,
    LoadError,
    StreamerError,
)


__all__ = [
    # series
    "Series",
    "SeriesKind",
    "SeriesMeta",
    "SeriesStore",
    "MergePolicy",
    "MergeResult",

    # windowing
    "Window",
    "index_range",
    "window_range",
    "center_time",

    # transforms
    "Transform",
    "SisoTransform",
    "Derivative",
    "Scale",
    "Absolute",
    "MovingAverage",
    "TimeWindowTransform",
    "CustomFunction",
    "ReactiveFunction",
    "registered_transforms",
    "create_transform",
    "transform_from_dict",
    "TransformGraph",
    "EvaluationOrder",
    "EvaluationReport",
    "CyclicDependency",
    "TransformFailure",
    "order_definitions",

    # curves
    "Curve",
    "NumericCurve",
    "StringCurve",
    "UserDefinedCurve",
    "XYSeries",
    "TransformedSeries",
    "curve_for",

    # tracker / history
    "DelayedCallback",
    "TrackerController",
    "UpdateReport",
    "Playback",
    "Snapshot",
    "SnapshotManager",
    "EngineConfig",

    # exceptions
    "CoreError",
    "InvalidSeries",
    "InvalidTransform",
    "InvalidConfig",
    "InvalidWindow",
    "SeriesKindMismatch",
    "SeriesNotFound",
    "TransformNotFound",
    "AxisMisalignment",
    "LoadError",
    "StreamerError",
]
