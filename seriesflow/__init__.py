# seriesflow/__init__.py
"""
seriesflow: streaming time-series dataflow engine.

Raw series come in from files or live streams, transforms derive new series
from them, and a shared time cursor keeps windowed views in sync.
"""
import logging

from .core import EngineConfig, SeriesStore
from .engine import DataflowEngine, LoadReport

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = ["DataflowEngine", "EngineConfig", "LoadReport", "SeriesStore"]
