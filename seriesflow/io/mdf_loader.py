# seriesflow/io/mdf_loader.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from asammdf import MDF  # pivotal dependency for MDF file handling
import numpy as np

from seriesflow.core.exceptions import CoreError, LoadError
from seriesflow.core.metadata import SeriesMeta
from seriesflow.core.series import SeriesKind
from seriesflow.core.store import SeriesStore

logger = logging.getLogger(__name__)


@dataclass
class RawSignal:
    """One MDF channel as read by asammdf: samples + identifiers."""

    name: str
    unit: str | None
    time: np.ndarray
    values: np.ndarray
    # MDF identifiers
    group_index: int
    channel_index: int


def kind_for(values: np.ndarray) -> SeriesKind:
    """Series kind able to hold the samples of a channel.

    Examples
    --------
    float64 / int16 / bool 1D   -> NUMERIC
    bytes / str                 -> STRING
    structured, arrays, objects -> USER_DEFINED
    """
    dtype = values.dtype
    if dtype.names is None and values.ndim == 1:
        if dtype.kind in "biuf":
            return SeriesKind.NUMERIC
        if dtype.kind in "SU":
            return SeriesKind.STRING
        if dtype.kind == "O" and values.size and isinstance(values[0], (bytes, str)):
            return SeriesKind.STRING
    return SeriesKind.USER_DEFINED


def _unique_name(store: SeriesStore, name: str) -> str:
    if name not in store:
        return name
    suffix = 1
    while f"{name}_{suffix}" in store:
        suffix += 1
    return f"{name}_{suffix}"


class MdfLoader:
    """Loader for MDF 3/4 files using asammdf.MDF.

    Every non-master channel becomes one series. Series names are the channel
    names (prefixed with `prefix/` when a prefix is given); duplicate channel
    names across MDF groups get a numeric suffix. All series of one file share
    a group, the prefix or else the file stem, so they can be deleted together.
    """

    extensions = (".mf4", ".mdf", ".dat")

    def load(self, path: str | Path, prefix: str | None = None) -> SeriesStore:
        path = Path(path)
        try:
            mdf = MDF(str(path))
        except Exception as e:
            raise LoadError(f"can't open MDF file '{path}': {e}") from e

        group = prefix or path.stem
        store = SeriesStore()
        try:
            for raw in self._iter_signals(mdf):
                name = raw.name if not prefix else f"{prefix}/{raw.name}"
                name = _unique_name(store, name)
                kind = kind_for(raw.values)
                meta = SeriesMeta(unit=raw.unit or None, source=f"MDF:{path.name}", group=group)
                try:
                    store.add(name, kind, meta=meta).extend(raw.time, raw.values)
                except CoreError as e:
                    logger.warning("skipping channel '%s' of '%s': %s", raw.name, path.name, e)
                    store.erase(name)
        finally:
            mdf.close()

        logger.info("loaded %d series from '%s'", len(store), path)
        return store

    # ------------------------------------------------------------------
    # asammdf access
    # ------------------------------------------------------------------
    @staticmethod
    def _iter_signals(mdf):
        masters = mdf.masters_db
        for group_index, group in enumerate(mdf.groups):
            master_index = masters.get(group_index)
            for channel_index, channel in enumerate(group.channels):
                if channel_index == master_index:
                    continue
                # asammdf Signal interface: timestamps & samples
                sig = mdf.get(group=group_index, index=channel_index)
                yield RawSignal(
                    name=channel.name,
                    unit=getattr(sig, "unit", None),
                    time=np.asarray(sig.timestamps, dtype=np.float64),
                    values=np.asarray(sig.samples),
                    group_index=group_index,
                    channel_index=channel_index,
                )
