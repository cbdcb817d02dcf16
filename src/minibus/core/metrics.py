# src/minibus/core/metrics.py
"""
Process-wide counters, gauges and latency histograms for buses.

Series are identified by (kind, name, labels). Lookups that take ``**match``
select every series whose labels contain the given pairs, so one bus can be
read back with ``bus.metric_labels`` while several buses keep separate series.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from statistics import mean
from typing import Any, Deque, Dict, Iterator, List, Tuple

Labels = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, Labels]

HIST_WINDOW = 2048  # most recent samples kept per histogram


def _labels(labels: Dict[str, Any]) -> Labels:
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _matches(labels: Labels, match: Dict[str, Any]) -> bool:
    have = dict(labels)
    return all(have.get(str(k)) == str(v) for k, v in match.items())


def _quantile(ordered: List[float], q: float) -> float:
    if not ordered:
        return 0.0
    return ordered[int(round((len(ordered) - 1) * q))]


class _Store:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.counters: Dict[SeriesKey, float] = {}
        self.gauges: Dict[SeriesKey, float] = {}
        self.hists: Dict[SeriesKey, Deque[float]] = {}

    def add(self, name: str, n: float, labels: Dict[str, Any]) -> None:
        key = (name, _labels(labels))
        with self._lock:
            self.counters[key] = self.counters.get(key, 0.0) + n

    def put(self, name: str, v: float, labels: Dict[str, Any]) -> None:
        with self._lock:
            self.gauges[(name, _labels(labels))] = float(v)

    def sample(self, name: str, v: float, labels: Dict[str, Any]) -> None:
        key = (name, _labels(labels))
        with self._lock:
            window = self.hists.get(key)
            if window is None:
                window = self.hists[key] = deque(maxlen=HIST_WINDOW)
            window.append(float(v))

    def copy(self) -> Tuple[Dict[SeriesKey, float], Dict[SeriesKey, float], Dict[SeriesKey, List[float]]]:
        with self._lock:
            return dict(self.counters), dict(self.gauges), {k: list(w) for k, w in self.hists.items()}

    def clear(self) -> None:
        with self._lock:
            self.counters.clear()
            self.gauges.clear()
            self.hists.clear()


_STORE = _Store()


def inc(name: str, n: float = 1.0, **labels: Any) -> None:
    _STORE.add(name, n, labels)


def gauge_set(name: str, v: float, **labels: Any) -> None:
    _STORE.put(name, v, labels)


def observe_hist(name: str, v: float, **labels: Any) -> None:
    _STORE.sample(name, v, labels)


def _select(table: Dict[SeriesKey, Any], name: str, match: Dict[str, Any]) -> Iterator[Any]:
    for (n, labels), value in table.items():
        if n == name and _matches(labels, match):
            yield value


def counter_value(name: str, **match: Any) -> float:
    """Sum of every counter series `name` whose labels include `match`."""
    counters, _, _ = _STORE.copy()
    return sum(_select(counters, name, match))


def gauge_value(name: str, **match: Any) -> float:
    """Sum of the matching gauge series; 0.0 when none match."""
    _, gauges, _ = _STORE.copy()
    return sum(_select(gauges, name, match))


def hist_summary(samples: List[float]) -> Dict[str, float]:
    ordered = sorted(samples)
    if not ordered:
        return {"count": 0, "min": 0.0, "max": 0.0, "mean": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    return {
        "count": len(ordered),
        "min": ordered[0],
        "max": ordered[-1],
        "mean": mean(ordered),
        "p50": _quantile(ordered, 0.50),
        "p90": _quantile(ordered, 0.90),
        "p99": _quantile(ordered, 0.99),
    }


def snapshot(**match: Any) -> dict:
    """Plain-dict copy of the series whose labels include `match` (all when empty)."""
    counters, gauges, hists = _STORE.copy()
    out: dict = {"counters": [], "gauges": [], "hists": []}
    for (name, labels), v in counters.items():
        if _matches(labels, match):
            out["counters"].append({"name": name, "labels": dict(labels), "value": v})
    for (name, labels), v in gauges.items():
        if _matches(labels, match):
            out["gauges"].append({"name": name, "labels": dict(labels), "value": v})
    for (name, labels), samples in hists.items():
        if _matches(labels, match):
            out["hists"].append({"name": name, "labels": dict(labels), **hist_summary(samples)})
    return out


def emit(logger: logging.Logger, **match: Any) -> None:
    """Log one INFO line per matching series."""
    snap = snapshot(**match)
    for row in snap["counters"]:
        logger.info("[ctr] %s %s value=%.0f", row["name"], row["labels"], row["value"])
    for row in snap["gauges"]:
        logger.info("[gauge] %s %s value=%.3f", row["name"], row["labels"], row["value"])
    for h in snap["hists"]:
        logger.info(
            "[hist] %s %s n=%d p50=%.3f p90=%.3f p99=%.3f max=%.3f",
            h["name"], h["labels"], h["count"], h["p50"], h["p90"], h["p99"], h["max"],
        )


def reset() -> None:
    _STORE.clear()


class Timer:
    """Records elapsed milliseconds into a histogram, also when the block raises."""

    def __init__(self, hist_name: str, enabled: bool = True, **labels: Any) -> None:
        self.hist_name = hist_name
        self.enabled = enabled
        self.labels = labels
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.enabled:
            observe_hist(self.hist_name, (time.perf_counter() - self._t0) * 1000.0, **self.labels)
        return False
