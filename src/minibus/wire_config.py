from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Callable, Dict, List

import yaml

from minibus.core.log import get as get_logger
from minibus.core.bus import Bus

log = get_logger(__name__)


def _imp(ref: str) -> Any:
    """Resolve "pkg.mod:attr.sub" (or "pkg.mod.attr") to the object it names."""
    if ":" in ref:
        module, _, attr = ref.partition(":")
    else:
        module, _, attr = ref.rpartition(".")
    if not module or not attr:
        raise ValueError(f"bad ref {ref!r}; expected 'module:attr'")
    obj: Any = importlib.import_module(module)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def _callable(entry: Dict[str, Any], section: str) -> Callable[..., Any]:
    ref = entry.get("ref") if isinstance(entry, dict) else None
    if not ref:
        raise ValueError(f"{section}: every entry needs a 'ref', got {entry!r}")
    fn = _imp(ref)
    if not callable(fn):
        raise ValueError(f"{section}: {ref} is not callable")
    return fn


def load_wiring(yaml_path: str | Path) -> Dict[str, Any]:
    data = yaml.safe_load(Path(yaml_path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{yaml_path}: top level must be a mapping")
    return data


def build_from_yaml(yaml_path: str | Path) -> Bus:
    """Read a wiring file and return a bus with its handlers and listeners registered."""
    data = load_wiring(yaml_path)

    bus_cfg = data.get("bus") or {}
    bus = Bus(
        name=str(bus_cfg.get("name", "minibus.bus")),
        metrics=bool(bus_cfg.get("metrics", True)),
    )

    handlers: List[Dict[str, Any]] = data.get("handlers") or []
    for h in handlers:
        bus.register_handler(_callable(h, "handlers"), h.get("type"))

    for li in data.get("listeners") or []:
        bus.register_listener(_callable(li, "listeners"), li.get("type"))

    for w in data.get("wildcards") or []:
        bus.register_wildcard(_callable(w, "wildcards"))

    log.info("wired %s from %s", bus, yaml_path)
    return bus
