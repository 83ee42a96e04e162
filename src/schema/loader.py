"""Configuration loader — YAML serialization for arsenals and engine constants.

Provides round-trip save/load so arsenals can be reviewed, version-controlled,
and edited as human-readable YAML.  JSON is a subset of YAML, so arsenals
exported by the dashboard load through the same path.

The engine itself only needs an :class:`ArsenalSource`: anything that can
hand back the active arsenal snapshot.  :class:`FileArsenalStore` is the
file-backed implementation used by the CLI.
"""

import logging
from pathlib import Path
from typing import Protocol

import yaml

from .defaults import build_system_arsenals
from .models import Arsenal, EngineConfig


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Arsenal files
# ---------------------------------------------------------------------------

def _read_yaml(path: str | Path):
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc


def _write_yaml(data, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False,
                  allow_unicode=True, width=120)


def _arsenal_dicts(data) -> tuple[list[dict], str | None]:
    """Normalize the three accepted layouts into (arsenal dicts, active id).

    Accepted layouts:
        - a single arsenal mapping (has "customGroups" or "id")
        - a list of arsenal mappings
        - {"active_id": ..., "arsenals": [...]}
    An empty file holds no arsenals.  Every entry must be a mapping with an id.
    """
    if data is None:
        return [], None
    if isinstance(data, list):
        entries, active_id = data, None
    elif isinstance(data, dict) and "arsenals" in data:
        entries, active_id = data.get("arsenals") or [], data.get("active_id")
        if not isinstance(entries, list):
            raise ValueError("'arsenals' must be a list of arsenal mappings")
    elif isinstance(data, dict) and "id" in data:
        entries, active_id = [data], data["id"]
    else:
        raise ValueError("Arsenal file must contain an arsenal mapping or a list of arsenals")

    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Arsenal entry {i} must be a mapping, got {type(entry).__name__}")
        if "id" not in entry:
            raise ValueError(f"Arsenal entry {i} has no 'id'")
    return list(entries), active_id


def load_arsenals(path: str | Path) -> tuple[list[Arsenal], str | None]:
    """Deserialize every arsenal in a YAML/JSON file plus the stored active id."""
    dicts, active_id = _arsenal_dicts(_read_yaml(path))
    arsenals = []
    for i, d in enumerate(dicts):
        try:
            arsenals.append(Arsenal.from_dict(d))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ValueError(f"Arsenal entry {i} ({d.get('id')!r}) is malformed: {exc!r}") from exc
    return arsenals, active_id


def load_arsenal(path: str | Path) -> Arsenal:
    """Deserialize a single arsenal (the active one when the file holds many)."""
    arsenals, active_id = load_arsenals(path)
    if not arsenals:
        raise ValueError(f"No arsenals defined in {path}")
    return select_active(arsenals, active_id)


def save_arsenals(arsenals: list[Arsenal], path: str | Path,
                  active_id: str | None = None) -> None:
    """Serialize arsenals (and the active id) to a YAML file."""
    data = {
        "active_id": active_id,
        "arsenals": [a.to_dict() for a in arsenals],
    }
    _write_yaml(data, path)


def save_arsenal(arsenal: Arsenal, path: str | Path) -> None:
    """Serialize a single arsenal to a YAML file."""
    _write_yaml(arsenal.to_dict(), path)


def select_active(arsenals: list[Arsenal], active_id: str | None) -> Arsenal | None:
    """Pick the active arsenal.

    Falls back to the first system (default) arsenal when *active_id* is
    missing or no longer exists, then to the first arsenal.
    """
    if active_id is not None:
        for a in arsenals:
            if a.id == active_id:
                return a
        logger.info("Active arsenal %r no longer exists, using default", active_id)
    for a in arsenals:
        if a.is_default:
            return a
    return arsenals[0] if arsenals else None


# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------

def load_engine_config(path: str | Path | None = None) -> EngineConfig:
    """Load engine constants from YAML, defaulting every missing field."""
    if path is None:
        return EngineConfig()
    data = _read_yaml(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Engine config {path} must be a mapping")
    return EngineConfig.from_dict(data)


def save_engine_config(config: EngineConfig, path: str | Path) -> None:
    """Serialize engine constants to YAML."""
    _write_yaml(config.to_dict(), path)


# ---------------------------------------------------------------------------
# Arsenal sources
# ---------------------------------------------------------------------------

class ArsenalSource(Protocol):
    """Anything that can supply the active arsenal snapshot."""

    def load_active(self) -> Arsenal | None: ...


class StaticArsenalSource:
    """Serves a fixed arsenal (or none), for tests and one-off runs."""

    def __init__(self, arsenal: Arsenal | None) -> None:
        self.arsenal = arsenal

    def load_active(self) -> Arsenal | None:
        return self.arsenal


class FileArsenalStore:
    """Arsenals persisted in a YAML file with an ``active_id`` pointer.

    A missing or empty file yields the built-in system arsenals, so a new
    user always has something to group by.
    """

    def __init__(self, path: str | Path, user_id: str | None = None) -> None:
        self.path = Path(path)
        self.user_id = user_id

    def load_all(self) -> tuple[list[Arsenal], str | None]:
        if not self.path.exists():
            return build_system_arsenals(self.user_id), None
        arsenals, active_id = load_arsenals(self.path)
        if self.user_id is not None:
            arsenals = [a for a in arsenals
                        if a.user_id in (None, self.user_id)]
        if not arsenals:
            return build_system_arsenals(self.user_id), active_id
        return arsenals, active_id

    def load_active(self) -> Arsenal | None:
        arsenals, active_id = self.load_all()
        return select_active(arsenals, active_id)

    def set_active(self, arsenal_id: str) -> None:
        """Point the store at another arsenal; unknown ids are rejected."""
        arsenals, _ = self.load_all()
        if not any(a.id == arsenal_id for a in arsenals):
            raise ValueError(f"Unknown arsenal: {arsenal_id!r}")
        save_arsenals(arsenals, self.path, active_id=arsenal_id)
