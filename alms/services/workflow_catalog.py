"""
Workflow Catalog — statuses, actions and inbox buckets.

The catalog is built once at process start (``init_catalog(app)``) from
the built-in vocabulary in ``alms.models.workflow`` plus optional
per-action overrides from configuration:

    WORKFLOW_CATALOG_FILE = /etc/alms/catalog.json
    WORKFLOW_ACTIONS = {"RED_FLAG": {"is_active": False}}

    {"actions": {"FORWARD": {"display_name": "Send on", "priority": 5}}}

After construction it is read-only for the life of the process.

Usage:
    from alms.services.workflow_catalog import get_catalog

    catalog = get_catalog()
    catalog.resolve_action("FORWARD")
    catalog.codes_for_bucket("forwarded")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from types import MappingProxyType

from flask import current_app, has_app_context

from alms.models.workflow import (
    ACTION_DEFAULTS,
    ACTION_KINDS,
    BUCKETS,
    STATUS_LABELS,
    TERMINAL_STATUSES,
    TRANSITIONS,
    ActionCode,
    ActionKind,
    StatusCode,
    parse_action,
    parse_status,
)

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "workflow_catalog"
_OVERRIDABLE = ("display_name", "priority", "is_active")


@dataclass(frozen=True)
class ActionDef:
    code: ActionCode
    display_name: str
    priority: int
    is_active: bool
    kind: ActionKind
    order: int

    def to_dict(self) -> dict:
        return {
            "id": int(self.code),
            "code": self.code.name,
            "display_name": self.display_name,
            "priority": self.priority,
            "is_active": self.is_active,
            "kind": self.kind.value,
        }


class WorkflowCatalog:
    """Immutable lookup tables for the workflow vocabulary."""

    def __init__(self, actions, buckets=None):
        buckets = BUCKETS if buckets is None else buckets
        self._actions = MappingProxyType({a.code: a for a in actions})
        self._buckets = MappingProxyType({k: frozenset(v) for k, v in buckets.items()})

        status_buckets: dict[StatusCode, tuple[str, ...]] = {}
        for status in StatusCode:
            status_buckets[status] = tuple(k for k, codes in self._buckets.items() if status in codes)
        self._status_buckets = MappingProxyType(status_buckets)

        unclassified = [s.name for s in _reachable_statuses() if not status_buckets[s]]
        if unclassified:
            raise ValueError(f"Statuses without an inbox bucket: {', '.join(unclassified)}")

    # ── Construction ────────────────────────────────────────────────────

    @classmethod
    def default(cls) -> WorkflowCatalog:
        return cls.from_overrides({})

    @classmethod
    def from_overrides(cls, overrides: dict) -> WorkflowCatalog:
        """Build the catalog, applying {action_code: {field: value}} overrides."""
        merged = {code: dict(meta) for code, meta in ACTION_DEFAULTS.items()}
        for raw_code, fields in (overrides or {}).items():
            code = parse_action(raw_code)
            if code is None:
                raise ValueError(f"Unknown action in catalog overrides: {raw_code!r}")
            unknown = set(fields) - set(_OVERRIDABLE)
            if unknown:
                raise ValueError(f"Unsupported catalog fields for {code.name}: {sorted(unknown)}")
            merged[code].update(fields)

        actions = [
            ActionDef(
                code=code,
                display_name=str(meta["display_name"]),
                priority=int(meta["priority"]),
                is_active=bool(meta["is_active"]),
                kind=ACTION_KINDS[code],
                order=order,
            )
            for order, (code, meta) in enumerate(merged.items())
        ]
        return cls(actions)

    # ── Lookups ─────────────────────────────────────────────────────────

    def resolve_action(self, code) -> ActionDef | None:
        """Return the action definition, or None when the code is unknown."""
        parsed = parse_action(code)
        if parsed is None:
            return None
        return self._actions.get(parsed)

    def actions(self, include_inactive: bool = False) -> list[ActionDef]:
        """Actions in display order: priority, then catalog order."""
        items = [a for a in self._actions.values() if include_inactive or a.is_active]
        return sorted(items, key=lambda a: (a.priority, a.order))

    def bucket_of(self, status_code) -> list[str]:
        status = parse_status(status_code)
        if status is None:
            return []
        return list(self._status_buckets[status])

    def codes_for_bucket(self, bucket_key: str) -> frozenset[StatusCode]:
        """Status codes for a bucket; unknown keys yield an empty set."""
        return self._buckets.get(bucket_key, frozenset())

    def bucket_keys(self) -> list[str]:
        return list(self._buckets)

    def is_terminal(self, status_code) -> bool:
        return parse_status(status_code) in TERMINAL_STATUSES

    def next_status(self, status_code, action_code) -> StatusCode | None:
        status = parse_status(status_code)
        action = parse_action(action_code)
        if status is None or action is None:
            return None
        return TRANSITIONS[status].get(action)

    def available_actions(self, status_code, role_code, hierarchy) -> list[ActionDef]:
        """Active actions legal from *status_code* that *role_code* may submit."""
        status = parse_status(status_code)
        if status is None:
            return []
        legal = TRANSITIONS[status]
        return [
            a for a in self.actions()
            if a.code in legal and hierarchy.can_submit(role_code, a.code)
        ]

    def describe(self) -> dict:
        return {
            "statuses": [
                {
                    "id": int(s),
                    "code": s.name,
                    "name": STATUS_LABELS[s],
                    "is_terminal": s in TERMINAL_STATUSES,
                    "buckets": list(self._status_buckets[s]),
                }
                for s in StatusCode
            ],
            "actions": [a.to_dict() for a in self.actions(include_inactive=True)],
            "buckets": {k: sorted(int(s) for s in v) for k, v in self._buckets.items()},
        }


def _reachable_statuses() -> set[StatusCode]:
    reachable = set(TRANSITIONS)
    for moves in TRANSITIONS.values():
        reachable.update(moves.values())
    return reachable


# ── App wiring ──────────────────────────────────────────────────────────


def _load_overrides(app) -> dict:
    overrides: dict = {}
    path = app.config.get("WORKFLOW_CATALOG_FILE")
    if path:
        with open(path, encoding="utf-8") as fh:
            overrides.update((json.load(fh) or {}).get("actions", {}))
    overrides.update(app.config.get("WORKFLOW_ACTIONS") or {})
    return overrides


def init_catalog(app) -> WorkflowCatalog:
    """Build the process-wide catalog and attach it to the app."""
    catalog = WorkflowCatalog.from_overrides(_load_overrides(app))
    app.extensions[_EXTENSION_KEY] = catalog
    logger.debug(
        "Workflow catalog loaded: %d actions (%d active), %d buckets",
        len(catalog.actions(include_inactive=True)),
        len(catalog.actions()),
        len(catalog.bucket_keys()),
    )
    return catalog


_default_catalog: WorkflowCatalog | None = None


def get_catalog() -> WorkflowCatalog:
    """Catalog of the current app, or the built-in default outside an app."""
    global _default_catalog
    if has_app_context() and _EXTENSION_KEY in current_app.extensions:
        return current_app.extensions[_EXTENSION_KEY]
    if _default_catalog is None:
        _default_catalog = WorkflowCatalog.default()
    return _default_catalog
