"""Permission resolution engine.

Decides whether a role holds ``action`` on ``resource`` under a caller-supplied
context. Every public method is total: unknown roles, malformed matrix names
or an unreachable matrix all degrade to "deny" (or level 0), never to an
exception, because checks run on every request and view.

Grant source per role, in order:
  1. ``super_admin`` → everything, hard-coded, before looking at any data.
  2. Attached store that failed to load → nothing (fail closed).
  3. Attached, loaded store with an entry for the role → the entry's names.
  4. Otherwise the static ``ROLE_HIERARCHY`` definition.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

from accademia.core.roles import (
    DEFAULT_SECTIONS, ROLE_HIERARCHY, SECTIONS, WILDCARD,
    Permission, Role, RoleDefinition, parse_role,
)

logger = logging.getLogger("accademia.permissions")

T = TypeVar("T")


def conditions_match(
    conditions: Optional[Mapping[str, Any]],
    context: Optional[Mapping[str, Any]],
) -> bool:
    """Every condition key must be present in context with an equal value."""
    if not conditions:
        return True
    if context is None:
        return False
    for key, expected in conditions.items():
        if key not in context or context[key] != expected:
            return False
    return True


def matches_permission(
    permission: Permission,
    resource: str,
    action: str,
    context: Optional[Mapping[str, Any]] = None,
) -> bool:
    if permission.resource == WILDCARD:
        return True
    if permission.resource != resource:
        return False
    if permission.action == WILDCARD:
        return True
    return permission.action == action and conditions_match(permission.conditions, context)


class PermissionEngine:
    """Resolve permissions against the static hierarchy and an optional role matrix."""

    def __init__(self, store=None, hierarchy: Optional[Mapping[Role, RoleDefinition]] = None):
        self.store = store
        self.hierarchy = dict(ROLE_HIERARCHY if hierarchy is None else hierarchy)

    # ── Core checks ─────────────────────────────────────────

    def has_permission(
        self,
        role: Any,
        resource: str,
        action: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        role = parse_role(role)
        if role is None or role not in self.hierarchy:
            return False
        if role is Role.super_admin:
            return True
        return self._has_permission(role, resource, action, context, set())

    def _has_permission(self, role, resource, action, context, visited: set) -> bool:
        if role in visited:
            return False
        visited.add(role)

        for permission in self._own_permissions(role):
            if matches_permission(permission, resource, action, context):
                return True

        definition = self.hierarchy.get(role)
        for parent in definition.inherits_from if definition else ():
            if parent is Role.super_admin:
                return True
            if self._has_permission(parent, resource, action, context, visited):
                return True
        return False

    def get_role_permissions(self, role: Any) -> list[Permission]:
        """Own permissions followed by inherited ones (each role visited once)."""
        role = parse_role(role)
        if role is None or role not in self.hierarchy:
            return []
        collected: list[Permission] = []
        self._collect(role, collected, set())
        return collected

    def _collect(self, role: Role, collected: list, visited: set) -> None:
        if role in visited:
            return
        visited.add(role)
        collected.extend(self._own_permissions(role))
        definition = self.hierarchy.get(role)
        for parent in definition.inherits_from if definition else ():
            self._collect(parent, collected, visited)

    def _own_permissions(self, role: Role) -> tuple[Permission, ...]:
        definition = self.hierarchy.get(role)
        static = definition.permissions if definition else ()

        if self.store is None:
            return static
        if not self.store.is_available:
            return ()
        entry = self.store.entry(role)
        if entry is None:
            return static

        # Matrix names carry no conditions; reattach the static ones by name.
        static_by_name = {p.name: p for p in static}
        grants = []
        for name in sorted(entry.permissions):
            if name in static_by_name:
                grants.append(static_by_name[name])
                continue
            try:
                grants.append(Permission.from_name(name))
            except ValueError:
                logger.warning("Skipping malformed permission '%s' for %s", name, role.value)
        return tuple(grants)

    # ── Hierarchy ───────────────────────────────────────────

    def get_role_level(self, role: Any) -> int:
        role = parse_role(role)
        definition = self.hierarchy.get(role) if role is not None else None
        return definition.level if definition else 0

    def is_role_higher(self, role_a: Any, role_b: Any) -> bool:
        return self.get_role_level(role_a) > self.get_role_level(role_b)

    def can_manage_role(self, actor_role: Any, target_role: Any) -> bool:
        """Whether ``actor_role`` may assign ``target_role`` to a user.

        super_admin manages everyone; other roles only strictly lower ones.
        """
        actor = parse_role(actor_role)
        if actor is None or parse_role(target_role) is None:
            return False
        if actor is Role.super_admin:
            return True
        return self.is_role_higher(actor, target_role)

    # ── Convenience ─────────────────────────────────────────

    def can_access_admin_resource(self, role: Any, resource: str) -> bool:
        return self.has_permission(role, "admin_panel", resource)

    def can_use_dev_tools(self, role: Any, tool: Optional[str] = None) -> bool:
        return self.has_permission(role, "dev_tools", tool or "access")

    def filter_by_permissions(
        self,
        items: Iterable[T],
        role: Any,
        resource: str,
        action: str,
        context_fn: Optional[Callable[[T], Mapping[str, Any]]] = None,
    ) -> list[T]:
        return [
            item for item in items
            if self.has_permission(role, resource, action, context_fn(item) if context_fn else None)
        ]

    # ── Navigation sections ─────────────────────────────────

    def get_visible_sections(self, role: Any) -> list[str]:
        role = parse_role(role)
        if role is None or role not in self.hierarchy:
            return []
        if role is Role.super_admin:
            return sorted(SECTIONS)
        if self.store is not None:
            if not self.store.is_available:
                return []
            entry = self.store.entry(role)
            if entry is not None:
                return sorted(entry.sections)
        return sorted(DEFAULT_SECTIONS.get(role, ()))

    def can_access_section(self, role: Any, section: str) -> bool:
        return section in self.get_visible_sections(role)
