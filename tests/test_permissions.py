"""
Tests for the permission engine: defaults, wildcards, conditions, hierarchy
and navigation sections.
"""

import pytest

from accademia.core.permissions import PermissionEngine, conditions_match, matches_permission
from accademia.core.roles import (
    DEFAULT_SECTIONS, ROLE_HIERARCHY, SECTIONS, Permission, Role, RoleDefinition,
)
from accademia.services.matrix_service import RoleMatrixEntry, RoleMatrixStore
from tests.conftest import MemoryMatrixBackend

pytestmark = pytest.mark.unit


def store_with(*entries, fail_reads=False):
    backend = MemoryMatrixBackend(entries)
    backend.fail_reads = fail_reads
    store = RoleMatrixStore(backend, timeout_seconds=1)
    store.load()
    return store


# ── Static hierarchy ─────────────────────────────────────────────

def test_levels_follow_hierarchy():
    engine = PermissionEngine()
    levels = [engine.get_role_level(r) for r in
              (Role.super_admin, Role.admin, Role.operator, Role.user, Role.guest)]
    assert levels == [100, 80, 60, 40, 20]
    assert engine.get_role_level("nobody") == 0
    assert engine.is_role_higher("admin", "operator")
    assert not engine.is_role_higher("user", "user")


def test_unknown_role_is_denied_everything():
    engine = PermissionEngine()
    assert engine.has_permission("janitor", "normatives", "read") is False
    assert engine.has_permission(None, "normatives", "read") is False
    assert engine.get_role_permissions("janitor") == []
    assert engine.get_visible_sections("janitor") == []


def test_default_deny_for_unlisted_pair():
    engine = PermissionEngine()
    assert engine.has_permission("operator", "users", "delete") is False
    assert engine.has_permission("user", "reports", "read") is False


def test_static_grants():
    engine = PermissionEngine()
    assert engine.has_permission("admin", "normatives", "delete")
    assert engine.has_permission("operator", "normatives", "update")
    assert not engine.has_permission("operator", "normatives", "delete")


def test_super_admin_holds_everything():
    engine = PermissionEngine()
    assert engine.has_permission("super_admin", "anything", "at_all")
    assert engine.can_use_dev_tools("super_admin", "drop_tables")
    assert engine.can_access_admin_resource(Role.super_admin, "whatever")


def test_levels_are_distinct():
    assert all(
        ROLE_HIERARCHY[a].level != ROLE_HIERARCHY[b].level
        for a in ROLE_HIERARCHY for b in ROLE_HIERARCHY if a is not b
    )


# ── Wildcards and conditions ─────────────────────────────────────

def test_resource_wildcard_matches_any_action():
    perm = Permission("*", "read")
    assert matches_permission(perm, "reports", "delete")


def test_action_wildcard_matches_within_resource():
    perm = Permission("reports", "*")
    assert matches_permission(perm, "reports", "create")
    assert not matches_permission(perm, "users", "create")


def test_conditions_require_equal_values():
    assert conditions_match({"own": True}, {"own": True, "extra": 1})
    assert not conditions_match({"own": True}, {"own": False})
    assert not conditions_match({"own": True}, {})
    assert conditions_match(None, None)


def test_conditional_permission_without_context_denies():
    engine = PermissionEngine()
    assert engine.has_permission("user", "profile", "update", {"own": True})
    assert not engine.has_permission("user", "profile", "update", {"own": False})
    assert not engine.has_permission("user", "profile", "update")


def test_guest_reads_only_public_normatives():
    engine = PermissionEngine()
    assert engine.has_permission("guest", "normatives", "read", {"public": True})
    assert not engine.has_permission("guest", "normatives", "read")


def test_filter_by_permissions_keeps_input_order():
    engine = PermissionEngine()
    docs = [
        {"id": 3, "public": True},
        {"id": 1, "public": False},
        {"id": 2, "public": True},
    ]
    visible = engine.filter_by_permissions(
        docs, "guest", "normatives", "read", lambda d: {"public": d["public"]},
    )
    assert [d["id"] for d in visible] == [3, 2]
    assert engine.filter_by_permissions(docs, "janitor", "normatives", "read") == []


# ── Inheritance ──────────────────────────────────────────────────

def test_inherited_permissions_are_collected():
    hierarchy = {
        Role.operator: RoleDefinition(Role.operator, 60, (Permission("reports", "create"),), (Role.user,)),
        Role.user: RoleDefinition(Role.user, 40, (Permission("reports", "read"),)),
    }
    engine = PermissionEngine(hierarchy=hierarchy)
    assert engine.has_permission("operator", "reports", "read")
    assert [p.name for p in engine.get_role_permissions("operator")] == ["reports.create", "reports.read"]


def test_inheritance_cycle_terminates():
    hierarchy = {
        Role.operator: RoleDefinition(Role.operator, 60, (Permission("a", "x"),), (Role.user,)),
        Role.user: RoleDefinition(Role.user, 40, (Permission("b", "y"),), (Role.operator,)),
    }
    engine = PermissionEngine(hierarchy=hierarchy)
    assert engine.has_permission("user", "a", "x")
    assert not engine.has_permission("user", "c", "z")
    assert len(engine.get_role_permissions("operator")) == 2


# ── Role management ──────────────────────────────────────────────

def test_can_manage_role():
    engine = PermissionEngine()
    assert engine.can_manage_role("super_admin", "super_admin")
    assert engine.can_manage_role("admin", "operator")
    assert not engine.can_manage_role("admin", "admin")
    assert not engine.can_manage_role("operator", "admin")
    assert not engine.can_manage_role("admin", "janitor")


def test_admin_dev_tools_are_limited():
    engine = PermissionEngine()
    assert engine.can_use_dev_tools("admin", "inspect_database")
    assert not engine.can_use_dev_tools("admin")
    assert not engine.can_use_dev_tools("operator", "inspect_database")


# ── Role matrix ──────────────────────────────────────────────────

def test_matrix_entry_replaces_static_grants():
    store = store_with(RoleMatrixEntry(Role.operator, frozenset({"reports.read"}), frozenset()))
    engine = PermissionEngine(store=store)
    assert engine.has_permission("operator", "reports", "read")
    assert not engine.has_permission("operator", "normatives", "read")
    # Roles without an entry keep their static definition.
    assert engine.has_permission("admin", "users", "delete")


def test_matrix_names_keep_static_conditions():
    store = store_with(RoleMatrixEntry(Role.user, frozenset({"profile.read"}), frozenset()))
    engine = PermissionEngine(store=store)
    assert engine.has_permission("user", "profile", "read", {"own": True})
    assert not engine.has_permission("user", "profile", "read")


def test_malformed_matrix_name_is_skipped():
    store = store_with(RoleMatrixEntry(Role.user, frozenset({"nodot", "reports.read"}), frozenset()))
    engine = PermissionEngine(store=store)
    assert engine.has_permission("user", "reports", "read")
    assert [p.name for p in engine.get_role_permissions("user")] == ["reports.read"]


def test_super_admin_bypass_survives_empty_matrix():
    store = store_with(RoleMatrixEntry(Role.super_admin, frozenset(), frozenset()))
    engine = PermissionEngine(store=store)
    assert engine.has_permission("super_admin", "system", "permissions")
    assert engine.get_visible_sections("super_admin") == sorted(SECTIONS)


def test_unavailable_matrix_denies_everyone_but_super_admin():
    store = store_with(fail_reads=True)
    engine = PermissionEngine(store=store)
    assert not store.is_available
    assert not engine.has_permission("admin", "normatives", "read")
    assert engine.get_visible_sections("admin") == []
    assert engine.has_permission("super_admin", "normatives", "read")


# ── Sections ─────────────────────────────────────────────────────

def test_default_sections_without_store():
    engine = PermissionEngine()
    assert engine.get_visible_sections("guest") == sorted(DEFAULT_SECTIONS[Role.guest])
    assert engine.can_access_section("admin", "admin")
    assert not engine.can_access_section("admin", "superadmin")


def test_matrix_sections_override_defaults():
    store = store_with(RoleMatrixEntry(Role.guest, frozenset(), frozenset({"reports"})))
    engine = PermissionEngine(store=store)
    assert engine.get_visible_sections("guest") == ["reports"]
    assert not engine.can_access_section("guest", "dashboard")
