"""Role matrix service — the persisted, admin-editable role → grants/sections map.

The matrix is loaded once into an in-memory snapshot (``RoleMatrixStore.load``)
and every permission check reads that snapshot; no I/O on the check path.
Writes go to the backend first and only touch the snapshot once the backend
confirmed them.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from accademia.core.config import settings
from accademia.core.roles import (
    PERMISSION_CATALOGUE, PROTECTED_SECTIONS, SECTIONS, Role, parse_role,
)
from accademia.models.role import (
    PermissionRecord, RolePermission, RoleRecord, RoleSection, SectionRecord,
)

logger = logging.getLogger("accademia.matrix")


@dataclass(frozen=True)
class RoleMatrixEntry:
    role: Role
    permissions: frozenset
    sections: frozenset
    version: int = 0


class MatrixBackend(Protocol):
    """Persistence collaborator for the role matrix. Every call is idempotent."""

    def load_role_matrix(self) -> List[RoleMatrixEntry]: ...

    def set_permission(
        self, role: Role, permission_name: str, granted: bool,
        expected_version: Optional[int] = None,
    ) -> bool: ...

    def set_section_visibility(
        self, role: Role, section_name: str, visible: bool,
        expected_version: Optional[int] = None,
    ) -> bool: ...


class SqlMatrixBackend:
    """Role matrix persisted in the roles/permissions/sections tables."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def load_role_matrix(self) -> List[RoleMatrixEntry]:
        with self.session_factory() as db:
            roles = db.query(RoleRecord).order_by(RoleRecord.level.desc()).all()
            granted = (
                db.query(RolePermission.role_id, PermissionRecord.name)
                .join(PermissionRecord, PermissionRecord.id == RolePermission.permission_id)
                .filter(RolePermission.granted.is_(True))
                .all()
            )
            visible = (
                db.query(RoleSection.role_id, SectionRecord.name)
                .join(SectionRecord, SectionRecord.id == RoleSection.section_id)
                .filter(RoleSection.visible.is_(True))
                .all()
            )

        perms_by_role: Dict[int, set] = {}
        for role_id, name in granted:
            perms_by_role.setdefault(role_id, set()).add(name)
        sections_by_role: Dict[int, set] = {}
        for role_id, name in visible:
            sections_by_role.setdefault(role_id, set()).add(name)

        entries = []
        for record in roles:
            role = parse_role(record.name)
            if role is None:
                logger.warning("Ignoring unknown role '%s' in matrix", record.name)
                continue
            entries.append(RoleMatrixEntry(
                role=role,
                permissions=frozenset(perms_by_role.get(record.id, ())),
                sections=frozenset(sections_by_role.get(record.id, ())),
                version=record.matrix_version or 0,
            ))
        return entries

    def set_permission(self, role, permission_name, granted, expected_version=None) -> bool:
        with self.session_factory() as db:
            role_row = self._role(db, role)
            perm_id = db.execute(
                select(PermissionRecord.id).where(PermissionRecord.name == permission_name)
            ).scalar_one_or_none()
            if role_row is None or perm_id is None:
                return False
            if not self._bump_version(db, role_row, expected_version):
                return False

            cell = db.query(RolePermission).filter(
                RolePermission.role_id == role_row.id,
                RolePermission.permission_id == perm_id,
            ).first()
            if cell is None:
                db.add(RolePermission(role_id=role_row.id, permission_id=perm_id, granted=granted))
            else:
                cell.granted = granted
            db.commit()
            return True

    def set_section_visibility(self, role, section_name, visible, expected_version=None) -> bool:
        with self.session_factory() as db:
            role_row = self._role(db, role)
            section_id = db.execute(
                select(SectionRecord.id).where(SectionRecord.name == section_name)
            ).scalar_one_or_none()
            if role_row is None or section_id is None:
                return False
            if not self._bump_version(db, role_row, expected_version):
                return False

            cell = db.query(RoleSection).filter(
                RoleSection.role_id == role_row.id,
                RoleSection.section_id == section_id,
            ).first()
            if cell is None:
                db.add(RoleSection(role_id=role_row.id, section_id=section_id, visible=visible))
            else:
                cell.visible = visible
            db.commit()
            return True

    @staticmethod
    def _role(db: Session, role: Role) -> Optional[RoleRecord]:
        return db.query(RoleRecord).filter(RoleRecord.name == role.value).first()

    @staticmethod
    def _bump_version(db: Session, role_row: RoleRecord, expected_version: Optional[int]) -> bool:
        """Increment the role's matrix version, optionally as a compare-and-swap."""
        stmt = update(RoleRecord).where(RoleRecord.id == role_row.id)
        if expected_version is not None:
            stmt = stmt.where(RoleRecord.matrix_version == expected_version)
        result = db.execute(
            stmt.values(matrix_version=RoleRecord.matrix_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.warning(
                "Stale matrix write for role '%s' (expected version %s)",
                role_row.name, expected_version,
            )
            return False
        return True


class RoleMatrixStore:
    """In-memory snapshot of the role matrix with a guarded mutation API.

    Lifecycle: ``load()`` at startup, ``refresh()`` on demand. Until a load
    succeeds the store reports ``is_available == False`` and permission checks
    that depend on it deny.
    """

    def __init__(self, backend: MatrixBackend, timeout_seconds: Optional[float] = None, notifier=None):
        self.backend = backend
        self.timeout_seconds = (
            settings.MATRIX_LOAD_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self.notifier = notifier
        self._entries: Dict[Role, RoleMatrixEntry] = {}
        self._loaded = False
        self._available = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def is_available(self) -> bool:
        return self._available

    def load(self) -> Dict[Role, RoleMatrixEntry]:
        """Read the whole matrix from the backend, bounded by the load timeout."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="matrix-load")
        try:
            future = executor.submit(self.backend.load_role_matrix)
            entries = future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            self._mark_unavailable(f"timed out after {self.timeout_seconds}s")
            return {}
        except Exception as e:
            self._mark_unavailable(str(e))
            return {}
        finally:
            executor.shutdown(wait=False)

        self._entries = {entry.role: entry for entry in entries}
        self._loaded = True
        self._available = True
        logger.info("Role matrix loaded (%d roles)", len(self._entries))
        return self.snapshot()

    refresh = load

    def snapshot(self) -> Dict[Role, RoleMatrixEntry]:
        return dict(self._entries)

    def entry(self, role) -> Optional[RoleMatrixEntry]:
        role = parse_role(role)
        if role is None:
            return None
        return self._entries.get(role)

    def update_role_permission(
        self, role, permission_name: str, grant: bool,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Grant or revoke a named permission. Returns whether the change is persisted."""
        role = parse_role(role)
        if role is None or permission_name not in PERMISSION_CATALOGUE:
            return False
        if role is Role.super_admin and not grant:
            logger.warning("Refusing to revoke '%s' from super_admin", permission_name)
            return False

        current = self._entries.get(role)
        if current is not None and (permission_name in current.permissions) == grant:
            return True

        if not self._write(
            self.backend.set_permission, role, permission_name, grant, expected_version,
        ):
            return False

        self._apply(role, permissions=_toggle(
            current.permissions if current else frozenset(), permission_name, grant,
        ))
        return True

    def update_role_section(
        self, role, section_name: str, visible: bool,
        expected_version: Optional[int] = None,
    ) -> bool:
        """Show or hide a navigation section. Returns whether the change is persisted."""
        role = parse_role(role)
        if role is None or section_name not in SECTIONS:
            return False
        if not visible and section_name in PROTECTED_SECTIONS.get(role, ()):
            logger.warning("Refusing to hide '%s' from %s", section_name, role.value)
            return False

        current = self._entries.get(role)
        if current is not None and (section_name in current.sections) == visible:
            return True

        if not self._write(
            self.backend.set_section_visibility, role, section_name, visible, expected_version,
        ):
            return False

        self._apply(role, sections=_toggle(
            current.sections if current else frozenset(), section_name, visible,
        ))
        return True

    def _write(self, fn, role, name, flag, expected_version) -> bool:
        try:
            ok = fn(role, name, flag, expected_version=expected_version)
        except Exception as e:
            logger.error("Role matrix write failed for %s/%s: %s", role.value, name, e)
            if self.notifier is not None:
                self.notifier.emit(
                    "matrix.write_failed",
                    f"Role matrix change for {role.value} not saved",
                    {"role": role.value, "name": name, "error": str(e)},
                )
            return False
        return bool(ok)

    def _apply(self, role: Role, permissions: Optional[Iterable] = None, sections: Optional[Iterable] = None):
        current = self._entries.get(role) or RoleMatrixEntry(role, frozenset(), frozenset(), 0)
        changes = {"version": current.version + 1}
        if permissions is not None:
            changes["permissions"] = frozenset(permissions)
        if sections is not None:
            changes["sections"] = frozenset(sections)
        self._entries[role] = replace(current, **changes)

    def _mark_unavailable(self, reason: str) -> None:
        self._available = False
        logger.error("Role matrix unavailable: %s", reason)
        if self.notifier is not None:
            self.notifier.emit("matrix.unavailable", "Role matrix could not be loaded", {"reason": reason})


def _toggle(names: frozenset, name: str, present: bool) -> frozenset:
    return names | {name} if present else names - {name}
