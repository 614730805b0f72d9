"""SQLAlchemy row store implementation."""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    and_,
    delete,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from role_hierarchy.core.database import Base
from role_hierarchy.domain.models import CONTENT_FIELDS, NATURAL_KEY, RoleRow
from role_hierarchy.persistence.row_store import (
    StorageConflictError,
    StorageError,
    StorageUnavailableError,
)


class RoleORM(Base):
    """ORM model for one role row."""

    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("business_id", "year", "role_id", name="uq_roles_business_year_role"),
        Index("ix_roles_scope_parent", "business_id", "year", "parent_role_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    business_id = Column(String(64), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    role_id = Column(String(128), nullable=False)
    name = Column(String(255), nullable=False)
    color = Column(String(32), nullable=False)
    participates_in_rd = Column(Boolean, nullable=False, default=True)
    parent_role_id = Column(String(128), nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


# Columns an upsert overwrites when it lands on an existing natural key.
# created_at keeps its first value.
_UPSERT_SET_COLUMNS = CONTENT_FIELDS + ("updated_at",)

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _orm_to_row(orm_role: RoleORM) -> RoleRow:
    """Convert ORM role to RoleRow domain model."""
    return RoleRow(
        business_id=orm_role.business_id,
        year=orm_role.year,
        role_id=orm_role.role_id,
        name=orm_role.name,
        color=orm_role.color,
        participates_in_rd=orm_role.participates_in_rd,
        parent_role_id=orm_role.parent_role_id,
        order_index=orm_role.order_index,
        created_at=orm_role.created_at,
        updated_at=orm_role.updated_at,
    )


def _row_values(row: RoleRow, now: datetime) -> Dict[str, object]:
    """Column values for inserting a RoleRow."""
    return {
        "id": str(uuid4()),
        "business_id": row.business_id,
        "year": row.year,
        "role_id": row.role_id,
        "name": row.name,
        "color": row.color,
        "participates_in_rd": row.participates_in_rd,
        "parent_role_id": row.parent_role_id,
        "order_index": row.order_index,
        "created_at": row.created_at or now,
        "updated_at": row.updated_at or now,
    }


class SqlRowStore:
    """SQLAlchemy implementation of RowStore (PostgreSQL or SQLite)."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        """
        Initialize store.

        Args:
            session_factory: Callable that returns an AsyncSession
        """
        self._session_factory = session_factory

    async def fetch(self, business_id: str, year: int) -> List[RoleRow]:
        """Return all rows in scope, ordered by order_index."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RoleORM)
                    .where(and_(RoleORM.business_id == business_id, RoleORM.year == year))
                    .order_by(RoleORM.order_index, RoleORM.role_id)
                )
                return [_orm_to_row(r) for r in result.scalars().all()]
        except (OperationalError, InterfaceError, OSError) as exc:
            raise StorageUnavailableError(f"Could not fetch roles: {exc}") from exc

    async def upsert(
        self,
        rows: Sequence[RoleRow],
        conflict_key: Tuple[str, ...] = NATURAL_KEY,
    ) -> List[RoleRow]:
        """
        Insert or overwrite rows by natural key in one transaction.

        Rows are written one statement at a time so a rejected row can be
        named; any rejection rolls back the whole call.
        """
        if not rows:
            return []

        now = datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                dialect = session.get_bind().dialect.name
                insert = _INSERT_BY_DIALECT.get(dialect)
                if insert is None:
                    raise StorageError(f"Upsert is not supported for dialect {dialect}")

                for row in rows:
                    stmt = insert(RoleORM).values(**_row_values(row, now))
                    stmt = stmt.on_conflict_do_update(
                        index_elements=list(conflict_key),
                        set_={name: stmt.excluded[name] for name in _UPSERT_SET_COLUMNS},
                    )
                    try:
                        await session.execute(stmt)
                    except IntegrityError as exc:
                        await session.rollback()
                        raise StorageConflictError(
                            f"Store rejected role {row.role_id}: {exc.orig}",
                            role_id=row.role_id,
                        ) from exc

                await session.commit()
                persisted = await self._select_keys(session, rows)
        except (OperationalError, InterfaceError, OSError) as exc:
            raise StorageUnavailableError(f"Could not upsert roles: {exc}") from exc

        for row in rows:
            if row.natural_key not in persisted:
                # Committed, then removed by another writer before the re-read
                raise StorageConflictError(
                    f"Role {row.role_id} was deleted concurrently after being written",
                    role_id=row.role_id,
                )
        return [persisted[row.natural_key] for row in rows]

    async def _select_keys(
        self,
        session: AsyncSession,
        rows: Sequence[RoleRow],
    ) -> Dict[Tuple[str, int, str], RoleRow]:
        """Re-read rows by natural key, grouped by scope."""
        ids_by_scope: Dict[Tuple[str, int], List[str]] = {}
        for row in rows:
            ids_by_scope.setdefault(row.scope, []).append(row.role_id)

        persisted: Dict[Tuple[str, int, str], RoleRow] = {}
        for (business_id, year), role_ids in ids_by_scope.items():
            result = await session.execute(
                select(RoleORM).where(
                    and_(
                        RoleORM.business_id == business_id,
                        RoleORM.year == year,
                        RoleORM.role_id.in_(role_ids),
                    )
                )
            )
            for orm_role in result.scalars().all():
                stored = _orm_to_row(orm_role)
                persisted[stored.natural_key] = stored
        return persisted

    async def delete(self, business_id: str, year: int, role_ids: Sequence[str]) -> None:
        """Delete rows by natural key. Missing rows are ignored."""
        if not role_ids:
            return

        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(RoleORM).where(
                        and_(
                            RoleORM.business_id == business_id,
                            RoleORM.year == year,
                            RoleORM.role_id.in_(list(role_ids)),
                        )
                    )
                )
                await session.commit()
        except (OperationalError, InterfaceError, OSError) as exc:
            raise StorageUnavailableError(f"Could not delete roles: {exc}") from exc


# ============================================================================
# Factory function
# ============================================================================

def create_row_store(
    session_factory: Optional[Callable[[], AsyncSession]],
    use_sql: bool = True,
):
    """
    Create a row store instance.

    Args:
        session_factory: Session factory for the SQL store
        use_sql: If True, use SqlRowStore; if False, use in-memory

    Returns:
        RowStore implementation
    """
    if use_sql:
        if session_factory is None:
            raise ValueError("session_factory is required for the SQL row store")
        return SqlRowStore(session_factory)

    from role_hierarchy.persistence.row_store import InMemoryRowStore
    return InMemoryRowStore()
