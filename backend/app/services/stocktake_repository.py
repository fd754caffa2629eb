# backend/app/services/stocktake_repository.py
"""
Persistence for stocktake sessions and their line items.

Repositories never open connections or transactions themselves: every
method takes the Session acquired by the caller, so several calls can
share one transaction (the balance commit relies on this).
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.orm import Session

from ..models import Product, StocktakeItem, StocktakeSession
from .concurrency import lock_for_update
from app.time_utils import utcnow


SESSION_STATUS_DRAFT = "draft"
SESSION_STATUS_IN_PROGRESS = "in_progress"
SESSION_STATUS_COMPLETED = "completed"
SESSION_STATUS_BALANCED = "balanced"

SESSION_STATUSES = (
    SESSION_STATUS_DRAFT,
    SESSION_STATUS_IN_PROGRESS,
    SESSION_STATUS_COMPLETED,
    SESSION_STATUS_BALANCED,
)

ITEM_STATUS_PENDING = "pending"
ITEM_STATUS_MATCHED = "matched"
ITEM_STATUS_DISCREPANCY = "discrepancy"


@dataclass(frozen=True)
class SessionPatch:
    """
    Partial update of a session. None means "leave unchanged".

    Only the columns listed in to_values() can ever reach the UPDATE.
    """
    status: str | None = None
    notes: str | None = None
    tags: str | None = None

    def is_empty(self) -> bool:
        return self.status is None and self.notes is None and self.tags is None

    def to_values(self) -> dict:
        values = {}
        if self.status is not None:
            values["status"] = self.status
        if self.notes is not None:
            values["notes"] = self.notes.strip()
        if self.tags is not None:
            values["tags"] = self.tags.strip()
        return values


class SessionRepository:
    def next_available_code(self, s: Session, base_code: str) -> str:
        """Return base_code, or base_code-N for the first N >= 2 not yet taken."""
        taken = set(
            s.execute(
                select(StocktakeSession.session_code).where(
                    or_(
                        StocktakeSession.session_code == base_code,
                        StocktakeSession.session_code.like(f"{base_code}-%"),
                    )
                )
            ).scalars()
        )
        if base_code not in taken:
            return base_code
        suffix = 2
        while f"{base_code}-{suffix}" in taken:
            suffix += 1
        return f"{base_code}-{suffix}"

    def create(
        self,
        s: Session,
        *,
        session_code: str,
        branch_name: str,
        staff_name: str,
        notes: str,
        tags: str,
    ) -> int:
        row = StocktakeSession(
            session_code=session_code,
            branch_name=branch_name,
            staff_name=staff_name,
            status=SESSION_STATUS_DRAFT,
            notes=notes,
            tags=tags,
        )
        s.add(row)
        s.flush()  # Get ID
        return row.id

    def get(self, s: Session, session_id: int, *, lock: bool = False) -> StocktakeSession | None:
        stmt = select(StocktakeSession).where(StocktakeSession.id == session_id)
        if lock:
            stmt = lock_for_update(stmt)
        return s.execute(stmt).scalar_one_or_none()

    def list_recent(self, s: Session, *, status: str | None = None, limit: int | None = None) -> list[StocktakeSession]:
        stmt = select(StocktakeSession)
        if status:
            stmt = stmt.where(StocktakeSession.status == status)
        stmt = stmt.order_by(StocktakeSession.created_at.desc(), StocktakeSession.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(s.execute(stmt).scalars())

    def apply_patch(self, s: Session, session_id: int, patch: SessionPatch) -> int:
        values = patch.to_values()
        values["updated_at"] = utcnow()
        result = s.execute(
            update(StocktakeSession).where(StocktakeSession.id == session_id).values(**values)
        )
        return result.rowcount

    def mark_balanced(self, s: Session, session_id: int, *, balanced_by: str) -> int:
        now = utcnow()
        result = s.execute(
            update(StocktakeSession)
            .where(StocktakeSession.id == session_id)
            .values(
                status=SESSION_STATUS_BALANCED,
                balanced_at=now,
                balanced_by=balanced_by,
                updated_at=now,
            )
        )
        return result.rowcount


class ItemRepository:
    def create(self, s: Session, *, session_id: int, product_id: int, system_quantity: int) -> int:
        row = StocktakeItem(
            session_id=session_id,
            product_id=product_id,
            system_quantity=system_quantity,
            status=ITEM_STATUS_PENDING,
        )
        s.add(row)
        s.flush()
        return row.id

    def find(self, s: Session, session_id: int, product_id: int) -> StocktakeItem | None:
        return s.execute(
            select(StocktakeItem)
            .where(StocktakeItem.session_id == session_id, StocktakeItem.product_id == product_id)
            .order_by(StocktakeItem.id.asc())
            .limit(1)
        ).scalar_one_or_none()

    def record_count(
        self,
        s: Session,
        item_id: int,
        *,
        actual_quantity: int,
        difference: int,
        status: str,
        reason: str,
        notes: str,
    ) -> int:
        result = s.execute(
            update(StocktakeItem)
            .where(StocktakeItem.id == item_id)
            .values(
                actual_quantity=actual_quantity,
                difference=difference,
                status=status,
                reason=reason,
                notes=notes,
                updated_at=utcnow(),
            )
        )
        return result.rowcount

    def delete(self, s: Session, item_id: int) -> int:
        return s.execute(delete(StocktakeItem).where(StocktakeItem.id == item_id)).rowcount

    def list_counted(self, s: Session, session_id: int) -> list[StocktakeItem]:
        """Items with a recorded count; uncounted items never reach the balance."""
        return list(
            s.execute(
                select(StocktakeItem)
                .where(
                    StocktakeItem.session_id == session_id,
                    StocktakeItem.actual_quantity.is_not(None),
                )
                .order_by(StocktakeItem.id.asc())
            ).scalars()
        )

    def list_with_products(self, s: Session, session_id: int) -> list[dict]:
        """Items joined with the product fields the detail screen displays."""
        rows = s.execute(
            select(
                StocktakeItem,
                Product.name,
                Product.sku,
                Product.barcode,
                Product.image_url,
            )
            .join(Product, Product.id == StocktakeItem.product_id)
            .where(StocktakeItem.session_id == session_id)
            .order_by(StocktakeItem.created_at.asc(), StocktakeItem.id.asc())
        ).all()

        items = []
        for item, name, sku, barcode, image_url in rows:
            data = item.to_dict()
            data.update(
                product_name=name,
                product_sku=sku,
                product_barcode=barcode,
                product_image=image_url,
            )
            items.append(data)
        return items

    def summarize(self, s: Session, session_id: int) -> dict:
        rows = s.execute(
            select(StocktakeItem.status, func.count(StocktakeItem.id))
            .where(StocktakeItem.session_id == session_id)
            .group_by(StocktakeItem.status)
        ).all()
        by_status = {status: count for status, count in rows}

        surplus, shortage = s.execute(
            select(
                func.coalesce(func.sum(case((StocktakeItem.difference > 0, StocktakeItem.difference), else_=0)), 0),
                func.coalesce(func.sum(case((StocktakeItem.difference < 0, StocktakeItem.difference), else_=0)), 0),
            ).where(StocktakeItem.session_id == session_id)
        ).one()

        pending = by_status.get(ITEM_STATUS_PENDING, 0)
        matched = by_status.get(ITEM_STATUS_MATCHED, 0)
        discrepancy = by_status.get(ITEM_STATUS_DISCREPANCY, 0)
        return {
            "total_items": pending + matched + discrepancy,
            "counted": matched + discrepancy,
            "pending": pending,
            "matched": matched,
            "discrepancy": discrepancy,
            "total_surplus": int(surplus),
            "total_shortage": int(shortage),
        }
