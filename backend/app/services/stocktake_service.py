# backend/app/services/stocktake_service.py
"""
Stocktake ("kiểm kho") reconciliation service.

WHY: The physical count is the only way to correct drift between the
catalog's stock_quantity and what is actually on the shelf. A session
snapshots system stock per product, records counted quantities, and the
balance step writes the counted levels back to the catalog in a single
transaction.

LIFECYCLE:
1. draft: session created, products attached and counted
2. in_progress / completed: optional markers set through update_session
3. balanced: counted quantities committed to product stock (terminal)

CONSISTENCY:
- balance() holds one connection for the whole commit. Item reads, every
  product overwrite, the stock movement trail and the session status change
  commit together or not at all.
- balance() is the only writer of balanced_at / balanced_by.

Every public operation returns an OperationResult instead of raising.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..config import Config
from ..db_pool import ConnectionPool, PoolClosedError
from ..validation import ConflictError, ValidationError, clean_text, coerce_id, coerce_int, optional_text
from . import products_service
from .concurrency import run_with_retry
from .products_service import ProductStockMutator
from .stocktake_repository import (
    ITEM_STATUS_DISCREPANCY,
    ITEM_STATUS_MATCHED,
    SESSION_STATUS_BALANCED,
    SESSION_STATUSES,
    ItemRepository,
    SessionPatch,
    SessionRepository,
)
from app.time_utils import localnow

logger = logging.getLogger(__name__)

SESSION_CODE_PREFIX = "IAN"
STOCK_MOVEMENT_TYPE = "stocktake"

PATCHABLE_FIELDS = {"status", "notes", "tags"}


class StocktakeError(Exception):
    """Raised when stocktake operations fail."""
    kind = "error"


class StocktakeNotFoundError(StocktakeError):
    """Referenced session, product or line item does not exist."""
    kind = "not_found"


class StocktakeConflictError(StocktakeError, ConflictError):
    """Business rule violation (already balanced, nothing to balance, duplicates)."""
    kind = "conflict"


@dataclass
class OperationResult:
    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None
    error_kind: str | None = None
    meta: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, *, message: str | None = None, **meta) -> "OperationResult":
        return cls(success=True, data=data, message=message, meta=meta)

    @classmethod
    def fail(cls, error: str, kind: str) -> "OperationResult":
        return cls(success=False, error=error, error_kind=kind)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        payload: dict = {"success": True}
        if self.data is not None:
            payload["data"] = self.data
        if self.message is not None:
            payload["message"] = self.message
        payload.update(self.meta)
        return payload


def _operation(failure_message: str):
    """
    Turn an internal method that raises into a public operation returning
    OperationResult. Database failures are logged with traceback and reported
    with failure_message only.
    """
    def decorator(method: Callable[..., OperationResult]):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs) -> OperationResult:
            try:
                return method(self, *args, **kwargs)
            except ValidationError as exc:
                logger.info("%s rejected: %s", method.__name__, exc)
                return OperationResult.fail(str(exc), "validation")
            except StocktakeError as exc:
                logger.info("%s rejected: %s", method.__name__, exc)
                return OperationResult.fail(str(exc), exc.kind)
            except (SQLAlchemyError, PoolClosedError):
                logger.exception(failure_message)
                return OperationResult.fail(failure_message, "database")
            except Exception:
                logger.exception(failure_message)
                return OperationResult.fail(failure_message, "internal")
        return wrapper
    return decorator


def build_session_code(now) -> str:
    return f"{SESSION_CODE_PREFIX}{now:%Y%m%d}{now:%H%M}"


def item_status_for(difference: int) -> str:
    return ITEM_STATUS_MATCHED if difference == 0 else ITEM_STATUS_DISCREPANCY


class StocktakeService:
    """
    Orchestrates stocktake sessions over an explicitly supplied ConnectionPool.

    Repositories and the stock mutator are injectable so tests can wrap them
    (e.g. to inject a failure halfway through a balance).
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        sessions: SessionRepository | None = None,
        items: ItemRepository | None = None,
        stock: ProductStockMutator | None = None,
        default_branch: str = Config.STOCKTAKE_DEFAULT_BRANCH,
        default_staff: str = Config.STOCKTAKE_DEFAULT_STAFF,
        search_limit: int = products_service.DEFAULT_SEARCH_LIMIT,
        page_size: int = products_service.DEFAULT_PAGE_SIZE,
        max_page_size: int = products_service.MAX_PAGE_SIZE,
        clock: Callable = localnow,
    ) -> None:
        self.pool = pool
        self.sessions = sessions or SessionRepository()
        self.items = items or ItemRepository()
        self.stock = stock or ProductStockMutator()
        self.default_branch = default_branch
        self.default_staff = default_staff
        self.search_limit = search_limit
        self.page_size = page_size
        self.max_page_size = max_page_size
        self.clock = clock

    @classmethod
    def from_config(cls, pool: ConnectionPool, config: Mapping) -> "StocktakeService":
        return cls(
            pool,
            default_branch=config.get("STOCKTAKE_DEFAULT_BRANCH", Config.STOCKTAKE_DEFAULT_BRANCH),
            default_staff=config.get("STOCKTAKE_DEFAULT_STAFF", Config.STOCKTAKE_DEFAULT_STAFF),
            search_limit=config.get("PRODUCT_SEARCH_LIMIT", products_service.DEFAULT_SEARCH_LIMIT),
            page_size=config.get("PRODUCT_PAGE_SIZE", products_service.DEFAULT_PAGE_SIZE),
            max_page_size=config.get("PRODUCT_MAX_PAGE_SIZE", products_service.MAX_PAGE_SIZE),
        )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @_operation("Could not create stocktake session")
    def create_session(
        self,
        branch_name: str | None = None,
        staff_name: str | None = None,
        notes: str | None = None,
        tags: str | None = None,
    ) -> OperationResult:
        """
        Create a draft session. Missing branch/staff fall back to the
        configured defaults; missing notes/tags become empty strings.
        """
        branch = clean_text(branch_name, default=self.default_branch)
        staff = clean_text(staff_name, default=self.default_staff)
        notes_value = clean_text(notes)
        tags_value = clean_text(tags)
        base_code = build_session_code(self.clock())

        def _op():
            with self.pool.transaction() as s:
                code = self.sessions.next_available_code(s, base_code)
                session_id = self.sessions.create(
                    s,
                    session_code=code,
                    branch_name=branch,
                    staff_name=staff,
                    notes=notes_value,
                    tags=tags_value,
                )
            return session_id, code

        # A concurrent creator can take the same code between lookup and insert
        session_id, code = run_with_retry(_op, retry_on=(IntegrityError, OperationalError))
        logger.info("Created stocktake session %s (id=%s) branch=%r staff=%r", code, session_id, branch, staff)
        return OperationResult.ok({"session_id": session_id, "session_code": code})

    @_operation("Could not update stocktake session")
    def update_session(self, session_id, changes: Mapping[str, Any] | SessionPatch | None) -> OperationResult:
        """
        Partial update of status / notes / tags.

        balanced_by and status="balanced" are refused: only balance() may mark
        a session balanced, because only balance() moves stock.
        """
        session_id = coerce_id(session_id, "session_id")
        patch = self._build_patch(changes)

        with self.pool.transaction() as s:
            session = self.sessions.get(s, session_id, lock=True)
            if session is None:
                raise StocktakeNotFoundError("Stocktake session not found")
            if session.status == SESSION_STATUS_BALANCED:
                raise StocktakeConflictError("Stocktake session is already balanced")
            self.sessions.apply_patch(s, session_id, patch)

        return OperationResult.ok()

    @staticmethod
    def _build_patch(changes) -> SessionPatch:
        if isinstance(changes, SessionPatch):
            patch = changes
        else:
            if changes is None:
                changes = {}
            if not isinstance(changes, Mapping):
                raise ValidationError("Request body must be a JSON object")
            changes = dict(changes)
            if "balanced_by" in changes or "balanced_at" in changes:
                raise ValidationError("balanced_by can only be set by balancing the stocktake")
            unknown = sorted(set(changes) - PATCHABLE_FIELDS)
            if unknown:
                raise ValidationError(f"Field not allowed: {', '.join(unknown)}")
            patch = SessionPatch(
                status=optional_text(changes.get("status")) or None,
                notes=optional_text(changes.get("notes")),
                tags=optional_text(changes.get("tags")),
            )

        if patch.status is not None:
            if patch.status not in SESSION_STATUSES:
                raise ValidationError(f"Invalid status: {patch.status}")
            if patch.status == SESSION_STATUS_BALANCED:
                raise StocktakeConflictError("Use balance to mark a stocktake balanced")
        if patch.is_empty():
            raise ValidationError("Nothing to update")
        return patch

    @_operation("Could not load stocktake sessions")
    def list_sessions(self, status: str | None = None, limit=None) -> OperationResult:
        """All sessions newest first; limit caps the count only when given."""
        if status and status not in SESSION_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        if limit is not None and limit != "":
            limit = max(coerce_int(limit, "limit"), 1)
        else:
            limit = None

        with self.pool.session() as s:
            sessions = self.sessions.list_recent(s, status=status or None, limit=limit)
            return OperationResult.ok([row.to_dict() for row in sessions])

    @_operation("Could not load stocktake session")
    def get_session_detail(self, session_id) -> OperationResult:
        session_id = coerce_id(session_id, "session_id")

        with self.pool.session() as s:
            session = self.sessions.get(s, session_id)
            if session is None:
                raise StocktakeNotFoundError("Stocktake session not found")
            return OperationResult.ok({
                "session": session.to_dict(),
                "items": self.items.list_with_products(s, session_id),
                "summary": self.items.summarize(s, session_id),
            })

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def _require_open_session(self, s, session_id: int):
        # Row lock serializes item writes against a concurrent balance()
        session = self.sessions.get(s, session_id, lock=True)
        if session is None:
            raise StocktakeNotFoundError("Stocktake session not found")
        if session.status == SESSION_STATUS_BALANCED:
            raise StocktakeConflictError("Stocktake session is already balanced")
        return session

    @_operation("Could not add product to stocktake")
    def attach_product(self, session_id, product_id) -> OperationResult:
        """Attach a product, snapshotting its current stock as system_quantity."""
        session_id = coerce_id(session_id, "session_id")
        product_id = coerce_id(product_id, "product_id")

        try:
            with self.pool.transaction() as s:
                self._require_open_session(s, session_id)

                system_quantity = self.stock.get_stock_quantity(s, product_id)
                if system_quantity is None:
                    raise StocktakeNotFoundError("Product not found")

                if self.items.find(s, session_id, product_id) is not None:
                    raise StocktakeConflictError("Product is already in this stocktake")

                item_id = self.items.create(
                    s,
                    session_id=session_id,
                    product_id=product_id,
                    system_quantity=system_quantity,
                )
        except IntegrityError as exc:
            raise StocktakeConflictError("Product is already in this stocktake") from exc

        return OperationResult.ok({"item_id": item_id, "system_quantity": system_quantity})

    @_operation("Could not remove product from stocktake")
    def detach_product(self, session_id, product_id) -> OperationResult:
        session_id = coerce_id(session_id, "session_id")
        product_id = coerce_id(product_id, "product_id")

        with self.pool.transaction() as s:
            self._require_open_session(s, session_id)
            item = self.items.find(s, session_id, product_id)
            if item is None:
                raise StocktakeNotFoundError("Item not found in this stocktake")
            self.items.delete(s, item.id)

        return OperationResult.ok()

    @_operation("Could not record counted quantity")
    def record_count(
        self,
        session_id,
        product_id,
        actual_quantity,
        reason: str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        """
        Record the counted quantity for a product already on the session.

        difference = actual - system snapshot; status is "matched" when that
        is zero, otherwise "discrepancy". Re-recording overwrites in place.
        """
        session_id = coerce_id(session_id, "session_id")
        product_id = coerce_id(product_id, "product_id")
        actual_quantity = coerce_int(actual_quantity, "actual_quantity")

        with self.pool.transaction() as s:
            self._require_open_session(s, session_id)

            item = self.items.find(s, session_id, product_id)
            if item is None:
                raise StocktakeNotFoundError("Item not found in this stocktake")

            item_id = item.id
            difference = actual_quantity - (item.system_quantity or 0)
            status = item_status_for(difference)
            self.items.record_count(
                s,
                item_id,
                actual_quantity=actual_quantity,
                difference=difference,
                status=status,
                reason=clean_text(reason),
                notes=clean_text(notes),
            )

        return OperationResult.ok({"item_id": item_id, "difference": difference, "status": status})

    # ------------------------------------------------------------------
    # Balance
    # ------------------------------------------------------------------

    @_operation("Could not balance stock")
    def balance(self, session_id, balanced_by) -> OperationResult:
        """
        Commit counted quantities to product stock.

        Steps (one transaction, one connection):
        1. Lock the session row and refuse missing / already balanced sessions
        2. Select items with a recorded count; none -> "nothing to balance"
        3. Overwrite each product's stock_quantity with actual_quantity
        4. Mark the session balanced with balanced_at / balanced_by

        Any failure rolls everything back; no partial balance is observable.
        """
        session_id = coerce_id(session_id, "session_id")
        actor = clean_text(balanced_by)
        if not actor:
            raise ValidationError("balanced_by is required")

        logger.info("Balancing stocktake session %s by %s", session_id, actor)

        with self.pool.transaction() as s:
            session = self.sessions.get(s, session_id, lock=True)
            if session is None:
                raise StocktakeNotFoundError("Stocktake session not found")
            if session.status == SESSION_STATUS_BALANCED:
                raise StocktakeConflictError("Stocktake session is already balanced")

            counted = self.items.list_counted(s, session_id)
            if not counted:
                raise StocktakeConflictError("Nothing to balance: no counted products")

            session_code = session.session_code
            updated_count = 0
            for item in counted:
                previous = self.stock.set_stock_quantity(s, item.product_id, item.actual_quantity)
                if previous is None:
                    raise StocktakeNotFoundError(f"Product {item.product_id} not found")

                change = item.actual_quantity - previous
                if change:
                    self.stock.record_movement(
                        s,
                        product_id=item.product_id,
                        quantity_change=change,
                        movement_type=STOCK_MOVEMENT_TYPE,
                        reason=item.reason or f"Stocktake {session_code}",
                        reference=session_code,
                    )
                logger.debug("Product %s stock %s -> %s", item.product_id, previous, item.actual_quantity)
                updated_count += 1

            self.sessions.mark_balanced(s, session_id, balanced_by=actor)

        logger.info("Balanced stocktake session %s: %d products updated", session_code, updated_count)
        return OperationResult.ok(
            {"updated_count": updated_count, "session_code": session_code},
            message=f"Stock balanced for {updated_count} products",
        )

    # ------------------------------------------------------------------
    # Product lookup for attaching
    # ------------------------------------------------------------------

    @_operation("Could not search products")
    def search_products(self, query: str | None) -> OperationResult:
        with self.pool.session() as s:
            return OperationResult.ok(products_service.search_products(s, query, limit=self.search_limit))

    @_operation("Could not load products")
    def list_products_paged(self, page=1, page_size=None, query: str | None = None) -> OperationResult:
        page = coerce_int(page, "page") if page is not None else 1
        page_size = coerce_int(page_size, "page_size") if page_size is not None else self.page_size

        with self.pool.session() as s:
            result = products_service.list_products_paged(
                s,
                page=page,
                per_page=page_size,
                query=query,
                max_per_page=self.max_page_size,
            )
        return OperationResult.ok(result["items"], pagination=result["pagination"])
