"""
Generic triage collection: an enriched record set plus the operator's view of it.

A collection owns three pieces of state:

* the enriched records from the last applied fetch, in fetch order,
* a ``TriageConfig`` (search, status filter, date window, sort) that derives
  the visible, ordered subset,
* a ``SelectionState`` (selected ids, open record) that always refers to
  visible records only.

Local state is only changed after the store has committed a write. Batch
mutations and their single audit entry share one transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.core.clock import utcnow
from oversight.core.errors import StoreError, ValidationError
from oversight.models.user import User
from oversight.services.audit_service import AuditLogWriter
from oversight.services.store import FilterSpec, SqlModelStore

logger = logging.getLogger(__name__)


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DateWindow(str, Enum):
    ALL = "all"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"


DATE_WINDOWS = {
    DateWindow.DAY: timedelta(days=1),
    DateWindow.WEEK: timedelta(days=7),
    DateWindow.MONTH: timedelta(days=30),
    DateWindow.QUARTER: timedelta(days=90),
}

ALL = "all"


@dataclass
class TriageConfig:
    search: str = ""
    status: str = ALL
    date_window: DateWindow = DateWindow.ALL
    sort_field: Optional[str] = None
    sort_direction: SortDirection = SortDirection.DESC


@dataclass
class SelectionState:
    selected: Set[int] = field(default_factory=set)
    open_id: Optional[int] = None

    def is_all_selected(self, visible_ids: List[int]) -> bool:
        return bool(visible_ids) and self.selected == set(visible_ids)

    def prune(self, visible_ids: Iterable[int]) -> None:
        self.selected &= set(visible_ids)

    def clear(self) -> None:
        self.selected.clear()


class TriageCollection:
    """
    Subclasses describe their record kind through the class attributes below
    and implement ``enrich``.
    """

    model = None
    # Audit target for batch entries and the details key listing their ids
    target_type: str = "records"
    ids_detail_key: str = "ids"
    date_field: str = "created_at"
    search_fields: Tuple[str, ...] = ()
    status_filters: Dict[str, Callable[[Any], bool]] = {}
    sort_keys: Dict[str, Callable[[Any], Any]] = {}
    default_sort_field: str = "created_at"

    def __init__(
        self,
        session: Optional[AsyncSession],
        actor: Optional[User],
        *,
        store: Optional[SqlModelStore] = None,
        audit: Optional[AuditLogWriter] = None,
        clock: Callable[[], datetime] = utcnow,
        scope: Optional[Dict[str, Any]] = None,
        fetch_limit: Optional[int] = None,
    ):
        self.session = session
        self.actor = actor
        # Snapshot the id: a rollback expires ORM instances held by the session
        self.actor_id = actor.id if actor is not None else None
        self.clock = clock
        self.store = store or SqlModelStore(session, self.model)
        self.audit = audit or AuditLogWriter(session, clock=clock)
        # Equality predicates and row cap applied by the store on every fetch
        self.scope = dict(scope or {})
        self.fetch_limit = fetch_limit

        self.config = TriageConfig(sort_field=self.default_sort_field)
        self.selection = SelectionState()
        self._records: List[Any] = []
        self._visible: List[Any] = []

        # Fetch ordering: the newest issued fetch wins, and a fetch issued
        # before a committed mutation is discarded.
        self._fetch_seq = 0
        self._applied_seq = 0
        self._generation = 0

    # --- enrichment hooks ---

    def enrich(self, record, now: datetime):
        """Subclasses set ``model`` and turn one stored record into its enriched view."""
        raise NotImplementedError

    def rederive(self, item, now: datetime):
        return item

    def filter_spec(self) -> FilterSpec:
        """
        Store-side predicates for the next fetch: the scope, the lower bound of
        the date window and the row cap. The upper bound stays client-side.
        """
        window = DATE_WINDOWS.get(self.config.date_window)
        return FilterSpec(
            equals=dict(self.scope),
            date_field=self.date_field,
            since=self.clock() - window if window is not None else None,
            order_by=self.date_field,
            descending=True,
            limit=self.fetch_limit,
        )

    # --- fetch ---

    async def fetch(self, spec: Optional[FilterSpec] = None) -> bool:
        """
        Load and enrich records. Returns False when the response was stale and dropped.
        """
        self._fetch_seq += 1
        seq = self._fetch_seq
        generation = self._generation

        records = await self.store.list(spec or self.filter_spec())

        if seq < self._applied_seq or generation != self._generation:
            logger.warning(
                "Discarding stale %s fetch #%s (applied #%s)", self.target_type, seq, self._applied_seq
            )
            return False

        now = self.clock()
        self._applied_seq = seq
        self._records = [self.enrich(record, now) for record in records]
        self._refresh_view()
        return True

    # --- view ---

    @property
    def records(self) -> List[Any]:
        return list(self._records)

    @property
    def visible(self) -> List[Any]:
        return list(self._visible)

    @property
    def visible_ids(self) -> List[int]:
        return [item.id for item in self._visible]

    def get(self, id: int):
        for item in self._records:
            if item.id == id:
                return item
        return None

    def configure(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        date_window=None,
        sort_field: Optional[str] = None,
        sort_direction=None,
    ) -> List[Any]:
        """
        Change any filter/sort axis and return the new visible list.

        The date window is also pushed to the store, so widening it only shows
        records loaded by an earlier, wider fetch until the next fetch().
        """
        config = TriageConfig(**vars(self.config))
        if search is not None:
            config.search = search
        if status is not None:
            if status != ALL and status not in self.status_filters:
                raise ValidationError(f"Unknown status filter '{status}'")
            config.status = status
        if date_window is not None:
            try:
                config.date_window = DateWindow(date_window)
            except ValueError:
                raise ValidationError(f"Unknown date window '{date_window}'")
        if sort_field is not None:
            if sort_field not in self.sort_keys:
                raise ValidationError(f"Cannot sort by '{sort_field}'")
            config.sort_field = sort_field
        if sort_direction is not None:
            try:
                config.sort_direction = SortDirection(sort_direction)
            except ValueError:
                raise ValidationError(f"Unknown sort direction '{sort_direction}'")

        self.config = config
        self._refresh_view()
        return self.visible

    def _matches(self, item, now: datetime) -> bool:
        query = self.config.search.strip().lower()
        if query and not any(
            query in (getattr(item, name, None) or "").lower() for name in self.search_fields
        ):
            return False

        if self.config.status != ALL and not self.status_filters[self.config.status](item):
            return False

        window = DATE_WINDOWS.get(self.config.date_window)
        if window is not None:
            stamp = getattr(item, self.date_field)
            if not (now - window <= stamp <= now):
                return False
        return True

    def _refresh_view(self) -> None:
        now = self.clock()
        matching = [item for item in self._records if self._matches(item, now)]
        key = self.sort_keys[self.config.sort_field]
        # sorted() is stable in both directions, so ties keep fetch order
        self._visible = sorted(
            matching, key=key, reverse=self.config.sort_direction == SortDirection.DESC
        )

        self.selection.prune(self.visible_ids)
        if self.selection.open_id is not None and self.get(self.selection.open_id) is None:
            self.selection.open_id = None

    # --- selection ---

    @property
    def selected_ids(self) -> List[int]:
        return [id for id in self.visible_ids if id in self.selection.selected]

    @property
    def all_selected(self) -> bool:
        return self.selection.is_all_selected(self.visible_ids)

    def toggle_select(self, id: int) -> bool:
        if id not in self.visible_ids:
            raise ValidationError(f"Record {id} is not in the current view")
        if id in self.selection.selected:
            self.selection.selected.discard(id)
            return False
        self.selection.selected.add(id)
        return True

    def select_all(self) -> List[int]:
        if self.all_selected:
            self.selection.clear()
        else:
            self.selection.selected = set(self.visible_ids)
        return self.selected_ids

    def clear_selection(self) -> None:
        self.selection.clear()

    # --- mutations ---

    def _require_actor(self) -> int:
        if self.actor_id is None:
            raise ValidationError("An acting admin is required for this action")
        return self.actor_id

    def _batch_ids(self, ids: Optional[Iterable[int]]) -> List[int]:
        ids = self.selected_ids if ids is None else list(dict.fromkeys(ids))
        if not ids:
            raise ValidationError("No records selected")
        return ids

    @staticmethod
    def _check_affected(affected: int, ids: List[int]) -> None:
        if affected != len(ids):
            raise StoreError(
                f"Only {affected} of {len(ids)} records could be changed; refresh and try again"
            )

    async def _in_transaction(self, work: Callable[[], Awaitable[Any]], changes_records: bool = True) -> Any:
        """
        Run store writes plus their audit entry, then commit. Nothing is kept on failure.
        """
        try:
            result = await work()
            await self.store.commit()
        except Exception:
            await self.store.rollback()
            raise
        if changes_records:
            self._generation += 1
        return result

    def _patch_local(self, ids: Iterable[int], patch: Dict[str, Any]) -> None:
        now = self.clock()
        targets = set(ids)
        self._records = [
            self.rederive(item.model_copy(update=patch), now) if item.id in targets else item
            for item in self._records
        ]
        self._refresh_view()

    def _remove_local(self, ids: Iterable[int]) -> None:
        removed = set(ids)
        self._records = [item for item in self._records if item.id not in removed]
        if self.selection.open_id in removed:
            self.selection.open_id = None
        self._refresh_view()

    async def batch_update(self, ids: Optional[Iterable[int]], patch: Dict[str, Any], verb: str) -> List[int]:
        actor_id = self._require_actor()
        ids = self._batch_ids(ids)

        async def work():
            affected = await self.store.update_many(ids, patch)
            self._check_affected(affected, ids)
            await self.audit.record(
                actor_id, verb, self.target_type, None, {"count": len(ids), self.ids_detail_key: ids}
            )

        await self._in_transaction(work)
        self._patch_local(ids, patch)
        logger.info("%s: admin=%s %s count=%s", self.target_type, actor_id, verb, len(ids))
        return ids

    async def batch_delete(self, ids: Optional[Iterable[int]] = None) -> List[int]:
        actor_id = self._require_actor()
        ids = self._batch_ids(ids)

        async def work():
            affected = await self.store.delete(ids)
            self._check_affected(affected, ids)
            await self.audit.record(
                actor_id, "batch_delete", self.target_type, None,
                {"count": len(ids), self.ids_detail_key: ids},
            )

        await self._in_transaction(work)
        # The record set changed identity; drop the whole selection
        self.selection.clear()
        self._remove_local(ids)
        logger.info("%s: admin=%s batch_delete count=%s", self.target_type, actor_id, len(ids))
        return ids

    async def export(self, ids: Optional[Iterable[int]] = None, export_type: str = "json") -> List[Any]:
        """
        Records to export (the given ids, or every loaded record) after logging the export.
        """
        actor_id = self._require_actor()
        if ids is None:
            items = self.records
        else:
            wanted = set(ids)
            items = [item for item in self._records if item.id in wanted]

        async def work():
            await self.audit.record(
                actor_id, "export", self.target_type, None,
                {"count": len(items), "export_type": export_type},
            )

        await self._in_transaction(work, changes_records=False)
        return items
