"""
The pagination engine. Turns the parameters of a find into driver query options, and the driver's results into a page
of raw records plus :class:`~bavard_entity_store.collection.PaginationMeta`.

Two styles are supported:

- **Offset style** (``page``, ``per_page``), for simple listing.
- **Cursor style** (``limit``, ``before``, ``after``), which stays stable under concurrent writes. Results are ordered
  by ``sort`` with the record ``id`` as the final tie-breaker, so every record has a unique position, and a cursor
  encodes the position of a record. ``after`` selects the records strictly following that position, ``before`` the
  ones strictly preceding it.

A find without any of those parameters returns every matching record. Without a ``sort``, records are ordered by id,
newest first.
"""
import typing as t

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from bavard_entity_store.collection import Cursors, PaginationMeta
from bavard_entity_store.cursor import decode_cursor, encode_cursor
from bavard_entity_store.drivers.base import Record, StorageDriver
from bavard_entity_store.errors import CursorConflict, InvalidCursor, MaxPerPageExceeded
from bavard_entity_store.query import DESC, FindOptions, RangePredicate, SortKey, normalize_sort, with_tie_break


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


DEFAULT_PER_PAGE = 10
ID_FIELD = "id"


class FindParams(BaseModel):
    """
    The parameters a find accepts. ``page``, ``per_page`` and ``limit`` are deliberately loosely typed since they
    often come straight from query strings; they are normalized by the engine.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    query: t.Dict[str, t.Any] = Field(default_factory=dict)
    sort: t.Any = None
    page: t.Any = None
    per_page: t.Any = None
    limit: t.Any = None
    before: t.Optional[str] = None
    after: t.Optional[str] = None
    total_count: bool = False

    @property
    def is_cursor_style(self) -> bool:
        return self.limit is not None or self.before is not None or self.after is not None

    @property
    def is_offset_style(self) -> bool:
        return self.page is not None or self.per_page is not None


def _to_int(value: t.Any) -> t.Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def normalize_page(page: t.Any) -> int:
    """Coerces ``page`` to an integer of at least 1. Anything that isn't a positive integer becomes 1."""
    page = _to_int(page)
    if page is None or page < 1:
        return 1
    return page


def normalize_per_page(per_page: t.Any, max_per_page: int) -> int:
    """
    Coerces ``per_page`` to a positive integer, defaulting to :data:`DEFAULT_PER_PAGE`. Raises
    :class:`MaxPerPageExceeded` if it is above ``max_per_page``; it is never silently clamped.
    """
    per_page = _to_int(per_page)
    if per_page is None or per_page <= 0:
        return DEFAULT_PER_PAGE
    if per_page > max_per_page:
        raise MaxPerPageExceeded(max_per_page)
    return per_page


def cursor_for(record: Record, sort: t.Sequence[SortKey]) -> str:
    return encode_cursor((key.field, record.get(key.field)) for key in sort)


class Page(t.NamedTuple):
    records: t.List[Record]
    meta: PaginationMeta
    params: t.Dict[str, t.Any]


class Paginator:
    """
    Runs finds for one entity type against its storage driver.

    Parameters
    ----------
    entity_cls : Entity type
        The entity type being queried. Passed through to the driver.
    driver : StorageDriver
        The driver to query.
    max_per_page : int
        The largest ``per_page`` or ``limit`` a find may ask for.
    """

    def __init__(self, entity_cls: t.Type["Entity"], driver: StorageDriver, max_per_page: int):
        self.entity_cls = entity_cls
        self.driver = driver
        self.max_per_page = max_per_page

    async def paginate(self, params: FindParams) -> Page:
        sort = normalize_sort(params.sort) or [SortKey(field=ID_FIELD, direction=DESC)]
        if params.is_cursor_style:
            page = await self._paginate_by_cursor(params, with_tie_break(sort, ID_FIELD))
        elif params.is_offset_style:
            page = await self._paginate_by_offset(params, sort)
        else:
            records, hints = await self.driver.find(self.entity_cls, FindOptions(query=params.query, sort=sort))
            page = Page(records, self._meta(hints), params.model_dump())

        if params.total_count:
            # Never inferred from the page; always a separate count over the same filter.
            page.meta.total_count = await self.driver.count(self.entity_cls, FindOptions(query=params.query))
        return page

    async def _paginate_by_offset(self, params: FindParams, sort: t.List[SortKey]) -> Page:
        page = normalize_page(params.page)
        per_page = normalize_per_page(params.per_page, self.max_per_page)
        options = FindOptions(query=params.query, sort=sort, offset=(page - 1) * per_page, limit=per_page + 1)
        records, hints = await self.driver.find(self.entity_cls, options)
        has_next_page = len(records) > per_page
        meta = self._meta(hints, has_next_page=has_next_page, has_previous_page=page > 1)
        return Page(records[:per_page], meta, {**params.model_dump(), "page": page, "per_page": per_page})

    async def _paginate_by_cursor(self, params: FindParams, sort: t.List[SortKey]) -> Page:
        if params.before is not None and params.after is not None:
            raise CursorConflict("Only one of the `before` and `after` cursors can be used at a time.")
        limit = normalize_per_page(params.limit, self.max_per_page)
        backward = params.before is not None
        cursor = params.before if backward else params.after
        position = self._decode(cursor, sort) if cursor is not None else None

        # Paging backward walks the reversed order from the cursor, then flips the page back around.
        fetch_sort = [key.reversed() for key in sort] if backward else sort
        options = FindOptions(
            query=params.query,
            sort=fetch_sort,
            # One extra record tells whether there is more in the fetch direction, without a second query.
            limit=limit + 1,
            range=RangePredicate(sort=fetch_sort, values=position) if position is not None else None,
        )
        records, hints = await self.driver.find(self.entity_cls, options)
        hints = hints or {}
        has_more = len(records) > limit
        records = records[:limit]
        if backward:
            records.reverse()

        # Whether anything lies on the other side of the cursor, i.e. at or beyond it going the opposite way.
        has_beyond = False
        if position is not None:
            probe_sort = [key.reversed() for key in fetch_sort]
            probe = RangePredicate(sort=probe_sort, values=position, inclusive=True)
            has_beyond = await self._exists(params.query, probe)

        has_next_page, has_previous_page = (has_beyond, has_more) if backward else (has_more, has_beyond)
        # Driver hints are merged before the cursors are derived, so a hinted page always comes with its cursor.
        has_next_page = hints.get("has_next_page", has_next_page)
        has_previous_page = hints.get("has_previous_page", has_previous_page)
        cursors = Cursors(
            next=cursor_for(records[-1], sort) if records and has_next_page else None,
            previous=cursor_for(records[0], sort) if records and has_previous_page else None,
        )
        meta = self._meta(
            hints, cursors=cursors, has_next_page=has_next_page, has_previous_page=has_previous_page
        )
        return Page(records, meta, {**params.model_dump(), "limit": limit})

    async def _exists(self, query: t.Dict[str, t.Any], predicate: RangePredicate) -> bool:
        options = FindOptions(query=query, sort=predicate.sort, limit=1, range=predicate)
        records, _ = await self.driver.find(self.entity_cls, options)
        return len(records) > 0

    @staticmethod
    def _decode(cursor: str, sort: t.List[SortKey]) -> t.List[t.Any]:
        key = decode_cursor(cursor)
        fields = [field for field, _ in key]
        expected = [sort_key.field for sort_key in sort]
        if fields != expected:
            logger.debug("cursor fields {} do not match sort fields {}", fields, expected)
            raise InvalidCursor(f"cursor was made for a query sorted by {fields}, not {expected}")
        return [value for _, value in key]

    @staticmethod
    def _meta(hints: t.Dict[str, t.Any], **computed) -> PaginationMeta:
        # Hints from the driver take precedence over what was computed here.
        meta = PaginationMeta(**computed).model_dump()
        meta.update(hints or {})
        return PaginationMeta.model_validate(meta)
