"""
Driver-level query options. These are the backend-agnostic structures the pagination engine hands to a storage driver:
an equality filter, an ordered list of sort keys, an offset/limit window, and an optional range predicate selecting
the records strictly after a position in the sort order.
"""
import typing as t
from functools import cmp_to_key

from pydantic import BaseModel, ConfigDict, Field


ASC = 1
DESC = -1

_DIRECTION_NAMES = {"asc": ASC, "ascending": ASC, "desc": DESC, "descending": DESC}


class SortKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    direction: int = ASC

    @property
    def descending(self) -> bool:
        return self.direction == DESC

    def reversed(self) -> "SortKey":
        return SortKey(field=self.field, direction=-self.direction)


SortSpec = t.Union[None, t.Mapping[str, t.Any], t.Sequence[t.Union[SortKey, t.Tuple[str, t.Any]]]]


def parse_direction(direction: t.Any) -> int:
    if isinstance(direction, str):
        try:
            return _DIRECTION_NAMES[direction.lower()]
        except KeyError:
            raise ValueError(f"unknown sort direction {direction!r}") from None
    if direction in (ASC, DESC) and not isinstance(direction, bool):
        return int(direction)
    raise ValueError(f"unknown sort direction {direction!r}")


def normalize_sort(sort: SortSpec) -> t.List[SortKey]:
    """
    Accepts a sort given as a mapping (``{"price": -1}``), a sequence of ``(field, direction)`` pairs, or a sequence of
    :class:`SortKey` objects. Directions can be ``1``/``-1`` or ``"asc"``/``"desc"``.
    """
    if not sort:
        return []
    items = sort.items() if isinstance(sort, t.Mapping) else sort
    keys = []
    for item in items:
        if isinstance(item, SortKey):
            keys.append(item)
        else:
            field, direction = item
            keys.append(SortKey(field=field, direction=parse_direction(direction)))
    return keys


def with_tie_break(sort: t.List[SortKey], id_field: str = "id") -> t.List[SortKey]:
    """Appends the id field to ``sort`` so the order is total, unless the sort already includes it."""
    if any(key.field == id_field for key in sort):
        return list(sort)
    direction = sort[-1].direction if sort else DESC
    return [*sort, SortKey(field=id_field, direction=direction)]


def compare_values(a: t.Any, b: t.Any) -> int:
    # Missing values sort before everything else.
    if a is None or b is None:
        return (a is not None) - (b is not None)
    if a == b:
        return 0
    return -1 if a < b else 1


def compare_records(a: t.Mapping[str, t.Any], b: t.Mapping[str, t.Any], sort: t.Sequence[SortKey]) -> int:
    for key in sort:
        result = compare_values(a.get(key.field), b.get(key.field))
        if result != 0:
            return -result if key.descending else result
    return 0


def sort_records(records: t.Iterable[t.Mapping[str, t.Any]], sort: t.Sequence[SortKey]) -> t.List:
    return sorted(records, key=cmp_to_key(lambda a, b: compare_records(a, b, sort)))


class RangePredicate(BaseModel):
    """
    Selects the records positioned strictly after ``values`` (or at-or-after, if ``inclusive``) in the total order
    defined by ``sort``. ``values`` holds one value per sort key, in the same order.
    """

    sort: t.List[SortKey]
    values: t.List[t.Any]
    inclusive: bool = False

    def as_record(self) -> t.Dict[str, t.Any]:
        return {key.field: value for key, value in zip(self.sort, self.values)}

    def matches(self, record: t.Mapping[str, t.Any]) -> bool:
        result = compare_records(record, self.as_record(), self.sort)
        return result > 0 or (self.inclusive and result == 0)


class FindOptions(BaseModel):
    """What a storage driver is asked to retrieve."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    query: t.Dict[str, t.Any] = Field(default_factory=dict)
    sort: t.List[SortKey] = Field(default_factory=list)
    offset: int = 0
    limit: t.Optional[int] = None
    range: t.Optional[RangePredicate] = None
