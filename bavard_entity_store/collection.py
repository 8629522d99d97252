import typing as t
from collections.abc import Sequence

from pydantic import BaseModel, Field


EntityT = t.TypeVar("EntityT")


class Cursors(BaseModel):
    next: t.Optional[str] = None
    previous: t.Optional[str] = None


class PaginationMeta(BaseModel):
    """
    Navigation metadata of one page of results. ``total_count`` is only set when it was explicitly requested, since
    computing it takes a separate count query.
    """

    cursors: Cursors = Field(default_factory=Cursors)
    has_next_page: bool = False
    has_previous_page: bool = False
    total_count: t.Optional[int] = None


class Collection(Sequence, t.Generic[EntityT]):
    """
    The ordered entities returned by a find, along with the parameters the find was made with and its pagination
    metadata. Read only once constructed.
    """

    def __init__(
        self,
        entities: t.Iterable[EntityT] = (),
        *,
        params: t.Optional[t.Dict[str, t.Any]] = None,
        meta: t.Optional[PaginationMeta] = None,
    ):
        self._entities: t.Tuple[EntityT, ...] = tuple(entities)
        self._params = dict(params or {})
        self._meta = meta if meta is not None else PaginationMeta()

    def get_meta(self) -> PaginationMeta:
        return self._meta

    def get_params(self) -> t.Dict[str, t.Any]:
        return dict(self._params)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return list(self._entities[index])
        return self._entities[index]

    def __len__(self) -> int:
        return len(self._entities)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({list(self._entities)!r}, meta={self._meta!r})"
