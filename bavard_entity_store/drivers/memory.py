import copy
import itertools
import re
import typing as t

from loguru import logger

from bavard_entity_store.drivers.base import Record, StorageDriver
from bavard_entity_store.hooks import DeleteParams
from bavard_entity_store.query import FindOptions, sort_records


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


class InMemoryStorageDriver(StorageDriver):
    r"""
    A simple in-memory storage driver. Useful for testing or other lightweight needs. Does not keep any indexes of
    non-primary key fields, so queries are :math:`\mathcal{O}(n \log n)`.

    Ids are 24 character hexadecimal strings that increase with insertion order, so sorting by id sorts by creation
    time. One driver instance can be shared by several entity types; each type's records are kept separately.
    """

    _id_pattern = re.compile(r"^[0-9a-f]{24}$")

    def __init__(self, read_only=False):
        super().__init__(read_only)
        # Records in the db can be resolved via `self._db[entity_type_name][id]`.
        self._db: t.Dict[str, t.Dict[str, Record]] = {}
        self._ids = itertools.count(1)

    def is_id(self, value: t.Any) -> bool:
        return isinstance(value, str) and self._id_pattern.match(value) is not None

    async def save(self, entity: "Entity", *, is_create: bool, is_update: bool):
        self.assert_can_edit()
        if is_create and entity.id is None:
            entity.id = self._new_id()
        record = entity.to_storage()
        self._table(type(entity))[entity.id] = record
        logger.debug("in-memory driver saved {} {}", type(entity).__name__, entity.id)

    async def delete(self, entity: "Entity", params: DeleteParams):
        self.assert_can_edit()
        self._table(type(entity)).pop(entity.id, None)

    async def find(
        self, entity_cls: t.Type["Entity"], options: FindOptions
    ) -> t.Tuple[t.List[Record], t.Dict[str, t.Any]]:
        records = [record for record in self._table(entity_cls).values() if self._matches(record, options.query)]
        if options.range is not None:
            records = [record for record in records if options.range.matches(record)]
        records = sort_records(records, options.sort)
        end = None if options.limit is None else options.offset + options.limit
        return [copy.deepcopy(record) for record in records[options.offset : end]], {}

    async def find_one(self, entity_cls: t.Type["Entity"], options: FindOptions) -> t.Optional[Record]:
        records, _ = await self.find(entity_cls, options.model_copy(update={"limit": 1}))
        return records[0] if records else None

    async def count(self, entity_cls: t.Type["Entity"], options: FindOptions) -> int:
        return sum(1 for record in self._table(entity_cls).values() if self._matches(record, options.query))

    def clear(self):
        self._db = {}

    def _table(self, entity_cls: t.Type["Entity"]) -> t.Dict[str, Record]:
        return self._db.setdefault(f"{entity_cls.__module__}.{entity_cls.__qualname__}", {})

    def _new_id(self) -> str:
        return f"{next(self._ids):024x}"

    @staticmethod
    def _matches(record: Record, where_equals: t.Mapping[str, t.Any]) -> bool:
        return all(record.get(k) == v for k, v in where_equals.items())
