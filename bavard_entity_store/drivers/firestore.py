import os
import typing as t
from datetime import datetime

from loguru import logger

from bavard_entity_store.utils import ImportExtraError


try:
    from google.auth.credentials import AnonymousCredentials, Credentials
    from google.cloud import firestore
    from google.cloud.firestore_v1.base_query import FieldFilter
except ImportError:
    raise ImportExtraError("gcp", __name__)

from bavard_entity_store.drivers.base import Record, StorageDriver
from bavard_entity_store.hooks import DeleteParams
from bavard_entity_store.query import FindOptions


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


class FirestoreStorageDriver(StorageDriver):
    """
    A Google Cloud Firestore storage driver. Each entity type should get its own collection, which is easiest done by
    registering the driver as a factory, e.g.

    >>> registry.register(Product, driver=lambda cls: FirestoreStorageDriver(cls.__name__.lower()))

    Range predicates map onto Firestore's native query cursors (``start_after``/``start_at``) over the query's
    ``order_by`` fields, so cursor pagination does not scan skipped records. Note that Firestore requires a composite
    index for queries combining equality filters with an ordering on other fields.
    """

    def __init__(
        self,
        collection_name: str,
        *,
        read_only=False,
        project: t.Optional[str] = None,
        credentials: t.Optional[Credentials] = None,
    ):
        super().__init__(read_only)
        if os.getenv("FIRESTORE_EMULATOR_HOST") is not None:
            # We are in a testing context. Make sure the client's default args
            # work in this emulator scenario.
            if credentials is None:
                credentials = AnonymousCredentials()
            if project is None:
                project = "test"
        self.collection = firestore.AsyncClient(project=project, credentials=credentials).collection(collection_name)

    def is_id(self, value: t.Any) -> bool:
        # Document ids are any non-empty strings without slashes.
        return isinstance(value, str) and len(value) > 0 and "/" not in value

    async def save(self, entity: "Entity", *, is_create: bool, is_update: bool):
        self.assert_can_edit()
        if is_create and entity.id is None:
            entity.id = self.collection.document().id
        # Don't convert `datetime` objects to strings when encoding, because firestore knows how to natively store them
        # as timestamp values.
        record = entity.to_storage(custom_encoder={datetime: lambda date: date})
        await self.collection.document(entity.id).set(record)
        logger.debug("firestore driver saved {}/{}", self.collection.id, entity.id)

    async def delete(self, entity: "Entity", params: DeleteParams):
        self.assert_can_edit()
        await self.collection.document(entity.id).delete()

    async def find(
        self, entity_cls: t.Type["Entity"], options: FindOptions
    ) -> t.Tuple[t.List[Record], t.Dict[str, t.Any]]:
        query = self._build_query(options)
        return [doc.to_dict() async for doc in query.stream()], {}

    async def find_one(self, entity_cls: t.Type["Entity"], options: FindOptions) -> t.Optional[Record]:
        query_ = options.query
        if set(query_.keys()) == {"id"}:
            # Lookups by id can go straight to the document.
            doc = await self.collection.document(query_["id"]).get()
            return doc.to_dict() if doc.exists else None
        records, _ = await self.find(entity_cls, options.model_copy(update={"limit": 1}))
        return records[0] if records else None

    async def count(self, entity_cls: t.Type["Entity"], options: FindOptions) -> int:
        query = self._build_query(FindOptions(query=options.query))
        results = await query.count(alias="total").get()
        return int(results[0][0].value)

    def _build_query(self, options: FindOptions):
        query = self.collection
        for field_name, value in options.query.items():
            query = query.where(filter=FieldFilter(field_name, "==", value))
        for key in options.sort:
            direction = firestore.Query.DESCENDING if key.descending else firestore.Query.ASCENDING
            query = query.order_by(key.field, direction=direction)
        if options.range is not None:
            # The range predicate is always built over the same sort keys the query is ordered by, which is what
            # Firestore cursors expect.
            values = list(options.range.values)
            query = query.start_at(values) if options.range.inclusive else query.start_after(values)
        if options.offset:
            query = query.offset(options.offset)
        if options.limit is not None:
            query = query.limit(options.limit)
        return query
