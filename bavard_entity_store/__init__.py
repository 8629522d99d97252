"""
Persistence for `Pydantic <https://pydantic-docs.helpmanual.io/>`_ entities, with a uniform asynchronous save/delete
lifecycle, lifecycle hooks, pluggable storage drivers, an identity map (the storage pool) which keeps one in-memory
instance per persisted record, and cursor based pagination. Comes with an in-memory storage driver, and a Google Cloud
Firestore driver behind the ``gcp`` extra.
"""
from bavard_entity_store.collection import Collection, Cursors, PaginationMeta
from bavard_entity_store.cursor import decode_cursor, encode_cursor
from bavard_entity_store.entity import Entity, Processing
from bavard_entity_store.errors import (
    CannotDeleteWithoutId,
    CursorConflict,
    EntityNotRegistered,
    EntityStoreError,
    InvalidCursor,
    MaxPerPageExceeded,
    StorageDriverMissing,
    ValidationFailed,
)
from bavard_entity_store.hooks import DeleteParams, HookEvent, SaveParams
from bavard_entity_store.pool import StoragePool
from bavard_entity_store.registry import StorageConfig, StorageRegistry
