import typing as t

from loguru import logger


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


class StoragePool:
    """
    An identity map from ``(entity type, id)`` to the single in-memory instance representing that record. Finders
    consult it before building new instances, so one unit of work never holds two copies of the same record.

    The pool has no eviction policy other than explicit removal. It is meant to live as long as one logical unit of
    work (e.g. one request). Create a fresh pool per scope, either by configuring a pool factory on the entity type or
    by calling :meth:`~bavard_entity_store.registry.StorageRegistry.reset_pools`. Not safe for concurrent mutation
    from multiple threads.
    """

    def __init__(self):
        # Instances can be resolved via `self._pool[entity_type_name][id]`.
        self._pool: t.Dict[str, t.Dict[t.Any, "Entity"]] = {}

    def get(self, entity_cls: t.Type["Entity"], id_: t.Any) -> t.Optional["Entity"]:
        return self._pool.get(self._namespace(entity_cls), {}).get(id_)

    def add(self, entity: "Entity") -> "StoragePool":
        """Adds ``entity`` to the pool, replacing any instance previously pooled under the same id."""
        if entity.id is None:
            raise ValueError("cannot add an entity without an id to the storage pool")
        self._pool.setdefault(self._namespace(type(entity)), {})[entity.id] = entity
        return self

    def has(self, entity: "Entity") -> bool:
        return entity.id is not None and self.get(type(entity), entity.id) is not None

    def remove(self, entity: "Entity") -> "StoragePool":
        namespace = self._pool.get(self._namespace(type(entity)))
        if namespace is not None:
            namespace.pop(entity.id, None)
        return self

    def clear(self):
        logger.debug("clearing storage pool with {} entities", len(self))
        self._pool = {}

    def __len__(self) -> int:
        return sum(len(namespace) for namespace in self._pool.values())

    @staticmethod
    def _namespace(entity_cls: t.Type["Entity"]) -> str:
        return f"{entity_cls.__module__}.{entity_cls.__qualname__}"
