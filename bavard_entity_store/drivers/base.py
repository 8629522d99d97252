import typing as t
from abc import ABC, abstractmethod

from bavard_entity_store.hooks import DeleteParams
from bavard_entity_store.query import FindOptions


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


Record = t.Dict[str, t.Any]


class StorageDriver(ABC):
    """
    Abstract base class for the storage back-end an entity type persists to. Drivers deal in raw records (``dict``
    objects, as produced by :meth:`Entity.to_storage`); turning those into entity instances is done by the entity type.

    Parameters
    ----------
    read_only : bool
        Whether the driver is read only. Inheriting classes must call the :meth:`assert_can_edit` method in each
        mutating method in order for read only checks to be enforced.
    """

    def __init__(self, read_only: bool = False):
        self._read_only = read_only

    @abstractmethod
    def is_id(self, value: t.Any) -> bool:
        """Whether ``value`` has the shape of an id this back-end would assign."""
        pass

    @abstractmethod
    async def save(self, entity: "Entity", *, is_create: bool, is_update: bool):
        """
        Writes ``entity`` to the back-end. When ``is_create`` is set, the driver must assign the entity's ``id`` if it
        doesn't have one yet.
        """
        pass

    @abstractmethod
    async def delete(self, entity: "Entity", params: DeleteParams):
        pass

    @abstractmethod
    async def find(
        self, entity_cls: t.Type["Entity"], options: FindOptions
    ) -> t.Tuple[t.List[Record], t.Dict[str, t.Any]]:
        """
        Retrieves the records of ``entity_cls`` which satisfy ``options``, in the order of ``options.sort``. Returns
        the records along with a (possibly empty) ``dict`` of pagination metadata hints, which take precedence over the
        metadata computed by the caller.
        """
        pass

    @abstractmethod
    async def find_one(self, entity_cls: t.Type["Entity"], options: FindOptions) -> t.Optional[Record]:
        """Retrieves the first record satisfying ``options``, returning ``None`` if there isn't one."""
        pass

    @abstractmethod
    async def count(self, entity_cls: t.Type["Entity"], options: FindOptions) -> int:
        """Counts the records satisfying ``options.query``. Sort, limit and range are ignored."""
        pass

    def assert_can_edit(self):
        """Raises an assertion error if this driver is read only."""
        if self._read_only:
            raise AssertionError("storage driver is read only")
