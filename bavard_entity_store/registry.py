"""
Per entity type storage configuration. An entity type must be registered with a :class:`StorageRegistry` before it can
be saved, deleted or queried, e.g.

>>> registry = StorageRegistry()
... registry.register(Product, driver=InMemoryStorageDriver(), max_per_page=50)

Both the driver and the storage pool can be given as an instance, or as a factory which takes the entity type and
returns the instance.
"""
import typing as t

from loguru import logger
from pydantic import BaseModel, ConfigDict

from bavard_entity_store.drivers.base import StorageDriver
from bavard_entity_store.errors import EntityNotRegistered, StorageDriverMissing
from bavard_entity_store.pool import StoragePool


if t.TYPE_CHECKING:
    from bavard_entity_store.entity import Entity


DEFAULT_MAX_PER_PAGE = 100

DriverOrFactory = t.Union[StorageDriver, t.Callable[[t.Type["Entity"]], StorageDriver]]
PoolOrFactory = t.Union[StoragePool, t.Callable[[t.Type["Entity"]], StoragePool]]


class StorageConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    driver: t.Optional[t.Any] = None
    storage_pool: t.Optional[t.Any] = None
    max_per_page: t.Optional[int] = None


class RegisteredType:
    """The resolved storage configuration of one entity type."""

    def __init__(self, entity_cls: t.Type["Entity"], config: StorageConfig):
        self.entity_cls = entity_cls
        self.config = config
        self.driver = self._resolve_driver(config.driver)
        self.storage_pool = self._make_pool()
        self.max_per_page = config.max_per_page or DEFAULT_MAX_PER_PAGE

    def reset_pool(self):
        if isinstance(self.config.storage_pool, StoragePool):
            # A shared pool instance was configured, so empty it rather than swap it out.
            self.config.storage_pool.clear()
        else:
            self.storage_pool = self._make_pool()

    def _resolve_driver(self, driver: t.Optional[DriverOrFactory]) -> StorageDriver:
        if driver is None:
            raise StorageDriverMissing(f"Storage driver missing for {self.entity_cls.__name__}.")
        if not isinstance(driver, StorageDriver):
            driver = driver(self.entity_cls)
        if not isinstance(driver, StorageDriver):
            raise TypeError(f"driver factory for {self.entity_cls.__name__} returned {type(driver)}")
        return driver

    def _make_pool(self) -> StoragePool:
        pool = self.config.storage_pool
        if pool is None:
            return StoragePool()
        if not isinstance(pool, StoragePool):
            pool = pool(self.entity_cls)
        if not isinstance(pool, StoragePool):
            raise TypeError(f"storage pool factory for {self.entity_cls.__name__} returned {type(pool)}")
        return pool


class StorageRegistry:
    """Maps entity types to their storage configuration."""

    def __init__(self):
        self._types: t.Dict[t.Type["Entity"], RegisteredType] = {}

    def register(
        self, entity_cls: t.Type["Entity"], config: t.Optional[StorageConfig] = None, **kwargs
    ) -> RegisteredType:
        """
        Registers ``entity_cls``. Configuration can be passed as a :class:`StorageConfig` or as its keyword arguments.
        Raises :class:`StorageDriverMissing` if no driver is configured.
        """
        if config is None:
            config = StorageConfig(**kwargs)
        registered = RegisteredType(entity_cls, config)
        self._types[entity_cls] = registered
        entity_cls.__storage_registry__ = self
        logger.info(
            "registered {} with {} (max {} per page)",
            entity_cls.__name__,
            type(registered.driver).__name__,
            registered.max_per_page,
        )
        return registered

    def get(self, entity_cls: t.Type["Entity"]) -> RegisteredType:
        """Returns the configuration of ``entity_cls``, or of its closest registered base class."""
        for cls in entity_cls.__mro__:
            if cls in self._types:
                return self._types[cls]
        raise EntityNotRegistered(f"{entity_cls.__name__} is not registered with a storage registry.")

    def is_registered(self, entity_cls: t.Type["Entity"]) -> bool:
        return any(cls in self._types for cls in entity_cls.__mro__)

    def reset_pools(self):
        """Starts a new unit of work by giving every registered type an empty storage pool."""
        for registered in self._types.values():
            registered.reset_pool()
        logger.info("reset storage pools of {} entity types", len(self._types))

    def __contains__(self, entity_cls) -> bool:
        return self.is_registered(entity_cls)
