"""
The :class:`Entity` base class: a pydantic model with a save/delete lifecycle, lifecycle hooks, and finders that
deduplicate results through the entity type's storage pool. E.g.

>>> class Product(Entity):
...     name: str
...     price: float
...
... registry = StorageRegistry()
... registry.register(Product, driver=InMemoryStorageDriver())
...
... product = Product(name="apple", price=0.5)
... await product.save()
... assert await Product.find_by_id(product.id) is product
"""
import typing as t
from enum import Enum

from loguru import logger
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

from bavard_entity_store.adapter import CustomEncoder, FieldsStorageAdapter
from bavard_entity_store.collection import Collection
from bavard_entity_store.drivers.base import Record, StorageDriver
from bavard_entity_store.errors import CannotDeleteWithoutId, EntityNotRegistered, ValidationFailed
from bavard_entity_store.hooks import DeleteParams, HookCallback, HookEvent, Hooks, LifecycleParams, SaveParams
from bavard_entity_store.pagination import FindParams, Paginator
from bavard_entity_store.pool import StoragePool
from bavard_entity_store.query import FindOptions, SortSpec, normalize_sort, with_tie_break


if t.TYPE_CHECKING:
    from bavard_entity_store.registry import RegisteredType, StorageRegistry


EntityT = t.TypeVar("EntityT", bound="Entity")
ParamsT = t.TypeVar("ParamsT", bound=LifecycleParams)


class Processing(str, Enum):
    """What an entity instance is currently doing. Guards against re-entrant saves and deletes."""

    IDLE = "idle"
    SAVING = "saving"
    DELETING = "deleting"


def _params(params_cls: t.Type[ParamsT], params: t.Optional[ParamsT], overrides: t.Dict[str, t.Any]) -> ParamsT:
    """
    Combines a params object with keyword arguments. Keyword arguments win, except that the ``hooks`` maps are merged,
    with the keyword entries winning for hooks set in both.
    """
    if params is None:
        return params_cls(**overrides)
    if not overrides:
        return params
    updates = params_cls(**overrides)
    merged = {**params.model_dump(), **updates.model_dump(exclude_unset=True)}
    merged["hooks"] = {**params.hooks, **updates.hooks}
    return params_cls.model_validate(merged)


class Entity(BaseModel):
    """
    Base class for persistable pydantic models. Subclasses declare their fields like any pydantic model, and must be
    registered with a :class:`~bavard_entity_store.registry.StorageRegistry` before they are saved or queried.

    An entity has an ``id``, which is unset until its first successful save, when the storage driver assigns it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    __storage_registry__: t.ClassVar[t.Optional["StorageRegistry"]] = None
    __entity_hooks__: t.ClassVar[Hooks] = Hooks()
    fields_storage_adapter: t.ClassVar[FieldsStorageAdapter] = FieldsStorageAdapter()

    id: t.Optional[str] = None

    _existing: bool = PrivateAttr(default=False)
    _processing: Processing = PrivateAttr(default=Processing.IDLE)
    # Field values as of the last time this entity was in sync with storage. `None` until then.
    _persisted_state: t.Optional[t.Dict[str, t.Any]] = PrivateAttr(default=None)
    _hooks: t.Optional[Hooks] = PrivateAttr(default=None)

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs):
        super().__pydantic_init_subclass__(**kwargs)
        # Each subclass gets its own hooks, which run after the ones inherited from its base classes.
        cls.__entity_hooks__ = Hooks(parent=cls.__entity_hooks__)

    # ----------------
    # State
    # ----------------

    def is_existing(self) -> bool:
        """Whether this instance has been persisted, or was loaded from storage."""
        return self._existing

    def set_existing(self, existing: bool = True):
        self._existing = existing
        return self

    def is_processing(self) -> bool:
        return self._processing is not Processing.IDLE

    def is_dirty(self) -> bool:
        """Whether any field differs from what was last written to or read from storage."""
        return self._persisted_state is None or self.model_dump() != self._persisted_state

    def clean(self):
        """Marks the current field values as being in sync with storage."""
        self._persisted_state = self.model_dump()
        return self

    @classmethod
    def get_fields(cls):
        return cls.model_fields

    async def validate_fields(self):
        """
        Re-validates the current field values against the model's schema, catching values assigned since construction.
        Raises :class:`ValidationFailed`.
        """
        try:
            type(self).model_validate(dict(self))
        except ValidationError as exc:
            raise ValidationFailed(
                f"{type(self).__name__} has {exc.error_count()} invalid field(s).", errors=exc.errors()
            ) from exc

    # ----------------
    # Hooks
    # ----------------

    @classmethod
    def on(cls, event: t.Union[HookEvent, str], callback: t.Optional[HookCallback] = None):
        """
        Registers ``callback`` to run for ``event`` on every instance of this class and its subclasses. Can be used as
        a decorator:

        >>> @Product.on(HookEvent.BEFORE_CREATE)
        ... async def stamp(product, params):
        ...     product.created_at = datetime.now(timezone.utc)
        """
        if callback is None:
            return lambda callback_: cls.__entity_hooks__.register(event, callback_)
        return cls.__entity_hooks__.register(event, callback)

    def add_hook_callback(self, event: t.Union[HookEvent, str], callback: HookCallback) -> HookCallback:
        """Registers ``callback`` to run for ``event`` on this instance only, after the class level callbacks."""
        if self._hooks is None:
            self._hooks = Hooks(parent=type(self).__entity_hooks__)
        return self._hooks.register(event, callback)

    async def hook(self, event: t.Union[HookEvent, str], params: LifecycleParams):
        event = HookEvent(event)
        if not params.is_enabled(event):
            return
        hooks = self._hooks if self._hooks is not None else type(self).__entity_hooks__
        await hooks.fire(event, self, params)

    async def _hook_phase(
        self, params: LifecycleParams, existing: bool, save: HookEvent, update: HookEvent, create: HookEvent
    ):
        await self.hook(save, params)
        await self.hook(update if existing else create, params)

    # ----------------
    # Lifecycle
    # ----------------

    async def save(self, params: t.Optional[SaveParams] = None, **kwargs):
        """
        Saves this entity. The storage driver is only called when the entity is dirty, but the hooks run on every
        save. A call made while this instance is already saving or deleting returns immediately and does nothing.

        Parameters
        ----------
        params : SaveParams, optional
            Parameters of the save. Can also be given as keyword arguments, e.g.
            ``save(validation=False, hooks={"afterSave": False})``.
        """
        params = _params(SaveParams, params, kwargs)
        if self.is_processing():
            logger.debug("ignoring save of {} {} while it is {}", type(self).__name__, self.id, self._processing.value)
            return

        self._processing = Processing.SAVING
        existing = self.is_existing()
        try:
            await self._hook_phase(
                params, existing, HookEvent.BEFORE_SAVE, HookEvent.BEFORE_UPDATE, HookEvent.BEFORE_CREATE
            )
            await self._hook_phase(params, existing, HookEvent.SAVE, HookEvent.UPDATE, HookEvent.CREATE)

            if params.validation:
                await self.validate_fields()

            await self._hook_phase(
                params,
                existing,
                HookEvent.PRE_PERSIST_SAVE,
                HookEvent.PRE_PERSIST_UPDATE,
                HookEvent.PRE_PERSIST_CREATE,
            )
            if self.is_dirty():
                await self.get_storage_driver().save(self, is_create=not existing, is_update=existing)
            await self._hook_phase(
                params,
                existing,
                HookEvent.POST_PERSIST_SAVE,
                HookEvent.POST_PERSIST_UPDATE,
                HookEvent.POST_PERSIST_CREATE,
            )

            self.set_existing()
            self.clean()
            self.get_storage_pool().add(self)
        finally:
            self._processing = Processing.IDLE

        await self._hook_phase(params, existing, HookEvent.AFTER_SAVE, HookEvent.AFTER_UPDATE, HookEvent.AFTER_CREATE)

    async def delete(self, params: t.Optional[DeleteParams] = None, **kwargs):
        """
        Deletes this entity from storage and evicts it from the storage pool. The in-memory instance stays usable.
        Raises :class:`CannotDeleteWithoutId` if the entity was never saved.
        """
        if not self.id:
            raise CannotDeleteWithoutId("Entity cannot be deleted because it was not previously saved.")
        params = _params(DeleteParams, params, kwargs)
        if self.is_processing():
            logger.debug(
                "ignoring delete of {} {} while it is {}", type(self).__name__, self.id, self._processing.value
            )
            return

        self._processing = Processing.DELETING
        try:
            await self.hook(HookEvent.DELETE, params)
            if params.validation:
                await self.validate_fields()
            await self.hook(HookEvent.BEFORE_DELETE, params)
            await self.get_storage_driver().delete(self, params)
            await self.hook(HookEvent.AFTER_DELETE, params)
            self.get_storage_pool().remove(self)
        finally:
            self._processing = Processing.IDLE

    # ----------------
    # Storage
    # ----------------

    @classmethod
    def get_storage_config(cls) -> "RegisteredType":
        if cls.__storage_registry__ is None:
            raise EntityNotRegistered(f"{cls.__name__} is not registered with a storage registry.")
        return cls.__storage_registry__.get(cls)

    @classmethod
    def get_storage_driver(cls) -> StorageDriver:
        return cls.get_storage_config().driver

    @classmethod
    def get_storage_pool(cls) -> StoragePool:
        return cls.get_storage_config().storage_pool

    @classmethod
    def is_id(cls, value: t.Any) -> bool:
        return cls.get_storage_driver().is_id(value)

    async def populate_from_storage(self, data: Record):
        self.fields_storage_adapter.from_storage(self, data)
        self.clean()
        return self

    def to_storage(self, custom_encoder: t.Optional[CustomEncoder] = None) -> Record:
        return self.fields_storage_adapter.to_storage(self, custom_encoder)

    # ----------------
    # Finders
    # ----------------

    @classmethod
    async def find(
        cls: t.Type[EntityT], params: t.Optional[FindParams] = None, **kwargs
    ) -> Collection[EntityT]:
        """
        Finds the entities matching ``query``. See :mod:`bavard_entity_store.pagination` for the paging parameters.

        Parameters
        ----------
        query : dict, optional
            Field values the entities must equal.
        sort : dict or list, optional
            E.g. ``{"price": -1}`` or ``[("price", "desc"), ("name", "asc")]``. Defaults to newest first.
        page, per_page : int, optional
            Offset style paging. ``per_page`` defaults to 10.
        limit : int, optional
            Cursor style paging page size. Defaults to 10 when only a cursor is given.
        before, after : str, optional
            Cursors from the ``cursors`` of a previous page's metadata. Only one may be given.
        total_count : bool, optional
            Also count all matching entities into the metadata's ``total_count``.
        """
        if params is None:
            params = FindParams(**kwargs)
        elif kwargs:
            # Keyword arguments take precedence over the params object.
            params = params.model_copy(update=FindParams(**kwargs).model_dump(exclude_unset=True))
        config = cls.get_storage_config()
        page = await Paginator(cls, config.driver, config.max_per_page).paginate(params)
        entities = [await cls._from_record(record) for record in page.records]
        return Collection(entities, params=page.params, meta=page.meta)

    @classmethod
    async def find_by_id(cls: t.Type[EntityT], id_: t.Any) -> t.Optional[EntityT]:
        """Finds the entity with ``id_``, returning the pooled instance when there is one."""
        if not id_ or not cls.is_id(id_):
            return None
        pooled = cls.get_storage_pool().get(cls, id_)
        if pooled is not None:
            return pooled
        return await cls.find_one(query={"id": id_})

    @classmethod
    async def find_by_ids(cls: t.Type[EntityT], ids: t.Iterable[t.Any]) -> t.List[EntityT]:
        """Finds the entities with ``ids``, in the same order. Ids with no entity are skipped."""
        found = []
        for id_ in ids:
            entity = await cls.find_by_id(id_)
            if entity is not None:
                found.append(entity)
        return found

    @classmethod
    async def find_one(
        cls: t.Type[EntityT], query: t.Optional[t.Dict[str, t.Any]] = None, sort: SortSpec = None
    ) -> t.Optional[EntityT]:
        options = FindOptions(query=query or {}, sort=with_tie_break(normalize_sort(sort)))
        record = await cls.get_storage_driver().find_one(cls, options)
        if record is None:
            return None
        return await cls._from_record(record)

    @classmethod
    async def count(cls, query: t.Optional[t.Dict[str, t.Any]] = None) -> int:
        return await cls.get_storage_driver().count(cls, FindOptions(query=query or {}))

    @classmethod
    async def _from_record(cls: t.Type[EntityT], record: Record) -> EntityT:
        pool = cls.get_storage_pool()
        pooled = pool.get(cls, record.get("id"))
        if pooled is not None:
            logger.debug("storage pool hit for {} {}", cls.__name__, pooled.id)
            return pooled
        entity = cls.model_construct()
        entity.set_existing()
        await entity.populate_from_storage(record)
        pool.add(entity)
        return entity
