"""
Lifecycle hooks. Each :class:`HookEvent` maps to an ordered list of callbacks which are run one after the other, each
awaited before the next starts, so a callback can rely on the side effects of the callbacks registered before it.
Callbacks take ``(entity, params)`` and can be plain functions or coroutine functions.
"""
import typing as t
from enum import Enum

from pydantic import BaseModel, Field

from bavard_entity_store.utils import maybe_await


class HookEvent(str, Enum):
    """The points in the save/delete lifecycle that callbacks can be attached to."""

    BEFORE_SAVE = "beforeSave"
    BEFORE_CREATE = "beforeCreate"
    BEFORE_UPDATE = "beforeUpdate"

    # Reserved for field and relation machinery that needs its own side effects during a save.
    SAVE = "__save"
    CREATE = "__create"
    UPDATE = "__update"

    # Run after validation, right before and right after the driver call.
    PRE_PERSIST_SAVE = "__beforeSave"
    PRE_PERSIST_CREATE = "__beforeCreate"
    PRE_PERSIST_UPDATE = "__beforeUpdate"
    POST_PERSIST_SAVE = "__afterSave"
    POST_PERSIST_CREATE = "__afterCreate"
    POST_PERSIST_UPDATE = "__afterUpdate"

    AFTER_SAVE = "afterSave"
    AFTER_CREATE = "afterCreate"
    AFTER_UPDATE = "afterUpdate"

    DELETE = "delete"
    BEFORE_DELETE = "beforeDelete"
    AFTER_DELETE = "afterDelete"


HookCallback = t.Callable[[t.Any, "LifecycleParams"], t.Any]


class LifecycleParams(BaseModel):
    """
    Parameters of a save or delete call.

    Parameters
    ----------
    hooks : dict, optional
        Maps hook events (or their string names, e.g. ``"beforeSave"``) to ``False`` to skip them for this call. Events
        not present, or mapped to ``True``, run as normal. Applies to the internal ``__``-prefixed events as well.
    validation : bool, optional
        Set to ``False`` to skip validating the entity's fields.
    """

    hooks: t.Dict[HookEvent, bool] = Field(default_factory=dict)
    validation: bool = True

    def is_enabled(self, event: HookEvent) -> bool:
        return self.hooks.get(event) is not False


class SaveParams(LifecycleParams):
    pass


class DeleteParams(LifecycleParams):
    pass


class Hooks:
    """
    A registry of callbacks per :class:`HookEvent`. A ``parent`` registry's callbacks are run before this registry's
    own, which is how an entity subclass inherits the hooks of its base classes.
    """

    def __init__(self, parent: t.Optional["Hooks"] = None):
        self._parent = parent
        self._callbacks: t.Dict[HookEvent, t.List[HookCallback]] = {}

    def register(self, event: t.Union[HookEvent, str], callback: HookCallback) -> HookCallback:
        self._callbacks.setdefault(HookEvent(event), []).append(callback)
        return callback

    def callbacks(self, event: HookEvent) -> t.List[HookCallback]:
        inherited = self._parent.callbacks(event) if self._parent is not None else []
        return [*inherited, *self._callbacks.get(event, [])]

    async def fire(self, event: HookEvent, entity: t.Any, params: LifecycleParams):
        for callback in self.callbacks(event):
            await maybe_await(callback(entity, params))
