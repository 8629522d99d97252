import typing as t
from collections import Counter

import requests

from bavard_entity_store.drivers.memory import InMemoryStorageDriver
from bavard_entity_store.entity import Entity
from bavard_entity_store.hooks import DeleteParams, HookEvent
from test.config import FIRESTORE_EMULATOR_HOST


class Product(Entity):
    name: str
    price: float
    in_stock: bool = True


# Inserted in this order, so ids ascend with the list index. Names are in alphabetical order. fig and date have the
# same price.
FRUITS = [
    ("apple", 1.5),
    ("banana", 0.25),
    ("cherry", 6.0),
    ("date", 3.0),
    ("elderberry", 8.0),
    ("fig", 3.0),
    ("grape", 2.0),
    ("honeydew", 4.5),
    ("kiwi", 0.75),
    ("lemon", 1.0),
    ("mango", 5.0),
    ("nectarine", 7.0),
]


class RecordingDriver(InMemoryStorageDriver):
    """An in-memory driver which counts its calls, logs them into ``log``, and can be made to fail."""

    def __init__(self, log: t.Optional[t.List[str]] = None, fail_on: t.Iterable[str] = ()):
        super().__init__()
        self.calls = Counter()
        self.log = log if log is not None else []
        self.fail_on = set(fail_on)
        self.last_save: t.Optional[t.Dict[str, bool]] = None

    async def save(self, entity, *, is_create: bool, is_update: bool):
        self._record("save")
        self.last_save = {"is_create": is_create, "is_update": is_update}
        await super().save(entity, is_create=is_create, is_update=is_update)

    async def delete(self, entity, params: DeleteParams):
        self._record("delete")
        await super().delete(entity, params)

    async def find(self, entity_cls, options):
        self._record("find")
        return await super().find(entity_cls, options)

    async def count(self, entity_cls, options):
        self._record("count")
        return await super().count(entity_cls, options)

    def _record(self, operation: str):
        self.calls[operation] += 1
        self.log.append(f"driver.{operation}")
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} failed: backend unavailable")


def record_all_hooks(entity: Entity, log: t.List[str]):
    """Registers a callback on ``entity`` for every hook event, which appends the event's name to ``log``."""
    for event in HookEvent:
        entity.add_hook_callback(event, lambda entity_, params, event_=event: log.append(event_.value))


async def create_test_data(entity_cls: t.Type[Product] = Product) -> t.List[Product]:
    data = []
    for name, price in FRUITS:
        product = entity_cls(name=name, price=price, in_stock=len(name) % 2 == 0)
        await product.save()
        data.append(product)
    return data


def clear_firestore():
    # Clear the test database.
    # Source: https://firebase.google.com/docs/emulator-suite/connect_firestore#clear_your_database_between_tests
    res = requests.delete(f"http://{FIRESTORE_EMULATOR_HOST}/emulator/v1/projects/test/databases/(default)/documents")
    res.raise_for_status()
