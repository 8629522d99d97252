import typing as t
from datetime import datetime, timedelta, timezone
from enum import Enum
from unittest import IsolatedAsyncioTestCase

from bavard_entity_store.drivers.memory import InMemoryStorageDriver
from bavard_entity_store.entity import Entity
from bavard_entity_store.hooks import DeleteParams
from bavard_entity_store.query import ASC, DESC, FindOptions, RangePredicate, SortKey
from bavard_entity_store.registry import StorageRegistry
from test.utils import Product, create_test_data


class Color(str, Enum):
    RED = "red"
    GREEN = "green"


class Event(Entity):
    name: str
    color: Color
    happened_at: datetime
    tags: t.List[str] = []


class TestInMemoryStorageDriver(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.driver = InMemoryStorageDriver()
        self.registry = StorageRegistry()
        self.registry.register(Product, driver=self.driver)
        self.registry.register(Event, driver=self.driver)

    async def test_assigns_increasing_ids(self):
        data = await create_test_data()
        ids = [product.id for product in data]
        self.assertEqual(ids, sorted(ids))
        self.assertEqual(len(set(ids)), len(ids))
        for id_ in ids:
            self.assertTrue(self.driver.is_id(id_))
            self.assertEqual(len(id_), 24)

    def test_is_id(self):
        self.assertTrue(self.driver.is_id("0" * 23 + "1"))
        self.assertFalse(self.driver.is_id("0" * 23 + "g"))
        self.assertFalse(self.driver.is_id("0" * 25))
        self.assertFalse(self.driver.is_id(""))
        self.assertFalse(self.driver.is_id(None))
        self.assertFalse(self.driver.is_id(1))

    async def test_find(self):
        data = await create_test_data()
        records, hints = await self.driver.find(Product, FindOptions(query={"in_stock": True}))
        self.assertEqual(hints, {})
        self.assertEqual([r["name"] for r in records], ["banana", "cherry", "date", "elderberry", "honeydew", "kiwi"])

        sort = [SortKey(field="price", direction=DESC), SortKey(field="id", direction=DESC)]
        records, _ = await self.driver.find(Product, FindOptions(sort=sort, offset=2, limit=3))
        self.assertEqual([r["name"] for r in records], ["cherry", "mango", "honeydew"])

        # Strictly after fig in (price desc, id desc) order, so date is next even though it has the same price.
        fig = data[5]
        after_fig = RangePredicate(sort=sort, values=[fig.price, fig.id])
        records, _ = await self.driver.find(Product, FindOptions(sort=sort, range=after_fig, limit=2))
        self.assertEqual([r["name"] for r in records], ["date", "grape"])
        at_fig = RangePredicate(sort=sort, values=[fig.price, fig.id], inclusive=True)
        records, _ = await self.driver.find(Product, FindOptions(sort=sort, range=at_fig, limit=2))
        self.assertEqual([r["name"] for r in records], ["fig", "date"])

    async def test_find_returns_copies(self):
        await create_test_data()
        records, _ = await self.driver.find(Product, FindOptions(limit=1))
        records[0]["name"] = "changed"
        records, _ = await self.driver.find(Product, FindOptions(limit=1))
        self.assertEqual(records[0]["name"], "apple")

    async def test_find_one_and_count(self):
        data = await create_test_data()
        record = await self.driver.find_one(Product, FindOptions(query={"id": data[3].id}))
        self.assertEqual(record["name"], "date")
        self.assertIsNone(await self.driver.find_one(Product, FindOptions(query={"name": "durian"})))
        cheapest = await self.driver.find_one(Product, FindOptions(sort=[SortKey(field="price", direction=ASC)]))
        self.assertEqual(cheapest["name"], "banana")

        self.assertEqual(await self.driver.count(Product, FindOptions()), 12)
        self.assertEqual(await self.driver.count(Product, FindOptions(query={"price": 3.0})), 2)
        # Types are stored separately.
        self.assertEqual(await self.driver.count(Event, FindOptions()), 0)

    async def test_delete(self):
        data = await create_test_data()
        await self.driver.delete(data[0], DeleteParams())
        self.assertEqual(await self.driver.count(Product, FindOptions()), 11)
        self.assertIsNone(await self.driver.find_one(Product, FindOptions(query={"id": data[0].id})))
        # Deleting something which isn't stored is fine.
        await self.driver.delete(data[0], DeleteParams())

    async def test_clear(self):
        await create_test_data()
        self.driver.clear()
        self.assertEqual(await self.driver.count(Product, FindOptions()), 0)

    async def test_read_only(self):
        read_only_driver = InMemoryStorageDriver(read_only=True)
        registry = StorageRegistry()
        registry.register(Product, driver=read_only_driver)
        # Should be able to query, but not edit in any way.
        self.assertEqual(await read_only_driver.count(Product, FindOptions()), 0)
        self.assertIsNone(await Product.find_by_id("0" * 24))
        apple = Product(name="apple", price=0.5)
        with self.assertRaises(AssertionError):
            await apple.save()
        self.assertFalse(apple.is_existing())
        apple.id = "0" * 24
        with self.assertRaises(AssertionError):
            await read_only_driver.delete(apple, DeleteParams())

    async def test_storage_representation(self):
        now = datetime.now(timezone.utc)
        event = Event(name="launch", color=Color.RED, happened_at=now, tags=["a", "b"])
        await event.save()

        records, _ = await self.driver.find(Event, FindOptions())
        # Stored as basic data types.
        self.assertEqual(
            records[0],
            {"id": event.id, "name": "launch", "color": "red", "happened_at": now.isoformat(), "tags": ["a", "b"]},
        )

        # And parsed back into field values when loaded.
        self.registry.reset_pools()
        loaded = await Event.find_by_id(event.id)
        self.assertIsNot(loaded, event)
        self.assertEqual(loaded.happened_at, now)
        self.assertIs(loaded.color, Color.RED)
        self.assertEqual(loaded, event)
        self.assertFalse(loaded.is_dirty())

    async def test_sorts_by_iso_datetimes(self):
        now = datetime.now(timezone.utc)
        for days in (3, 1, 2):
            await Event(name=f"{days} days ago", color=Color.GREEN, happened_at=now - timedelta(days=days)).save()
        events = await Event.find(sort={"happened_at": "asc"})
        self.assertEqual([e.name for e in events], ["3 days ago", "2 days ago", "1 days ago"])
