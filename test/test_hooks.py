import asyncio
from unittest import IsolatedAsyncioTestCase, TestCase

from pydantic import ValidationError

from bavard_entity_store.hooks import HookEvent, Hooks, SaveParams


class TestSaveParams(TestCase):
    def test_hooks_are_enabled_by_default(self):
        params = SaveParams()
        self.assertTrue(params.validation)
        for event in HookEvent:
            self.assertTrue(params.is_enabled(event))

    def test_can_disable_hooks_by_name_or_event(self):
        params = SaveParams(
            hooks={"beforeSave": False, HookEvent.AFTER_CREATE: False, "__save": False, "afterSave": True}
        )
        self.assertFalse(params.is_enabled(HookEvent.BEFORE_SAVE))
        self.assertFalse(params.is_enabled(HookEvent.AFTER_CREATE))
        self.assertFalse(params.is_enabled(HookEvent.SAVE))
        self.assertTrue(params.is_enabled(HookEvent.AFTER_SAVE))
        self.assertTrue(params.is_enabled(HookEvent.BEFORE_CREATE))

    def test_unknown_hook_names_are_rejected(self):
        with self.assertRaises(ValidationError):
            SaveParams(hooks={"beforeLunch": False})


class TestHooks(IsolatedAsyncioTestCase):
    async def test_runs_callbacks_in_registration_order(self):
        hooks = Hooks()
        calls = []

        async def slow(entity, params):
            await asyncio.sleep(0.01)
            calls.append("slow")

        def fast(entity, params):
            calls.append("fast")

        hooks.register(HookEvent.BEFORE_SAVE, slow)
        hooks.register("beforeSave", fast)
        await hooks.fire(HookEvent.BEFORE_SAVE, object(), SaveParams())
        # The second callback waits for the first one to finish, even though the first one suspends.
        self.assertEqual(calls, ["slow", "fast"])

    async def test_unregistered_event_is_noop(self):
        hooks = Hooks()
        hooks.register(HookEvent.AFTER_SAVE, lambda entity, params: None)
        self.assertEqual(hooks.callbacks(HookEvent.BEFORE_SAVE), [])
        await hooks.fire(HookEvent.BEFORE_SAVE, object(), SaveParams())

    async def test_parent_callbacks_run_first(self):
        calls = []
        parent = Hooks()
        child = Hooks(parent=parent)
        child.register(HookEvent.DELETE, lambda entity, params: calls.append("child"))
        parent.register(HookEvent.DELETE, lambda entity, params: calls.append("parent"))
        await child.fire(HookEvent.DELETE, object(), SaveParams())
        self.assertEqual(calls, ["parent", "child"])
        # The parent doesn't see its children's callbacks.
        self.assertEqual(len(parent.callbacks(HookEvent.DELETE)), 1)

    async def test_callbacks_receive_entity_and_params(self):
        hooks = Hooks()
        received = []
        hooks.register(HookEvent.AFTER_SAVE, lambda entity, params: received.append((entity, params)))
        entity, params = object(), SaveParams(validation=False)
        await hooks.fire(HookEvent.AFTER_SAVE, entity, params)
        self.assertEqual(len(received), 1)
        self.assertIs(received[0][0], entity)
        self.assertIs(received[0][1], params)

    async def test_errors_propagate_and_stop_the_chain(self):
        hooks = Hooks()
        calls = []

        def fail(entity, params):
            raise RuntimeError("nope")

        hooks.register(HookEvent.BEFORE_DELETE, fail)
        hooks.register(HookEvent.BEFORE_DELETE, lambda entity, params: calls.append("after fail"))
        with self.assertRaises(RuntimeError):
            await hooks.fire(HookEvent.BEFORE_DELETE, object(), SaveParams())
        self.assertEqual(calls, [])
