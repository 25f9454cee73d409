"""Tests for the terminal inspector."""

from __future__ import annotations

import unittest

from sample_keys import CombatKeys, Damage, DemoKeys, ScoreKeys

from keybus.bus import EventBusSystem
from keybus.introspection import KeyIndex

try:
    from textual.widgets import Input

    from keybus.debugger import BusDebuggerApp
except ModuleNotFoundError:
    BusDebuggerApp = None  # type: ignore[assignment,misc]
    Input = None  # type: ignore[assignment]


@unittest.skipIf(BusDebuggerApp is None, "textual is not installed")
class BusDebuggerAppTests(unittest.IsolatedAsyncioTestCase):
    """Drive the inspector headlessly against a private bus."""

    def setUp(self) -> None:
        self.bus = EventBusSystem()
        self.index = KeyIndex(["sample_keys"])

    def _make_app(self) -> BusDebuggerApp:
        assert BusDebuggerApp is not None
        return BusDebuggerApp(bus=self.bus, index=self.index, live_interval=0.5)

    async def test_keys_are_listed_on_mount(self) -> None:
        app = self._make_app()
        async with app.run_test():
            listed = {info.key_value for info in app._option_keys.values()}
        self.assertIn("Score", listed)
        self.assertIn("Shutdown", listed)
        self.assertNotIn("", listed)

    async def test_execute_object_key(self) -> None:
        received: list[object] = []
        self.bus.register(DemoKeys.FirstKey, received.append)
        app = self._make_app()
        async with app.run_test():
            app.select_key("FirstKey")
            delivered = app.execute_selected()
        self.assertTrue(delivered)
        self.assertEqual(received, [None])

    async def test_execute_primitive_key_parses_input(self) -> None:
        received: list[int] = []
        self.bus.register(ScoreKeys.LIVES, received.append)
        app = self._make_app()
        async with app.run_test() as pilot:
            app.select_key("Lives")
            app.query_one("#payload_input", Input).value = "3"
            await pilot.pause()
            delivered = app.execute_selected()
        self.assertTrue(delivered)
        self.assertEqual(received, [3])

    async def test_unparsable_input_is_not_executed(self) -> None:
        received: list[int] = []
        self.bus.register(ScoreKeys.LIVES, received.append)
        app = self._make_app()
        async with app.run_test() as pilot:
            app.select_key("Lives")
            app.query_one("#payload_input", Input).value = "many"
            await pilot.pause()
            delivered = app.execute_selected()
        self.assertFalse(delivered)
        self.assertEqual(received, [])

    async def test_execute_custom_type_uses_default_payload(self) -> None:
        received: list[Damage] = []
        self.bus.register(CombatKeys.DAMAGE_TAKEN, received.append)
        app = self._make_app()
        async with app.run_test():
            app.select_key("DamageTaken")
            delivered = app.execute_selected()
        self.assertTrue(delivered)
        self.assertEqual(received, [Damage()])

    async def test_execute_without_selection(self) -> None:
        app = self._make_app()
        async with app.run_test():
            self.assertFalse(app.execute_selected())

    async def test_detail_shows_subscribers(self) -> None:
        received: list[float] = []
        self.bus.register(ScoreKeys.SCORE, received.append)
        app = self._make_app()
        async with app.run_test():
            info = app.select_key("Score")
            self.assertIsNotNone(info)
            detail = app.detail_text
        self.assertIn("Status: registered", detail)
        self.assertIn("Registered actions: 1", detail)

    async def test_live_toggle_updates_subtitle(self) -> None:
        self.bus.register(DemoKeys.FirstKey, lambda _: None)
        app = self._make_app()
        async with app.run_test():
            app.action_toggle_live()
            self.assertTrue(app.live_mode)
            self.assertEqual(app.sub_title, "Live - 1 registered channels")
            app.action_toggle_live()
            self.assertFalse(app.live_mode)
            self.assertEqual(app.sub_title, "")

    async def test_clear_all_after_confirmation(self) -> None:
        self.bus.register(DemoKeys.FirstKey, lambda _: None)
        app = self._make_app()
        async with app.run_test() as pilot:
            app.action_clear_all()
            await pilot.pause()
            await pilot.click("#confirm-yes")
            await pilot.pause()
        self.assertEqual(self.bus.list_registered_channels(), frozenset())


if __name__ == "__main__":
    unittest.main()
