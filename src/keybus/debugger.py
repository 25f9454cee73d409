"""Terminal inspector for live channels and declared keys."""

from __future__ import annotations

import logging
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen
from textual.timer import Timer
from textual.widgets import Button, Footer, Header, Input, OptionList, Static
from textual.widgets.option_list import Option

from .bus import EventBusSystem, get_event_bus
from .introspection import (
    PRIMITIVE_TYPES,
    DebuggerKeyInfo,
    KeyIndex,
    describe_channel,
    parse_payload,
)

LOGGER = logging.getLogger(__name__)


class ConfirmScreen(ModalScreen[bool]):
    """Yes/No modal; dismisses with ``True`` only on Yes."""

    CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: round $panel;
        background: $surface;
    }

    #confirm-actions {
        height: 3;
        align: right middle;
    }
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel", show=False)]

    def __init__(self, text: str) -> None:
        super().__init__()
        self._text = text

    def compose(self) -> ComposeResult:
        with Container(id="confirm-dialog"):
            yield Static(Text(self._text), id="confirm-body")
            with Horizontal(id="confirm-actions"):
                yield Button("Yes", id="confirm-yes", variant="error")
                yield Button("No", id="confirm-no", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self.dismiss(event.button.id == "confirm-yes")

    def action_cancel(self) -> None:
        self.dismiss(False)


class BusDebuggerApp(App[None]):
    """List declared keys, show who is subscribed and fire channels by hand."""

    TITLE = "EventBus Debugger"

    CSS = """
    #toolbar {
        height: 3;
    }

    #search {
        width: 1fr;
    }

    #key_list {
        width: 1fr;
    }

    #detail_pane {
        width: 1fr;
        padding: 0 1;
    }

    #key_detail {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("ctrl+r", "refresh_index", "Refresh index"),
        Binding("ctrl+l", "toggle_live", "Live"),
        Binding("ctrl+x", "clear_all", "Clear all"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        bus: EventBusSystem | None = None,
        index: KeyIndex | None = None,
        live_interval: float = 1.0,
    ) -> None:
        super().__init__()
        self.bus = bus or get_event_bus()
        self.index = index or KeyIndex()
        self.live_interval = live_interval
        self.live_mode = False
        self._live_timer: Timer | None = None
        self._option_keys: dict[str, DebuggerKeyInfo] = {}
        self._selected: DebuggerKeyInfo | None = None
        self.detail_text = "Select a key."

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="toolbar"):
            yield Input(placeholder="Filter keys", id="search")
            yield Button("Refresh Index", id="refresh_index")
            yield Button("Clear All Events", id="clear_all", variant="warning")
            yield Button("Live", id="live_toggle")
        with Horizontal(id="body"):
            yield OptionList(id="key_list")
            with Vertical(id="detail_pane"):
                yield Static(Text("Select a key."), id="key_detail")
                yield Input(placeholder="Test value", id="payload_input")
                yield Button("Execute", id="execute", variant="primary")
        yield Footer()

    def on_mount(self) -> None:
        self.populate_keys()

    @property
    def selected(self) -> DebuggerKeyInfo | None:
        return self._selected

    def select_key(self, key_value: str) -> DebuggerKeyInfo | None:
        self._selected = self.index.get(key_value)
        self.refresh_detail()
        return self._selected

    def populate_keys(self) -> None:
        """Rebuild the key list from the index, grouped by declaring type."""
        option_list = self.query_one("#key_list", OptionList)
        option_list.clear_options()
        search = self.query_one("#search", Input).value
        registered = self.bus.list_registered_channels()

        self._option_keys = {}
        options: list[Option] = []
        for group, infos in self.index.groups(search):
            options.append(Option(Text(group, style="bold"), disabled=True))
            for info in infos:
                option_id = f"key-{len(self._option_keys)}"
                self._option_keys[option_id] = info
                marker = "●" if info.key_value in registered else "○"
                options.append(
                    Option(
                        Text(f"  {marker} {info.key_value} <{info.friendly_type_name}>"),
                        id=option_id,
                    )
                )
        option_list.add_options(options)
        self.refresh_detail()

    def refresh_detail(self) -> None:
        if self._selected is None:
            self.detail_text = "Select a key."
        else:
            self.detail_text = describe_channel(self._selected, self.bus)
        self.query_one("#key_detail", Static).update(Text(self.detail_text))

    def execute_selected(self) -> bool:
        """Fire the selected key through the type-checked execute path."""
        info = self._selected
        if info is None:
            self.notify("Select a key first.", severity="warning")
            return False

        payload_type: Any = info.payload_type
        if payload_type is object:
            delivered = self.bus.try_execute_void(info.key)
        elif payload_type in PRIMITIVE_TYPES:
            raw = self.query_one("#payload_input", Input).value
            payload = parse_payload(raw, payload_type)
            if payload is None:
                self.notify(
                    f"Cannot parse {raw!r} as {info.friendly_type_name}.",
                    severity="warning",
                )
                return False
            delivered = self.bus.try_execute(info.key, payload_type, payload)
        else:
            delivered = self.bus.try_execute(info.key, payload_type)

        if delivered:
            self.notify(f"Executed {info.key_value}.")
        else:
            self.notify(f"{info.key_value} was not delivered.", severity="warning")
        self.refresh_detail()
        return delivered

    def on_option_list_option_highlighted(self, event: OptionList.OptionHighlighted) -> None:
        self._selected = self._option_keys.get(event.option_id or "")
        self.refresh_detail()

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        self._selected = self._option_keys.get(event.option_id or "")
        self.execute_selected()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "search":
            self.populate_keys()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "payload_input":
            self.execute_selected()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "execute":
            self.execute_selected()
        elif button_id == "refresh_index":
            self.action_refresh_index()
        elif button_id == "clear_all":
            self.action_clear_all()
        elif button_id == "live_toggle":
            self.action_toggle_live()

    def action_refresh_index(self) -> None:
        self.index.refresh()
        if self._selected is not None:
            self._selected = self.index.get(self._selected.key_value)
        self.populate_keys()

    def action_clear_all(self) -> None:
        def _on_result(confirmed: bool | None) -> None:
            if confirmed:
                LOGGER.info("Clearing all channels from the debugger")
                self.bus.unregister_all()
                self.populate_keys()

        self.push_screen(ConfirmScreen("Remove every registered event?"), _on_result)

    def action_toggle_live(self) -> None:
        self.live_mode = not self.live_mode
        if self.live_mode:
            self._live_timer = self.set_interval(self.live_interval, self._live_tick)
            self._live_tick()
        else:
            if self._live_timer is not None:
                self._live_timer.stop()
                self._live_timer = None
            self.sub_title = ""

    def _live_tick(self) -> None:
        channels = len(self.bus.list_registered_channels())
        self.sub_title = f"Live - {channels} registered channels"
        self.refresh_detail()
