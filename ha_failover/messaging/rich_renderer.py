"""Rich console renderer for structured messages.

The renderer is responsible for ALL presentation decisions - the messages contain
only structured data with no formatting hints.
"""

from typing import Dict, Optional

from rich.console import Console
from rich.markup import escape as escape_rich_markup
from rich.panel import Panel
from rich.table import Table

from .bus import MessageBus
from .messages import AnyMessage, MessageLevel, StatusPanelMessage, TextMessage

DEFAULT_STYLES: Dict[MessageLevel, str] = {
    MessageLevel.ERROR: "bold red",
    MessageLevel.WARNING: "yellow",
    MessageLevel.SUCCESS: "green",
    MessageLevel.INFO: "white",
    MessageLevel.DEBUG: "dim",
}

LEVEL_PREFIXES: Dict[MessageLevel, str] = {
    MessageLevel.ERROR: "✗ ",
    MessageLevel.WARNING: "⚠ ",
    MessageLevel.SUCCESS: "✓ ",
    MessageLevel.INFO: "ℹ ",
    MessageLevel.DEBUG: "• ",
}


class RichConsoleRenderer:
    """Renders bus messages to a Rich console as they are emitted."""

    def __init__(
        self,
        bus: MessageBus,
        console: Optional[Console] = None,
        styles: Optional[Dict[MessageLevel, str]] = None,
    ) -> None:
        self._bus = bus
        self._console = console or Console()
        self._styles = styles or DEFAULT_STYLES.copy()
        self._running = False

    @property
    def console(self) -> Console:
        return self._console

    def start(self) -> None:
        """Subscribe to the bus and flush anything buffered before startup."""
        if self._running:
            return
        self._running = True
        for msg in self._bus.get_buffered_messages():
            self.render(msg)
        self._bus.clear_buffer()
        self._bus.subscribe(self.render)
        self._bus.mark_renderer_active()

    def stop(self) -> None:
        self._running = False
        self._bus.unsubscribe(self.render)
        self._bus.mark_renderer_inactive()

    def render(self, message: AnyMessage) -> None:
        """Render a message with error handling."""
        try:
            if isinstance(message, TextMessage):
                self._render_text(message)
            elif isinstance(message, StatusPanelMessage):
                self._render_status_panel(message)
            else:
                self._console.print(
                    f"[dim]Unknown message: {type(message).__name__}[/dim]"
                )
        except Exception as e:
            # Escape the error message to prevent nested markup errors
            safe_error = escape_rich_markup(str(e))
            self._console.print(f"[dim red]Render error: {safe_error}[/dim red]")

    def _render_text(self, msg: TextMessage) -> None:
        style = self._styles.get(msg.level, "white")
        prefix = LEVEL_PREFIXES.get(msg.level, "")
        safe_text = escape_rich_markup(msg.text)
        self._console.print(f"{prefix}{safe_text}", style=style)

    def _render_status_panel(self, msg: StatusPanelMessage) -> None:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        for key, value in msg.fields.items():
            table.add_row(escape_rich_markup(key), escape_rich_markup(value))
        self._console.print(
            Panel(table, title=escape_rich_markup(msg.title), border_style="blue")
        )
