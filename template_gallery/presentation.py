from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from rich.console import Console

if TYPE_CHECKING:
    from .models import CardHandle


class Presenter(Protocol):
    """Receives card lifecycle events; the gallery never reads from it."""

    def render_new(self, handle: CardHandle, fields: dict[str, Any]) -> Any: ...

    def apply_update(self, handle: CardHandle, changed: dict[str, Any]) -> None: ...

    def remove(self, handle: CardHandle) -> None: ...

    def reorder(self, handles: list[CardHandle]) -> None: ...

    def thumbnail_ready(self, handle: CardHandle, image: Any | None) -> None: ...

    def summary(self, label: str, *, empty: bool) -> None: ...

    def status(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def navigate(self, coords: tuple[int, int, int, int]) -> None: ...

    def close(self) -> None: ...


class NullPresenter:
    def render_new(self, handle: CardHandle, fields: dict[str, Any]) -> Any:
        return None

    def apply_update(self, handle: CardHandle, changed: dict[str, Any]) -> None:
        return None

    def remove(self, handle: CardHandle) -> None:
        return None

    def reorder(self, handles: list[CardHandle]) -> None:
        return None

    def thumbnail_ready(self, handle: CardHandle, image: Any | None) -> None:
        return None

    def summary(self, label: str, *, empty: bool) -> None:
        return None

    def status(self, message: str) -> None:
        return None

    def error(self, message: str) -> None:
        return None

    def navigate(self, coords: tuple[int, int, int, int]) -> None:
        return None

    def close(self) -> None:
        return None


class ConsolePresenter(NullPresenter):
    """Prints card events with rich; used by the CLI."""

    def __init__(self, console: Console | None = None, *, quiet: bool = False) -> None:
        self.console = console or Console()
        self.quiet = quiet

    def _emit(self, message: str) -> None:
        if not self.quiet:
            self.console.print(message)

    def render_new(self, handle: CardHandle, fields: dict[str, Any]) -> Any:
        state = "enabled" if fields["enabled"] else "disabled"
        self._emit(
            f"[green]+[/green] {handle.identity}  [bold]{fields['display_name']}[/bold]  "
            f"{fields['coords']}  {fields['pixel_count']}  ({state})"
        )
        return handle.identity

    def apply_update(self, handle: CardHandle, changed: dict[str, Any]) -> None:
        parts = ", ".join(f"{name}={value}" for name, value in changed.items())
        self._emit(f"[yellow]~[/yellow] {handle.identity}  {parts}")

    def remove(self, handle: CardHandle) -> None:
        self._emit(f"[red]-[/red] {handle.identity}")

    def thumbnail_ready(self, handle: CardHandle, image: Any | None) -> None:
        if image is None:
            self._emit(f"[dim]thumbnail failed for {handle.identity}[/dim]")

    def summary(self, label: str, *, empty: bool) -> None:
        self._emit(f"[dim]{'No templates loaded' if empty else label}[/dim]")

    def status(self, message: str) -> None:
        self._emit(f"[green]{message}[/green]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]{message}[/red]")

    def navigate(self, coords: tuple[int, int, int, int]) -> None:
        tx, ty, px, py = coords
        self._emit(f"navigate -> Tile: {tx},{ty} Pixel: {px},{py}")
