"""
Page Document - the host tree PagePatch reads and writes.

Both the live browser (Selenium) and static HTML snapshots (BeautifulSoup)
implement the same protocol, so the synthesizer, reconciler and edit
controller never care which host they run against.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol, Tuple


class SelectorError(Exception):
    """Raised when a selector string cannot be evaluated by the host."""

    def __init__(self, selector: str, reason: str = ""):
        self.selector = selector
        self.reason = reason
        message = f"Invalid selector {selector!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


@dataclass
class NodeInfo:
    """Snapshot of the facts the selector synthesizer needs about a node."""
    tag: str
    attributes: List[Tuple[str, str]] = field(default_factory=list)  # in document order
    parent: Optional[Any] = None  # host node handle, None when detached
    is_root: bool = False  # body / html: climbing stops here
    same_tag_index: int = 1  # 1-based among same-tag siblings
    same_tag_count: int = 1

    def attribute(self, name: str) -> Optional[str]:
        for key, value in self.attributes:
            if key == name:
                return value
        return None

    @property
    def classes(self) -> List[str]:
        return (self.attribute("class") or "").split()


class MutationSubscription:
    """Handle returned by ``PageDocument.observe``; ``disconnect()`` ends the watch."""

    def __init__(self, on_disconnect: Optional[Callable[[], None]] = None):
        self._on_disconnect = on_disconnect
        self.active = True

    def disconnect(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_disconnect:
            self._on_disconnect()


# Events delivered by a host to the edit controller.

@dataclass
class ClickEvent:
    target: Any
    inside_editor: bool = False


@dataclass
class PointerDownEvent:
    target: Any = None
    inside_editor: bool = False


@dataclass
class KeyEvent:
    key: str
    ctrl: bool = False
    meta: bool = False


@dataclass
class EditorActionEvent:
    action: str  # "save" or "cancel"


class PageDocument(Protocol):
    """Document tree query capability plus the writes PagePatch needs."""

    def query_all(self, selector: str) -> List[Any]:
        """All matches in document order. Raises SelectorError if invalid."""
        ...

    def query(self, selector: str) -> Optional[Any]:
        ...

    def count(self, selector: str) -> int:
        ...

    def describe(self, node: Any) -> NodeInfo:
        ...

    def get_text(self, node: Any) -> str:
        ...

    def set_text(self, node: Any, text: str) -> None:
        ...

    def force_color_inherit(self, node: Any) -> None:
        ...

    def write_style(self, style_id: str, css: str) -> None:
        ...

    def remove_style(self, style_id: str) -> None:
        ...

    def has_style(self, style_id: str) -> bool:
        ...

    def reveal(self, class_name: str) -> None:
        ...

    def observe(self, callback: Callable[[], None]) -> MutationSubscription:
        ...

    def is_attached(self, node: Any) -> bool:
        ...

    def set_interception(self, enabled: bool) -> None:
        ...
