"""
Edit Controller - user-driven edit sessions.

Owns the enabled flag and the single in-flight edit for one page
context. All state changes go through named transitions:

    IDLE --begin_edit--> EDITING --commit--> SAVING --> IDLE
                                 --cancel--> IDLE
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, TYPE_CHECKING
import logging

from pagepatch.core import messaging
from pagepatch.core.config import PagePatchConfig
from pagepatch.layers.sense.document import (
    ClickEvent,
    EditorActionEvent,
    KeyEvent,
    PointerDownEvent,
)
from pagepatch.layers.sense.selector import SelectorSynthesizer

if TYPE_CHECKING:
    from pagepatch.layers.action.reconciler import Reconciler
    from pagepatch.layers.sense.document import PageDocument
    from pagepatch.layers.storage.store import Override, OverrideStore

logger = logging.getLogger(__name__)


class EditState(Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"


class EditorSurface(Protocol):
    """The widget the user types the replacement text into."""

    def mount(self, target: Any, initial_text: str) -> None:
        ...

    def unmount(self) -> None:
        ...

    def current_value(self) -> str:
        ...


class MemoryEditor:
    """Editor surface without UI; the value is set programmatically."""

    def __init__(self):
        self.target: Any = None
        self.value = ""
        self.mounted = False
        self.mount_count = 0
        self.unmount_count = 0

    def mount(self, target: Any, initial_text: str) -> None:
        self.target = target
        self.value = initial_text
        self.mounted = True
        self.mount_count += 1

    def unmount(self) -> None:
        self.target = None
        self.mounted = False
        self.unmount_count += 1

    def current_value(self) -> str:
        return self.value


@dataclass
class EditSession:
    """The in-progress edit."""
    target: Any
    initial_text: str
    fallback_selector: str = ""
    torn_down: bool = False


class EditController:
    """
    Intercept clicks, run one edit at a time, persist and apply the result.

    Example:
        >>> controller = EditController(document, store, reconciler, editor=MemoryEditor())
        >>> controller.enable()
        >>> controller.handle_click(ClickEvent(target=node))
        True
        >>> await controller.commit("World")
    """

    def __init__(
        self,
        document: "PageDocument",
        store: "OverrideStore",
        reconciler: "Reconciler",
        editor: Optional[EditorSurface] = None,
        synthesizer: Optional[SelectorSynthesizer] = None,
        config: Optional[PagePatchConfig] = None,
    ):
        self.document = document
        self.store = store
        self.reconciler = reconciler
        self.editor = editor or MemoryEditor()
        self.config = config or PagePatchConfig()
        self.synthesizer = synthesizer or SelectorSynthesizer(document, self.config)

        self._enabled = False
        self._state = EditState.IDLE
        self._session: Optional[EditSession] = None

    @property
    def page_key(self) -> str:
        return self.reconciler.page_key

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def state(self) -> EditState:
        return self._state

    @property
    def session(self) -> Optional[EditSession]:
        return self._session

    def get_state(self) -> dict:
        return {"enabled": self._enabled}

    # ---- enable / disable -------------------------------------------------

    def enable(self) -> None:
        if self._enabled:
            return
        self._enabled = True
        self._set_interception(True)
        logger.info("[EditController] Edit mode enabled")

    def disable(self) -> None:
        if not self._enabled:
            return
        self._enabled = False
        self._set_interception(False)
        if self._state == EditState.EDITING:
            self.cancel()
        logger.info("[EditController] Edit mode disabled")

    def _set_interception(self, enabled: bool) -> None:
        try:
            self.document.set_interception(enabled)
        except Exception as e:
            logger.warning(f"[EditController] Could not toggle click interception: {e}")

    # ---- transitions ------------------------------------------------------

    def begin_edit(self, target: Any) -> bool:
        """IDLE -> EDITING. Returns False if an edit is already open."""
        if self._state != EditState.IDLE:
            return False

        try:
            initial_text = (self.document.get_text(target) or "").strip()
        except Exception as e:
            logger.warning(f"[EditController] Cannot read target text: {e}")
            return False

        self._session = EditSession(
            target=target,
            initial_text=initial_text,
            fallback_selector=self.synthesizer.synthesize(target),
        )
        self._state = EditState.EDITING
        try:
            self.editor.mount(target, initial_text)
        except Exception as e:
            logger.warning(f"[EditController] Editor failed to mount: {e}")
            self._teardown()
            return False
        logger.debug(f"[EditController] Editing {self._session.fallback_selector}")
        return True

    async def commit(self, text: Optional[str] = None) -> Optional["Override"]:
        """EDITING -> SAVING -> IDLE. Persists, patches the node in place, then runs a pass."""
        if self._state != EditState.EDITING or self._session is None:
            return None
        session = self._session
        self._state = EditState.SAVING
        if text is None:
            text = self._editor_value()

        record = None
        try:
            # Synthesized even if the node has left the tree; best effort.
            selector = self.synthesizer.synthesize(session.target) or session.fallback_selector
            if not selector:
                logger.warning("[EditController] No selector for edited node; nothing saved")
                return None
            record = await self.store.save(self.page_key, selector, text)
            self._patch_in_place(session.target, text)
            # The page may have re-rendered the node while the editor was open.
            try:
                await self.reconciler.apply_all()
            except Exception as e:
                logger.warning(f"[EditController] Pass after commit failed: {e}")
            # A new override may be the page's first; start keeping it applied.
            await self.reconciler.start_observing()
        finally:
            self._teardown()
        return record

    def cancel(self) -> None:
        """EDITING -> IDLE without persisting."""
        if self._state != EditState.EDITING:
            return
        self._teardown()

    def _teardown(self) -> None:
        session = self._session
        if session is not None and not session.torn_down:
            session.torn_down = True
            try:
                self.editor.unmount()
            except Exception as e:
                logger.warning(f"[EditController] Editor failed to unmount: {e}")
        self._session = None
        self._state = EditState.IDLE

    def _patch_in_place(self, node: Any, text: str) -> None:
        try:
            if self.document.is_attached(node):
                self.document.set_text(node, text)
        except Exception as e:
            logger.debug(f"[EditController] In-place patch failed: {e}")

    def _editor_value(self) -> str:
        try:
            return self.editor.current_value()
        except Exception as e:
            logger.warning(f"[EditController] Could not read editor value: {e}")
            return self._session.initial_text if self._session else ""

    # ---- events -----------------------------------------------------------

    def handle_click(self, event: ClickEvent) -> bool:
        """Returns True when the click is intercepted (default action suppressed)."""
        if not self._enabled or event.inside_editor or event.target is None:
            return False
        if self._state == EditState.IDLE:
            self.begin_edit(event.target)
        return True

    async def handle_key(self, event: KeyEvent) -> bool:
        if self._state != EditState.EDITING:
            return False
        if event.key == "Escape":
            self.cancel()
            return True
        if event.key == "Enter" and (event.ctrl or event.meta):
            await self.commit()
            return True
        return False

    def handle_pointer_down(self, event: PointerDownEvent) -> bool:
        if self._state != EditState.EDITING or event.inside_editor:
            return False
        self.cancel()
        return True

    async def handle_editor_action(self, event: EditorActionEvent) -> bool:
        if self._state != EditState.EDITING:
            return False
        if event.action == "save":
            await self.commit()
            return True
        if event.action == "cancel":
            self.cancel()
            return True
        return False

    async def dispatch(self, event: Any) -> bool:
        """Route a host event to its handler."""
        if isinstance(event, ClickEvent):
            return self.handle_click(event)
        if isinstance(event, KeyEvent):
            return await self.handle_key(event)
        if isinstance(event, PointerDownEvent):
            return self.handle_pointer_down(event)
        if isinstance(event, EditorActionEvent):
            return await self.handle_editor_action(event)
        logger.debug(f"[EditController] Ignoring event {event!r}")
        return False

    # ---- messaging --------------------------------------------------------

    async def handle_message(self, message: Any) -> Optional[dict]:
        """Answer one management request; None for anything unrecognised."""
        if not isinstance(message, dict):
            return None
        kind = message.get("type")
        if kind == messaging.TOGGLE:
            if message.get("enable"):
                self.enable()
            else:
                self.disable()
            return {"type": messaging.TOGGLE_ACK, "enabled": self._enabled}
        if kind == messaging.GET_STATE:
            return {"type": messaging.STATE, "enabled": self._enabled}
        if kind == messaging.REAPPLY:
            try:
                await self.reconciler.apply_all()
            except Exception as e:
                logger.warning(f"[EditController] Re-apply failed: {e}")
            return {"ok": True}
        return None
