"""
Selenium Document - a PageDocument backed by a live browser.

Queries go through ``find_elements`` and writes through ``execute_script``.
Page events the edit controller cares about (capture-phase clicks, keys,
presses and body mutations) are recorded by a small injected bridge and
drained from Python with ``pump()``.
"""

from typing import Any, Callable, List, Optional, TYPE_CHECKING
import logging

from selenium.common.exceptions import (
    InvalidSelectorException,
    JavascriptException,
    StaleElementReferenceException,
    WebDriverException,
)

from pagepatch.layers.sense.document import (
    ClickEvent,
    EditorActionEvent,
    KeyEvent,
    MutationSubscription,
    NodeInfo,
    PointerDownEvent,
    SelectorError,
)

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver
    from selenium.webdriver.remote.webelement import WebElement

logger = logging.getLogger(__name__)


BRIDGE_SCRIPT = r"""
const editorClass = arguments[0];
if (window.__pagepatch) return false;
const state = {
    queue: [],
    mutations: 0,
    intercept: false,
    editing: false,
    observer: null,
    editorClass: editorClass,
};
window.__pagepatch = state;

const insideEditor = (el) => !!(el && el.closest && el.closest('.' + state.editorClass));

document.addEventListener('click', (ev) => {
    if (!state.intercept) return;
    const target = ev.target;
    if (!target || !target.closest) return;
    if (insideEditor(target)) {
        const action = target.getAttribute('data-pagepatch-action');
        if (action) state.queue.push({kind: 'editor', action: action});
        return;
    }
    ev.preventDefault();
    ev.stopPropagation();
    state.queue.push({kind: 'click', target: target, insideEditor: false});
}, true);

document.addEventListener('mousedown', (ev) => {
    if (!state.editing) return;
    state.queue.push({kind: 'pointerdown', insideEditor: insideEditor(ev.target)});
}, true);

document.addEventListener('keydown', (ev) => {
    if (!state.editing) return;
    state.queue.push({kind: 'key', key: ev.key, ctrl: ev.ctrlKey, meta: ev.metaKey});
}, true);
return true;
"""

PUMP_SCRIPT = r"""
const state = window.__pagepatch;
if (!state) return null;
const out = {events: state.queue, mutations: state.mutations};
state.queue = [];
state.mutations = 0;
return out;
"""

DESCRIBE_SCRIPT = r"""
const el = arguments[0];
const attributes = el.getAttributeNames().map((name) => [name, el.getAttribute(name)]);
const parent = el.parentElement;
let index = 1;
let count = 1;
if (parent) {
    const siblings = Array.from(parent.children).filter((c) => c.tagName === el.tagName);
    count = siblings.length;
    index = siblings.indexOf(el) + 1;
}
return {
    tag: el.tagName.toLowerCase(),
    attributes: attributes,
    parent: parent,
    isRoot: el === document.body || el === document.documentElement,
    index: index,
    count: count,
};
"""

WRITE_STYLE_SCRIPT = r"""
const id = arguments[0];
let style = document.getElementById(id);
if (!style) {
    style = document.createElement('style');
    style.id = id;
    (document.head || document.documentElement).appendChild(style);
}
style.textContent = arguments[1];
"""

OBSERVE_SCRIPT = r"""
const state = window.__pagepatch;
if (!state || state.observer || !document.body) return false;
state.observer = new MutationObserver(() => { state.mutations += 1; });
state.observer.observe(document.body, {childList: true, subtree: true, characterData: true});
return true;
"""

DISCONNECT_SCRIPT = r"""
const state = window.__pagepatch;
if (state && state.observer) {
    state.observer.disconnect();
    state.observer = null;
}
"""


class SeleniumDocument:
    """
    PageDocument over a Selenium WebDriver.

    Example:
        >>> doc = SeleniumDocument(driver)
        >>> doc.install()
        >>> doc.count('span[data-testid="hero"]')
        1
    """

    def __init__(self, driver: "WebDriver", editor_class: str = "pagepatch-overlay"):
        """
        Args:
            driver: Selenium WebDriver
            editor_class: class name marking the edit overlay, clicks inside it pass through
        """
        self.driver = driver
        self.editor_class = editor_class
        self._observers: List[Callable[[], None]] = []

    # ---- bridge -----------------------------------------------------------

    def install(self) -> bool:
        """Inject the event bridge into the current page. Returns True if newly installed."""
        installed = bool(self.driver.execute_script(BRIDGE_SCRIPT, self.editor_class))
        if installed:
            logger.debug(f"[SeleniumDocument] Bridge installed on {self.driver.current_url}")
        if installed and self._observers:
            # A fresh page lost its observer; re-arm it for existing subscribers.
            self.driver.execute_script(OBSERVE_SCRIPT)
        return installed

    def pump(self) -> Optional[List[Any]]:
        """
        Drain queued page events.

        Fires mutation observers once if any body mutation happened since
        the last call. Returns None when the bridge is missing, which means
        the page navigated or reloaded.
        """
        batch = self.driver.execute_script(PUMP_SCRIPT)
        if batch is None:
            return None

        if batch.get("mutations") and self._observers:
            for callback in list(self._observers):
                callback()

        events: List[Any] = []
        for raw in batch.get("events") or []:
            event = _to_event(raw)
            if event is not None:
                events.append(event)
        return events

    def set_interception(self, enabled: bool) -> None:
        self.driver.execute_script(
            "if (window.__pagepatch) window.__pagepatch.intercept = arguments[0];",
            bool(enabled),
        )

    def set_editing(self, editing: bool) -> None:
        self.driver.execute_script(
            "if (window.__pagepatch) window.__pagepatch.editing = arguments[0];",
            bool(editing),
        )

    # ---- queries ----------------------------------------------------------

    def query_all(self, selector: str) -> List["WebElement"]:
        try:
            return list(self.driver.find_elements("css selector", selector))
        except InvalidSelectorException as e:
            raise SelectorError(selector, e.msg or "") from e

    def query(self, selector: str) -> Optional["WebElement"]:
        matches = self.query_all(selector)
        return matches[0] if matches else None

    def count(self, selector: str) -> int:
        return len(self.query_all(selector))

    def describe(self, node: "WebElement") -> NodeInfo:
        info = self.driver.execute_script(DESCRIBE_SCRIPT, node)
        return NodeInfo(
            tag=info["tag"],
            attributes=[(name, value or "") for name, value in info["attributes"]],
            parent=info.get("parent"),
            is_root=bool(info.get("isRoot")),
            same_tag_index=int(info.get("index", 1)),
            same_tag_count=int(info.get("count", 1)),
        )

    def is_attached(self, node: "WebElement") -> bool:
        try:
            return bool(self.driver.execute_script("return arguments[0].isConnected;", node))
        except (StaleElementReferenceException, JavascriptException):
            return False

    # ---- text and style ---------------------------------------------------

    def get_text(self, node: "WebElement") -> str:
        return self.driver.execute_script("return arguments[0].textContent;", node) or ""

    def set_text(self, node: "WebElement", text: str) -> None:
        self.driver.execute_script("arguments[0].textContent = arguments[1];", node, text)

    def force_color_inherit(self, node: "WebElement") -> None:
        self.driver.execute_script(
            "if (arguments[0].style) arguments[0].style.setProperty('color', 'inherit', 'important');",
            node,
        )

    def write_style(self, style_id: str, css: str) -> None:
        self.driver.execute_script(WRITE_STYLE_SCRIPT, style_id, css)

    def remove_style(self, style_id: str) -> None:
        self.driver.execute_script(
            "const s = document.getElementById(arguments[0]); if (s) s.remove();",
            style_id,
        )

    def has_style(self, style_id: str) -> bool:
        return bool(self.driver.execute_script(
            "return !!document.getElementById(arguments[0]);", style_id
        ))

    def reveal(self, class_name: str) -> None:
        self.driver.execute_script(
            "document.documentElement.classList.add(arguments[0]);", class_name
        )

    # ---- mutation ---------------------------------------------------------

    def observe(self, callback: Callable[[], None]) -> MutationSubscription:
        self._observers.append(callback)
        try:
            self.driver.execute_script(OBSERVE_SCRIPT)
        except WebDriverException as e:
            logger.warning(f"[SeleniumDocument] Could not attach mutation observer: {e}")

        def _detach() -> None:
            if callback in self._observers:
                self._observers.remove(callback)
            if not self._observers:
                try:
                    self.driver.execute_script(DISCONNECT_SCRIPT)
                except WebDriverException:
                    pass

        return MutationSubscription(on_disconnect=_detach)


def _to_event(raw: Any) -> Optional[Any]:
    if not isinstance(raw, dict):
        return None
    kind = raw.get("kind")
    if kind == "click":
        return ClickEvent(target=raw.get("target"), inside_editor=bool(raw.get("insideEditor")))
    if kind == "pointerdown":
        return PointerDownEvent(inside_editor=bool(raw.get("insideEditor")))
    if kind == "key":
        return KeyEvent(key=raw.get("key") or "", ctrl=bool(raw.get("ctrl")), meta=bool(raw.get("meta")))
    if kind == "editor":
        return EditorActionEvent(action=raw.get("action") or "")
    return None
