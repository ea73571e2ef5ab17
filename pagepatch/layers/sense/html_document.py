"""
HTML Document - a PageDocument backed by a BeautifulSoup tree.

Used to apply overrides to saved page snapshots and to exercise the
synthesizer and reconciler without a browser. Selector evaluation is
done by soupsieve, the engine behind ``BeautifulSoup.select``.
"""

from typing import Any, Callable, List, Optional, Union
import logging

from bs4 import BeautifulSoup, NavigableString, Tag

from pagepatch.layers.sense.document import (
    MutationSubscription,
    NodeInfo,
    SelectorError,
)

logger = logging.getLogger(__name__)

ROOT_TAGS = ("body", "html")


class HtmlDocument:
    """
    PageDocument over parsed HTML.

    Mutations made through ``set_text``, ``insert_html`` and ``remove``
    are reported to observers when they touch the ``<body>`` subtree,
    mirroring a MutationObserver attached to ``document.body``.

    Example:
        >>> doc = HtmlDocument('<html><body><p id="a">Hi</p></body></html>')
        >>> doc.get_text(doc.query("#a"))
        'Hi'
    """

    def __init__(self, html: str, parser: str = "html.parser"):
        self.soup = BeautifulSoup(html, parser)
        self._observers: List[Callable[[], None]] = []

    @classmethod
    def from_file(cls, path: str, parser: str = "html.parser") -> "HtmlDocument":
        with open(path, "r", encoding="utf-8") as f:
            return cls(f.read(), parser=parser)

    # ---- queries ----------------------------------------------------------

    def query_all(self, selector: str) -> List[Tag]:
        try:
            return list(self.soup.select(selector))
        except Exception as e:
            raise SelectorError(selector, str(e)) from e

    def query(self, selector: str) -> Optional[Tag]:
        matches = self.query_all(selector)
        return matches[0] if matches else None

    def count(self, selector: str) -> int:
        return len(self.query_all(selector))

    def describe(self, node: Tag) -> NodeInfo:
        attributes = []
        for name, value in node.attrs.items():
            if isinstance(value, (list, tuple)):
                value = " ".join(value)
            attributes.append((name, str(value)))

        parent = node.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            parent = None

        index, total = 1, 1
        if parent is not None:
            siblings = [
                child for child in parent.children
                if isinstance(child, Tag) and child.name == node.name
            ]
            total = len(siblings)
            for position, sibling in enumerate(siblings, start=1):
                if sibling is node:
                    index = position
                    break

        return NodeInfo(
            tag=node.name.lower(),
            attributes=attributes,
            parent=parent,
            is_root=node.name.lower() in ROOT_TAGS,
            same_tag_index=index,
            same_tag_count=total,
        )

    def is_attached(self, node: Tag) -> bool:
        current = node
        while current is not None:
            if current is self.soup:
                return True
            current = current.parent
        return False

    # ---- text and style ---------------------------------------------------

    def get_text(self, node: Tag) -> str:
        return node.get_text()

    def set_text(self, node: Tag, text: str) -> None:
        node.clear()
        node.append(NavigableString(text))
        self._notify(node)

    def force_color_inherit(self, node: Tag) -> None:
        node["style"] = _set_style_property(node.get("style", ""), "color", "inherit !important")

    def write_style(self, style_id: str, css: str) -> None:
        style = self._find_style(style_id)
        if style is None:
            style = self.soup.new_tag("style", attrs={"id": style_id})
            container = self.soup.head or self.soup.html or self.soup
            container.append(style)
        style.string = css

    def remove_style(self, style_id: str) -> None:
        style = self._find_style(style_id)
        if style is not None:
            style.decompose()

    def has_style(self, style_id: str) -> bool:
        return self._find_style(style_id) is not None

    def style_text(self, style_id: str) -> Optional[str]:
        style = self._find_style(style_id)
        return style.get_text() if style is not None else None

    def reveal(self, class_name: str) -> None:
        root = self.soup.html
        if root is None:
            return
        classes = root.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        if class_name not in classes:
            root["class"] = list(classes) + [class_name]

    def set_interception(self, enabled: bool) -> None:
        """Static documents have no event loop to intercept."""

    # ---- mutation ---------------------------------------------------------

    def observe(self, callback: Callable[[], None]) -> MutationSubscription:
        self._observers.append(callback)

        def _detach() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return MutationSubscription(on_disconnect=_detach)

    def insert_html(self, parent: Union[str, Tag], html: str) -> List[Tag]:
        """Append parsed markup to ``parent`` (a node or a selector)."""
        if isinstance(parent, str):
            target = self.query(parent)
            if target is None:
                raise SelectorError(parent, "no element to insert into")
            parent = target
        fragment = BeautifulSoup(html, "html.parser")
        inserted = []
        for child in list(fragment.contents):
            parent.append(child.extract())
            if isinstance(child, Tag):
                inserted.append(child)
        self._notify(parent)
        return inserted

    def remove(self, node: Tag) -> None:
        parent = node.parent
        node.extract()
        if parent is not None:
            self._notify(parent)

    def to_html(self) -> str:
        return str(self.soup)

    def _notify(self, node: Any) -> None:
        if not self._observers or not self._in_body(node):
            return
        for callback in list(self._observers):
            callback()

    def _in_body(self, node: Any) -> bool:
        if self.soup.body is None:
            return self.is_attached(node)
        current = node
        while current is not None:
            if current is self.soup.body:
                return True
            current = current.parent
        return False

    def _find_style(self, style_id: str) -> Optional[Tag]:
        return self.soup.find("style", attrs={"id": style_id})


def _set_style_property(style: str, name: str, value: str) -> str:
    """Set one declaration in an inline style string, keeping the others."""
    declarations = []
    for chunk in style.split(";"):
        if ":" not in chunk:
            continue
        prop, _, val = chunk.partition(":")
        if prop.strip().lower() == name:
            continue
        declarations.append(f"{prop.strip()}: {val.strip()}")
    declarations.append(f"{name}: {value}")
    return "; ".join(declarations) + ";"
