"""
Selector Synthesizer - durable selectors for clicked elements.

Given a node, produce a short selector that re-identifies the same
logical element after a reload. Strategies are tried in priority order:

1. identifier        ``#id``
2. stable-attribute  ``tag[data-*="..."]`` / ``tag[aria-*="..."]``
3. ancestor-path     bounded climb, returning at the first unique prefix
4. fallback          the best path assembled, else the tag name
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, TYPE_CHECKING
import logging
import re

import soupsieve

from pagepatch.core.config import PagePatchConfig
from pagepatch.layers.sense.document import NodeInfo, SelectorError

if TYPE_CHECKING:
    from pagepatch.layers.sense.document import PageDocument

logger = logging.getLogger(__name__)

CLASS_TOKEN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class SelectorResult:
    """Outcome of one synthesis run."""
    selector: str
    strategy: str  # "identifier", "stable-attribute", "ancestor-path", "fallback"
    unique: bool


def css_escape(value: str) -> str:
    """Escape a string for literal use in a selector, like ``CSS.escape``."""
    return soupsieve.escape(value)


class SelectorSynthesizer:
    """
    Mint selectors that resolve to exactly one node when possible.

    Example:
        >>> synth = SelectorSynthesizer(document)
        >>> synth.synthesize(node)
        'span[data-testid="hero"]'
    """

    def __init__(self, document: "PageDocument", config: Optional[PagePatchConfig] = None):
        self.document = document
        self.config = config or PagePatchConfig()
        self.strategies: List[Tuple[str, Callable[[Any, NodeInfo], Optional[SelectorResult]]]] = [
            ("identifier", self._by_identifier),
            ("stable-attribute", self._by_stable_attribute),
            ("ancestor-path", self._by_ancestor_path),
        ]

    def synthesize(self, node: Any) -> str:
        """Return a selector for ``node``. Never raises."""
        return self.synthesize_result(node).selector

    def synthesize_result(self, node: Any) -> SelectorResult:
        try:
            info = self.document.describe(node)
        except Exception as e:
            logger.warning(f"[SelectorSynthesizer] Cannot describe node: {e}")
            return SelectorResult(selector="", strategy="fallback", unique=False)

        best: Optional[SelectorResult] = None
        for name, strategy in self.strategies:
            try:
                result = strategy(node, info)
            except Exception as e:
                logger.debug(f"[SelectorSynthesizer] Strategy {name} failed: {e}")
                continue
            if result is None:
                continue
            if result.unique or name != "ancestor-path":
                logger.debug(f"[SelectorSynthesizer] {name}: {result.selector}")
                return result
            best = result

        if best is not None and best.selector:
            logger.debug(f"[SelectorSynthesizer] No unique path, falling back to {best.selector}")
            return SelectorResult(selector=best.selector, strategy="fallback", unique=False)
        return SelectorResult(selector=info.tag, strategy="fallback", unique=False)

    # ---- strategies -------------------------------------------------------

    def _by_identifier(self, node: Any, info: NodeInfo) -> Optional[SelectorResult]:
        identifier = info.attribute("id")
        if not identifier:
            return None
        # Assumed unique by convention; not verified against the document.
        return SelectorResult(selector=f"#{css_escape(identifier)}", strategy="identifier", unique=True)

    def _by_stable_attribute(self, node: Any, info: NodeInfo) -> Optional[SelectorResult]:
        stable = self._stable_attribute(info)
        if stable is None:
            return None
        return SelectorResult(selector=info.tag + stable, strategy="stable-attribute", unique=True)

    def _by_ancestor_path(self, node: Any, info: NodeInfo) -> Optional[SelectorResult]:
        segments: List[str] = []
        current, current_info = node, info
        depth = 0
        selector = ""

        while current is not None and depth < self.config.max_depth:
            if current_info is None:
                try:
                    current_info = self.document.describe(current)
                except Exception as e:
                    logger.debug(f"[SelectorSynthesizer] Stopped climbing: {e}")
                    break
            if current_info.is_root:
                break

            segments.insert(0, self._segment(current_info))
            selector = self.config.path_separator.join(segments)
            if self._is_unique(selector):
                return SelectorResult(selector=selector, strategy="ancestor-path", unique=True)
            if len(selector) > self.config.max_selector_length:
                break

            depth += 1
            current, current_info = current_info.parent, None

        if not selector:
            return None
        return SelectorResult(selector=selector, strategy="ancestor-path", unique=False)

    # ---- helpers ----------------------------------------------------------

    def _stable_attribute(self, info: NodeInfo) -> Optional[str]:
        for name, value in info.attributes:
            if name == "id":
                continue
            if not name.startswith(self.config.stable_prefixes):
                continue
            if value and len(value) <= self.config.max_attribute_length:
                return f'[{css_escape(name)}="{css_escape(value)}"]'
        return None

    def _segment(self, info: NodeInfo) -> str:
        identifier = info.attribute("id")
        if identifier:
            return f"#{css_escape(identifier)}"

        stable = self._stable_attribute(info)
        if stable:
            return info.tag + stable

        classes = [c for c in info.classes if CLASS_TOKEN.match(c)][:2]
        segment = info.tag + "".join(f".{css_escape(c)}" for c in classes)
        if info.parent is None:
            return segment
        if info.same_tag_count > 1:
            segment += f":nth-of-type({info.same_tag_index})"
        return segment

    def _is_unique(self, selector: str) -> bool:
        try:
            return self.document.count(selector) == 1
        except SelectorError:
            return False
