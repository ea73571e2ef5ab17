"""Sense Layer - Host documents and selector synthesis."""

from pagepatch.layers.sense.document import NodeInfo, PageDocument, SelectorError
from pagepatch.layers.sense.html_document import HtmlDocument
from pagepatch.layers.sense.selector import SelectorResult, SelectorSynthesizer

__all__ = [
    "HtmlDocument",
    "NodeInfo",
    "PageDocument",
    "SelectorError",
    "SelectorResult",
    "SelectorSynthesizer",
]
