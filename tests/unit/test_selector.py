import pytest
from unittest.mock import MagicMock

from pagepatch.core.config import PagePatchConfig
from pagepatch.layers.sense.document import SelectorError
from pagepatch.layers.sense.html_document import HtmlDocument
from pagepatch.layers.sense.selector import SelectorSynthesizer


def synth_for(html):
    doc = HtmlDocument(html)
    return doc, SelectorSynthesizer(doc)


def test_identifier_wins():
    doc, synth = synth_for('<html><body><h1 id="title" data-testid="x">Hi</h1></body></html>')
    node = doc.query("h1")

    result = synth.synthesize_result(node)
    assert result.selector == "#title"
    assert result.strategy == "identifier"
    assert doc.query(result.selector) is node


def test_identifier_starting_with_digit_is_escaped():
    doc, synth = synth_for('<html><body><p id="123">One</p><p>Two</p></body></html>')
    node = doc.query("p")

    selector = synth.synthesize(node)
    assert selector != "#123"
    assert doc.query_all(selector) == [node]


def test_stable_attribute():
    doc, synth = synth_for(
        '<html><body><div><span data-testid="hero">Hello</span></div></body></html>'
    )
    node = doc.query("span")

    result = synth.synthesize_result(node)
    assert result.selector == 'span[data-testid="hero"]'
    assert result.strategy == "stable-attribute"


def test_stable_attribute_value_is_escaped():
    doc, synth = synth_for(
        """<html><body><button aria-label='Say "hi" ]'>Go</button></body></html>"""
    )
    node = doc.query("button")

    selector = synth.synthesize(node)
    assert selector.startswith("button[aria-label=")
    assert doc.query_all(selector) == [node]


def test_unstable_attributes_are_ignored():
    long_value = "x" * 101
    doc, synth = synth_for(
        f'<html><body><div><em data-track="{long_value}" data-empty="" title="t">A</em></div></body></html>'
    )
    node = doc.query("em")

    result = synth.synthesize_result(node)
    assert result.strategy == "ancestor-path"
    assert result.selector == "em"


def test_class_tokens_are_filtered_and_capped():
    doc, synth = synth_for(
        '<html><body><p class="md:flex lead intro extra">A</p><p>B</p></body></html>'
    )
    node = doc.query("p")

    selector = synth.synthesize(node)
    assert selector == "p.lead.intro:nth-of-type(1)"
    assert doc.query_all(selector) == [node]


def test_positional_siblings_get_distinct_unique_selectors():
    doc, synth = synth_for("""
        <html><body>
          <section><ul><li>A</li><li>B</li><li>C</li></ul></section>
          <section><ul><li>A</li><li>B</li><li>C</li></ul></section>
        </body></html>
    """)
    items = doc.query_all("li")
    selectors = [synth.synthesize(item) for item in items]

    assert len(set(selectors)) == 6
    for item, selector in zip(items, selectors):
        matches = doc.query_all(selector)
        assert len(matches) == 1
        assert matches[0] is item


def test_three_identical_siblings():
    doc, synth = synth_for(
        "<html><body><div><b>x</b><b>x</b><b>x</b></div><b>y</b></body></html>"
    )
    siblings = doc.query_all("div > b")
    selectors = [synth.synthesize(node) for node in siblings]

    assert len(set(selectors)) == 3
    for node, selector in zip(siblings, selectors):
        assert doc.query_all(selector) == [node]


def test_ancestor_identifier_anchors_path():
    doc, synth = synth_for("""
        <html><body>
          <div id="cart"><span>Total</span></div>
          <div><span>Total</span></div>
        </body></html>
    """)
    node = doc.query("#cart span")

    assert synth.synthesize(node) == "#cart > span"


def test_climb_stops_at_body_and_degrades_gracefully():
    doc, synth = synth_for("<html><body><b>x</b><div><b>y</b></div></body></html>")
    node = doc.query("body > b")

    result = synth.synthesize_result(node)
    assert result.selector == "b"
    assert result.strategy == "fallback"
    assert result.unique is False


def test_climb_is_bounded_by_max_depth():
    nested = "<div><div><div><div><div><span>t</span></div></div></div></div></div>"
    doc, synth = synth_for(
        f"<html><body><section>{nested}</section><section>{nested}</section></body></html>"
    )
    node = doc.query("span")

    result = synth.synthesize_result(node)
    assert result.unique is False
    assert result.selector.count(" > ") == PagePatchConfig().max_depth - 1
    assert "section" not in result.selector


def test_climb_is_bounded_by_length():
    long_class = "c" * 600
    doc, synth = synth_for(
        f'<html><body><div><i class="{long_class}">a</i></div><div><i class="{long_class}">b</i></div></body></html>'
    )
    node = doc.query("i")

    result = synth.synthesize_result(node)
    assert result.unique is False
    assert " > " not in result.selector


def test_count_errors_mean_not_unique_yet():
    class FlakyDocument(HtmlDocument):
        def count(self, selector):
            if ">" not in selector:
                raise SelectorError(selector, "simulated")
            return super().count(selector)

    doc = FlakyDocument('<html><body><main><p>only</p></main></body></html>')
    synth = SelectorSynthesizer(doc)

    assert synth.synthesize(doc.query("p")) == "main > p"


def test_detached_node_returns_own_segment():
    doc, synth = synth_for('<html><body><ul><li class="item">A</li></ul></body></html>')
    node = doc.query("li")
    doc.remove(node)

    assert synth.synthesize(node) == "li.item"


def test_synthesize_never_raises():
    document = MagicMock()
    document.describe.side_effect = RuntimeError("stale element")
    synth = SelectorSynthesizer(document)

    assert synth.synthesize(object()) == ""


def test_custom_stable_prefixes():
    config = PagePatchConfig(stable_prefixes=("data-qa",))
    doc = HtmlDocument(
        '<html><body><a data-testid="x" data-qa="buy">Buy</a><a>Other</a></body></html>'
    )
    synth = SelectorSynthesizer(doc, config)

    assert synth.synthesize(doc.query("a")) == 'a[data-qa="buy"]'
