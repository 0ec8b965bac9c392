from bookbot.renderer import render, render_inline


def _tags(nodes):
    return [node.tag for node in nodes]


def test_plain_text_becomes_single_unchanged_paragraph():
    text = "We have two great science fiction books for you today."

    rendered = render(text)

    assert _tags(rendered.blocks) == ["p"]
    assert _tags(rendered.blocks[0].children) == ["text"]
    assert rendered.blocks[0].children[0].text == text
    assert rendered.to_html() == f"<p>{text}</p>"


def test_bold_is_parsed_before_italics():
    nodes = render_inline("**Dune** is *great* and __Foundation__ is _classic_")

    assert _tags(nodes) == ["strong", "text", "em", "text", "strong", "text", "em"]
    assert nodes[0].plain_text() == "Dune"
    assert nodes[2].plain_text() == "great"
    assert nodes[4].plain_text() == "Foundation"


def test_underscores_inside_words_are_not_emphasis():
    nodes = render_inline("see file_name_here and 2 * 3 * 4")

    assert _tags(nodes) == ["text"]


def test_consecutive_list_items_share_one_container():
    rendered = render("Top picks:\n- **Dune**: $15.00\n- Foundation: $18.00\n• Hyperion")

    assert _tags(rendered.blocks) == ["p", "ul"]
    items = rendered.blocks[1].children
    assert _tags(items) == ["li", "li", "li"]
    assert items[0].children[0].tag == "strong"
    assert items[2].plain_text() == "Hyperion"


def test_numbered_list_is_ordered():
    rendered = render("1. Dune\n2. Foundation")

    assert _tags(rendered.blocks) == ["ol"]
    assert [item.plain_text() for item in rendered.blocks[0].children] == ["Dune", "Foundation"]


def test_header_becomes_strong_line_with_break():
    rendered = render("## Recommendations\nBoth are in stock.")

    paragraph = rendered.blocks[0]
    assert _tags(paragraph.children) == ["strong", "br", "text"]
    assert paragraph.children[0].plain_text() == "Recommendations"


def test_blank_lines_split_paragraphs_and_single_newlines_break():
    rendered = render("First line\nsecond line\n\nNew paragraph")

    assert _tags(rendered.blocks) == ["p", "p"]
    assert _tags(rendered.blocks[0].children) == ["text", "br", "text"]


def test_html_in_reply_is_escaped():
    rendered = render("<script>alert('x')</script> **<b>bold</b>**")

    html = rendered.to_html()
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "<strong>&lt;b&gt;bold&lt;/b&gt;</strong>" in html


def test_render_is_total_for_odd_input():
    for text in ["", None, "\n\n\n", "**", "* ", "#", "__init__ and **unclosed", "\r\n- a\r\n- b"]:
        rendered = render(text)
        assert rendered.blocks
        assert all(block.tag in {"p", "ul", "ol"} for block in rendered.blocks)


def test_plain_text_round_trip_keeps_words():
    rendered = render("Hello *there*\n- one\n- two")

    assert rendered.plain_text() == "Hello there\n\nonetwo"


def test_triple_markers_become_strong_emphasis():
    for text in ["***Dune***", "___Dune___"]:
        rendered = render(text)

        assert rendered.to_html() == "<p><strong><em>Dune</em></strong></p>"


def test_emphasis_can_wrap_bold():
    rendered = render("*a **b** c*")

    assert rendered.to_html() == "<p><em>a <strong>b</strong> c</em></p>"
    assert "*" not in rendered.plain_text()


def test_bold_can_wrap_emphasis():
    nodes = render_inline("**read *Dune* first**")

    assert _tags(nodes) == ["strong"]
    assert _tags(nodes[0].children) == ["text", "em", "text"]
    assert nodes[0].plain_text() == "read Dune first"
