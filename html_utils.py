# -*- coding: utf-8 -*-
"""
HTML to text conversion for message bodies that carry no text/plain part.
"""

import html2text
import lxml.etree
import lxml.html


def make_html2text_converter():
    """Create configured html2text parser for converting HTML to plain text."""
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.ul_item_mark = "-"
    converter.ignore_emphasis = True
    converter.ignore_images = True
    converter.ignore_tables = False
    converter.ignore_links = False
    converter.inline_links = True
    converter.skip_internal_links = True
    converter.unicode_snob = True
    return converter


UTF8_PARSER = lxml.html.HTMLParser(encoding="utf-8")


def parse_html(html):
    """
    Parse an HTML body into an lxml tree.

    Bodies with an XML encoding declaration are re-parsed as UTF-8 bytes.

    Returns:
        Root element, or None when the document has no elements
    """
    try:
        try:
            return lxml.html.fromstring(html)
        except ValueError:
            return lxml.html.fromstring(html.encode("utf-8"), parser=UTF8_PARSER)
    except lxml.etree.ParserError:
        return None


def strip_active_content(html):
    """Drop script, style and comment nodes so their text never matches"""
    tree = parse_html(html)
    if tree is None:
        return ""
    lxml.etree.strip_elements(
        tree, "script", "style", lxml.etree.Comment, with_tail=False
    )
    return lxml.html.tostring(tree, encoding="unicode")


def html_to_text(html):
    """Convert an HTML body to plain text"""
    if not html or not html.strip():
        return ""
    return make_html2text_converter().handle(strip_active_content(html))
