"""
Content transformer: turns a fetched feed item into the text of a status.

Pure functions only; nothing here touches the network or feed state.
"""

from __future__ import annotations

import html
import re
from typing import Callable, List

from bs4 import BeautifulSoup

from .models import Feed, FeedItem


TRUNCATION_MARKER = " [...]"
# Room kept free for the marker when the body has to be cut
RESERVED_SUFFIX = 11
SEPARATOR = "\n\n"

_BOUNDARY_PUNCTUATION = ".,;!?"
_NON_TAGGABLE = "-/\\."
_WORD_START = re.compile(r"(?<![\w'’])(\w)")
_GO_GROUP = re.compile(r"\$\{(\w+)\}|\$(\d+)")


def strip_markup(text: str) -> str:
    """Remove every tag and attribute, keeping only the text content."""
    if not text:
        return ""
    return BeautifulSoup(text, "html.parser").get_text()


def title_case(text: str, lang: str = "en") -> str:
    """Upper-case the first letter of every word, leaving the rest as is."""
    turkic = lang.split("-")[0].lower() in ("tr", "az")

    def _upper(match: re.Match) -> str:
        char = match.group(1)
        if turkic and char == "i":
            return "İ"
        return char.upper()

    return _WORD_START.sub(_upper, text)


def _category_tags(category: str, lang: str) -> List[str]:
    tag = category.strip()
    tag = tag.replace(" - ", " ").replace(" i ", ": ")
    tag = title_case(tag, lang).replace(" ", "")
    return [s for s in tag.split(":") if s and not any(c in s for c in _NON_TAGGABLE)]


def make_hashtags(item: FeedItem, feed: Feed, lang: str = "en") -> str:
    """Build the ``#tag1 #tag2`` line for an item, or an empty string.

    Tags come from the item's categories; without categories the feed's
    ``hashlink`` pattern is applied to the link and its first group is used.
    With a feed prefix every tag lacking it also gets a prefixed twin.
    """
    tags: List[str] = []

    if item.categories:
        for category in item.categories:
            tags.extend(_category_tags(category, lang))
    elif feed.hash_pattern is not None:
        match = feed.hash_pattern.search(item.link)
        if match and match.re.groups >= 1:
            tag = match.group(1)
            if tag and "-" not in tag:
                tags.append(tag)

    if tags and feed.prefix:
        for tag in list(tags):
            if feed.prefix not in tag:
                tags.append(feed.prefix + title_case(tag, lang))

    return " ".join(f"#{tag}" for tag in tags)


def compose(title: str, body: str, hashtags: str, link: str) -> str:
    parts = [title]
    if body:
        parts.append(body)
    if hashtags:
        parts.append(hashtags)
    parts.append(link)
    return SEPARATOR.join(parts)


def truncate_body(body: str, size: int) -> str:
    """Cut ``body`` to at most ``size`` characters at a word or clause boundary
    and append the truncation marker."""
    if size <= 0:
        return TRUNCATION_MARKER.strip()

    cut = body[: size + 1].rfind(" ")
    for char in _BOUNDARY_PUNCTUATION:
        pos = body[:size].rfind(char)
        if pos >= 0:
            cut = max(cut, pos + 1)
    if cut <= 0:
        cut = size

    kept = body[:cut].rstrip()
    if not kept:
        return TRUNCATION_MARKER.strip()
    return kept + TRUNCATION_MARKER


def _python_template(go_template: str) -> str:
    """Translate ``$1`` / ``${name}`` group references to ``re.sub`` syntax."""
    escaped = go_template.replace("\\", "\\\\")
    return _GO_GROUP.sub(lambda m: f"\\g<{m.group(1) or m.group(2)}>", escaped)


def apply_replacement(body: str, feed: Feed) -> str:
    if feed.replace_pattern is None:
        return body
    return feed.replace_pattern.sub(_python_template(feed.replace_to), body).strip()


def render(
    item: FeedItem,
    feed: Feed,
    limit: int,
    lang: str = "en",
    sanitizer: Callable[[str], str] = strip_markup,
) -> str:
    """Render the status text for ``item``.

    Only the body is ever shortened. When title, hashtags and link alone
    exceed ``limit`` the result stays over-length.
    """
    # strip_markup decodes body entities itself
    body = sanitizer(item.body).strip()
    title = html.unescape(item.title).strip()
    hashtags = make_hashtags(item, feed, lang)
    link = item.link.strip()

    if len(compose(title, body, hashtags, link)) > limit:
        fixed = len(compose(title, "", hashtags, link)) + len(SEPARATOR)
        body = truncate_body(body, limit - fixed - RESERVED_SUFFIX)

    # Runs after truncation, so an end-anchored pattern can remove the marker
    body = apply_replacement(body, feed)
    return compose(title, body, hashtags, link)
