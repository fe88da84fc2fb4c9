"""
Page content extraction.

Turns a competitor page's raw HTML into the structured signals the
aggregator works with: title, meta description, main-body text and word
count, heading outline, images, link counts, JSON-LD blocks and styled text
spans.

Parsing is deterministic and side-effect free; the same markup always yields
the same :class:`ScrapedData`.

Example:
    >>> extractor = ContentExtractor()
    >>> data = extractor.parse(html, "https://example.com/post")
    >>> data.word_count, [h.text for h in data.headings]
"""

from __future__ import annotations

import json
import re
from typing import Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from serp_intel.models.schemas import (
    Heading,
    ImageData,
    LinkCounts,
    ScrapedData,
    StructuredDataBlock,
    StyledElement,
    StyledElements,
    extract_domain,
    strip_www,
)
from serp_intel.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Selectors
# =============================================================================

# Chrome and boilerplate removed before reading visible text
NOISE_SELECTORS = "script, style, nav, footer, header, aside, .advertisement, .ad, .sidebar"

# Evaluated in order; the selection with the longest text wins
CONTENT_SELECTORS = (
    "main",
    '[role="main"]',
    ".main-content",
    ".content",
    ".post-content",
    ".entry-content",
    "article",
    ".article-content",
)

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")

# Lazy-loading libraries park the real URL in one of these
IMAGE_SOURCE_ATTRS = ("src", "data-src", "data-lazy-src", "data-original")

ICON_CLASS_PATTERN = re.compile(r"\b(fa-|icon-|glyphicon|material-icons)\b")

JSON_LD_SELECTOR = 'script[type="application/ld+json"]'

WHITESPACE_RUN = re.compile(r"\s+")

PARSER = "html.parser"


def clean_text(text: str) -> str:
    """Collapse whitespace and newline runs to single spaces and trim."""
    return WHITESPACE_RUN.sub(" ", text).strip()


def count_words(text: str) -> int:
    return len(text.split())


class ContentExtractor:
    """Parses raw page markup into :class:`ScrapedData`."""

    def __init__(self, parser: str = PARSER):
        self.parser = parser

    def parse(self, raw_markup: str, source_url: str) -> ScrapedData:
        """
        Extract structured page data.

        Args:
            raw_markup: HTML as fetched.
            source_url: URL the markup came from, used to classify links.

        Returns:
            ScrapedData with ``full_content`` holding the unmodified markup.
        """
        soup = BeautifulSoup(raw_markup, self.parser)

        # JSON-LD lives in <script>, which the noise pass removes
        structured_data = self._extract_structured_data(soup)

        # extract() rather than decompose(): matches may be nested in each other
        for element in soup.select(NOISE_SELECTORS):
            element.extract()

        content = self._extract_main_content(soup)

        data = ScrapedData(
            title=self._extract_title(soup),
            meta_description=self._extract_meta_description(soup),
            content=content,
            full_content=raw_markup,
            word_count=count_words(content),
            headings=self._extract_headings(soup),
            images=self._extract_images(soup),
            links=self._count_links(soup, source_url),
            structured_data=structured_data,
            styled_elements=self._extract_styled_elements(soup),
        )

        logger.debug(
            "Parsed page",
            url=source_url,
            word_count=data.word_count,
            headings=len(data.headings),
            structured_blocks=len(data.structured_data),
        )
        return data

    # =========================================================================
    # Individual signals
    # =========================================================================

    @staticmethod
    def _text(element: Tag) -> str:
        return clean_text(element.get_text(" "))

    def _extract_title(self, soup: BeautifulSoup) -> str:
        title = soup.find("title")
        if title is not None:
            text = self._text(title)
            if text:
                return text
        h1 = soup.find("h1")
        if h1 is not None:
            return self._text(h1)
        return ""

    @staticmethod
    def _extract_meta_description(soup: BeautifulSoup) -> str:
        for attrs in ({"name": "description"}, {"property": "og:description"}):
            meta = soup.find("meta", attrs=attrs)
            if meta is not None:
                content = (meta.get("content") or "").strip()
                if content:
                    return content
        return ""

    def _extract_main_content(self, soup: BeautifulSoup) -> str:
        best = ""
        for selector in CONTENT_SELECTORS:
            matches = soup.select(selector)
            if not matches:
                continue
            # All matches of a selector count together
            text = " ".join(m.get_text(" ") for m in matches).strip()
            if len(text) > len(best):
                best = text

        if not best:
            body = soup.body if soup.body is not None else soup
            best = body.get_text(" ")

        return clean_text(best)

    def _extract_headings(self, soup: BeautifulSoup) -> list[Heading]:
        headings = []
        for element in soup.find_all(HEADING_TAGS):
            text = self._text(element)
            if text:
                headings.append(Heading(level=int(element.name[1]), text=text))
        return headings

    @staticmethod
    def _image_source(element: Tag) -> Optional[str]:
        for attr in IMAGE_SOURCE_ATTRS:
            value = (element.get(attr) or "").strip()
            if value:
                return value
        return None

    def _extract_images(self, soup: BeautifulSoup) -> list[ImageData]:
        images = []
        for element in soup.find_all("img"):
            src = self._image_source(element)
            if src:
                images.append(ImageData(src=src, alt=(element.get("alt") or "").strip()))
        return images

    @staticmethod
    def _count_links(soup: BeautifulSoup, source_url: str) -> LinkCounts:
        domain = extract_domain(source_url)
        internal = 0
        external = 0

        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href:
                continue
            try:
                parsed = urlparse(href)
            except ValueError:
                continue
            # mailto:, tel:, javascript: and friends are not page links
            if parsed.scheme not in ("", "http", "https"):
                continue
            if not parsed.netloc:
                internal += 1
            elif strip_www(parsed.hostname or "") == domain:
                internal += 1
            else:
                external += 1

        return LinkCounts(internal=internal, external=external)

    @staticmethod
    def _extract_structured_data(soup: BeautifulSoup) -> list[StructuredDataBlock]:
        blocks = []
        for script in soup.select(JSON_LD_SELECTOR):
            raw = script.string if script.string is not None else script.get_text()
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                # Invalid JSON-LD is common in the wild
                continue
            blocks.append(StructuredDataBlock.from_json_ld(data))
        return blocks

    def _extract_styled_elements(self, soup: BeautifulSoup) -> StyledElements:
        styled = StyledElements()

        for element in soup.find_all("em"):
            text = self._text(element)
            if text:
                styled.emphasis.append(StyledElement(tag="em", text=text))

        for element in soup.find_all("strong"):
            text = self._text(element)
            if text:
                styled.strong.append(StyledElement(tag="strong", text=text))

        for element in soup.find_all("i"):
            text = self._text(element)
            classes = " ".join(element.get("class") or [])
            if text and not ICON_CLASS_PATTERN.search(classes):
                styled.italic.append(StyledElement(tag="i", text=text))

        return styled
