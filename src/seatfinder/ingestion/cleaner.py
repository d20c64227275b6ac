"""
Cleaner Module - Turn raw HTML fragments into short readable snippets.
======================================================================

Seat matches carry a context snippet so a human can see where the match came
from. Snippets are built from raw HTML fragments:
- Remove HTML comments and tags (tags become a configurable separator)
- Decode HTML entities (``&nbsp;`` and friends)
- Normalize Unicode and collapse whitespace
- Truncate to a fixed length
"""

import html
import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

from seatfinder.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Cleaning Configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class CleanerConfig:
    """Configuration for snippet cleaning operations."""

    # HTML cleanup
    decode_html_entities: bool = True
    remove_html_comments: bool = True
    tag_separator: str = " "

    # Unicode handling
    normalize_unicode: bool = True
    unicode_form: str = "NFKC"

    # Output shape (0 = unlimited)
    max_length: int = 150


# ─────────────────────────────────────────────────────────────────────────────
# Text Cleaner Class
# ─────────────────────────────────────────────────────────────────────────────


class TextCleaner:
    """
    Snippet cleaner with configurable operations.

    Example:
        >>> cleaner = TextCleaner(CleanerConfig(tag_separator="|"))
        >>> cleaner.clean("<tr><td>1</td><td>RA01</td></tr>")
        '||1||RA01||'
    """

    def __init__(self, config: Optional[CleanerConfig] = None):
        """
        Initialize the cleaner.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or CleanerConfig()

        self._html_tag_pattern = re.compile(r"<[^>]+>")
        self._html_comment_pattern = re.compile(r"<!--.*?-->", re.DOTALL)
        self._whitespace = re.compile(r"\s+")

    def clean(self, text: Optional[str]) -> str:
        """
        Clean an HTML fragment into a single-line snippet.

        Args:
            text: Fragment to clean (can be None)

        Returns:
            Cleaned, truncated text ('' if input is None)
        """
        if not text:
            return ""

        result = text

        if self.config.remove_html_comments:
            result = self._html_comment_pattern.sub("", result)

        # Tags go first so entity-decoded angle brackets survive as text
        result = self._html_tag_pattern.sub(self.config.tag_separator, result)

        if self.config.decode_html_entities:
            result = html.unescape(result)

        if self.config.normalize_unicode:
            result = unicodedata.normalize(self.config.unicode_form, result)

        result = self._whitespace.sub(" ", result).strip()

        if self.config.max_length and len(result) > self.config.max_length:
            result = result[: self.config.max_length]

        return result


# ─────────────────────────────────────────────────────────────────────────────
# Convenience Functions
# ─────────────────────────────────────────────────────────────────────────────


def replace_nbsp(text: str) -> str:
    """Replace ``&nbsp;`` entities and non-breaking spaces with plain spaces."""
    return re.sub(r"&nbsp;", " ", text, flags=re.IGNORECASE).replace("\xa0", " ")


def row_snippet(row_html: str, max_length: int = 150) -> str:
    """Snippet for a table row, cell boundaries shown as ``|``."""
    return TextCleaner(CleanerConfig(tag_separator="|", max_length=max_length)).clean(row_html)


def text_snippet(fragment: str, max_length: int = 150) -> str:
    """Snippet for free text, tags collapsed into spaces."""
    return TextCleaner(CleanerConfig(tag_separator=" ", max_length=max_length)).clean(fragment)
