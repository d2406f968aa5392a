"""
Content Cleaner - Raw text normalization before chunking.

Strips HTML, boilerplate noise, Markdown syntax, URLs and email addresses,
then normalizes Unicode and whitespace. Every stage is a pure string
transform; a stage that does not match is a no-op and no stage raises.
"""

import html
import logging
import re
import unicodedata
from typing import Callable, Dict, List, Optional, Pattern, Sequence, Tuple

from ..models.preprocessing_models import CleanerConfig, CleanedContent

logger = logging.getLogger(__name__)


EMAIL_PLACEHOLDER = "[EMAIL]"

# Navigation boilerplate, copyright lines, UI prompts and ad markers
NOISE_PATTERNS: List[Pattern[str]] = [
    re.compile(r'^(Home|About|Contact|Products|Services)(\s*\|\s*[\w\s]+)+$', re.I | re.M),
    re.compile(r'^\s*(首頁|關於|聯絡|產品|服務)(\s*[\|｜]\s*[\u4e00-\u9fff\w\s]+)+$', re.I | re.M),
    re.compile(r'©\s*\d{4}.*$', re.I | re.M),
    re.compile(r'Copyright\s*©?\s*\d{4}.*$', re.I | re.M),
    re.compile(r'點此閱讀更多|閱讀更多|查看更多|了解更多', re.I),
    re.compile(r'Read more|View more|Learn more|Click here', re.I),
    re.compile(r'Loading\.{2,}|載入中\.{2,}', re.I),
    re.compile(r'\[AD\]|\[廣告\]|\[Sponsored\]|Sponsored', re.I),
    re.compile(r'\[link\]|\[連結\]', re.I),
]

_FULLWIDTH_PUNCTUATION = {
    '，': ',', '。': '.', '！': '!', '？': '?',
    '：': ':', '；': ';', '（': '(', '）': ')',
    '　': ' ',
}


def _build_fullwidth_table() -> Dict[int, str]:
    table = {ord(k): v for k, v in _FULLWIDTH_PUNCTUATION.items()}
    for offset in range(10):
        table[ord('０') + offset] = chr(ord('0') + offset)
    for offset in range(26):
        table[ord('Ａ') + offset] = chr(ord('A') + offset)
        table[ord('ａ') + offset] = chr(ord('a') + offset)
    return table


FULLWIDTH_TO_HALFWIDTH = _build_fullwidth_table()

_SCRIPT_RE = re.compile(r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>', re.I)
_STYLE_RE = re.compile(r'<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>', re.I)
_TAG_RE = re.compile(r'<[^>]+>')

_URL_RE = re.compile(r'https?://\S+')
_EMAIL_RE = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')

# Applied in order; images before links so "![alt](src)" is not kept as link text
_MARKDOWN_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(r'```[\s\S]*?```'), ' '),
    (re.compile(r'`[^`]+`'), ' '),
    (re.compile(r'(\*\*|__)(.*?)\1'), r'\2'),
    (re.compile(r'(\*|_)(.*?)\1'), r'\2'),
    (re.compile(r'!\[([^\]]*)\]\([^)]+\)'), ''),
    (re.compile(r'\[([^\]]+)\]\([^)]+\)'), r'\1'),
    (re.compile(r'^[-*_]{3,}\s*$', re.M), ''),
    (re.compile(r'^>\s+', re.M), ''),
    (re.compile(r'^[ \t]*[-*+]\s+', re.M), ''),
    (re.compile(r'^[ \t]*\d+\.\s+', re.M), ''),
]
_HEADING_MARKER_RE = re.compile(r'^#{1,6}\s+', re.M)


def remove_html_tags(content: str) -> str:
    """Drop script/style blocks and markup, then decode entities."""
    content = _SCRIPT_RE.sub('', content)
    content = _STYLE_RE.sub('', content)
    content = _TAG_RE.sub(' ', content)
    return html.unescape(content).replace('\xa0', ' ')


def remove_noise_patterns(content: str) -> str:
    for pattern in NOISE_PATTERNS:
        content = pattern.sub('', content)
    return content


def remove_markdown_syntax(content: str, preserve_headings: bool = False) -> str:
    """Remove Markdown markers while keeping link and emphasis text."""
    for pattern, replacement in _MARKDOWN_RULES:
        content = pattern.sub(replacement, content)

    if not preserve_headings:
        content = _HEADING_MARKER_RE.sub('', content)

    return content


def remove_urls(content: str) -> str:
    return _URL_RE.sub('', content)


def redact_emails(content: str) -> str:
    return _EMAIL_RE.sub(EMAIL_PLACEHOLDER, content)


def normalize_unicode(content: str) -> str:
    """NFC normalization plus full-width to half-width mapping."""
    return unicodedata.normalize('NFC', content).translate(FULLWIDTH_TO_HALFWIDTH)


def normalize_whitespace(content: str) -> str:
    content = content.replace('\r\n', '\n').replace('\r', '\n').replace('\t', ' ')
    content = re.sub(r'\n{3,}', '\n\n', content)
    content = re.sub(r' {2,}', ' ', content)
    return content.strip()


def compile_custom_patterns(patterns: Sequence[str]) -> List[Pattern[str]]:
    """Compile caller patterns, skipping any that are not valid regexes."""
    compiled = []
    for source in patterns:
        try:
            compiled.append(re.compile(source))
        except re.error as e:
            logger.debug(f"Skipping invalid custom cleaner pattern {source!r}: {e}")
    return compiled


class ContentCleaner:
    """
    Ordered cleaning pipeline with per-stage tracking.

    Stage order is fixed: HTML, noise, Markdown, URLs, emails, Unicode,
    whitespace, then custom patterns. Only the names of stages that changed
    the text are recorded; removed fragments are never retained.
    """

    def __init__(self, config: Optional[CleanerConfig] = None):
        self.config = config or CleanerConfig()
        self._custom_patterns = compile_custom_patterns(self.config.custom_patterns)

    def _stages(self) -> List[Tuple[bool, str, str, Callable[[str], str]]]:
        config = self.config
        return [
            (config.remove_html, 'html', 'HtmlStripper', remove_html_tags),
            (config.remove_noise, 'noise', 'NoiseFilter', remove_noise_patterns),
            (
                config.remove_markdown, 'markdown', 'MarkdownStripper',
                lambda text: remove_markdown_syntax(text, config.preserve_heading_structure),
            ),
            (config.remove_urls, 'urls', 'UrlRemover', remove_urls),
            (config.remove_emails, 'emails', 'EmailRedactor', redact_emails),
            (config.normalize_unicode, 'unicode', 'UnicodeNormalizer', normalize_unicode),
        ]

    def clean(self, raw: str) -> CleanedContent:
        """
        Run all enabled stages over raw content.

        Args:
            raw: Raw content as stored by the content source

        Returns:
            CleanedContent with the cleaned text and stage audit trail
        """
        cleaned = raw or ''
        removed_patterns: List[str] = []
        cleaners_applied: List[str] = []

        for enabled, pattern_name, cleaner_name, stage in self._stages():
            if not enabled:
                continue
            before = cleaned
            cleaned = stage(cleaned)
            if cleaned != before:
                removed_patterns.append(pattern_name)
                cleaners_applied.append(cleaner_name)

        # Whitespace always runs last among the built-in stages
        if self.config.normalize_whitespace:
            cleaned = normalize_whitespace(cleaned)
            cleaners_applied.append('WhitespaceNormalizer')

        for pattern in self._custom_patterns:
            before = cleaned
            cleaned = pattern.sub('', cleaned)
            if cleaned != before:
                removed_patterns.append(pattern.pattern)
                cleaners_applied.append('CustomPattern')

        logger.debug(
            f"Cleaned content {len(raw or '')} -> {len(cleaned)} chars "
            f"(stages: {', '.join(cleaners_applied) or 'none'})"
        )

        return CleanedContent(
            raw=raw or '',
            cleaned=cleaned,
            removed_patterns=removed_patterns,
            cleaners_applied=cleaners_applied,
        )


def clean_content(raw: str, config: Optional[CleanerConfig] = None) -> CleanedContent:
    """Clean raw content with the given (or default) cleaner configuration."""
    return ContentCleaner(config).clean(raw)
