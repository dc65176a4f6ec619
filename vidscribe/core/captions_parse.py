"""
Caption parsing strategy: subtitle dialect → plain transcript text.

Parsers are tried in registration order; the first whose ``can_parse``
accepts the content wins. Keeps only cue text (no timing lines, cue ids or
header/NOTE/STYLE blocks), strips inline markup, drops the
consecutive duplicates rolling auto-captions produce and collapses whitespace.
"""

import html
import re
import logging

from vidscribe.core.error_codes import UnsupportedFormatError

logger = logging.getLogger(__name__)

# Regex patterns shared by the dialects
_VTT_TIMESTAMP_RE = re.compile(r'(?:\d{2}:)?\d{2}:\d{2}\.\d{3}\s*-->')
_SRT_TIMESTAMP_RE = re.compile(r'\d{2}:\d{2}:\d{2},\d{3}\s*-->\s*\d{2}:\d{2}:\d{2},\d{3}')
_CUE_TIMING_LINE_RE = re.compile(r'^\s*(?:\d+:)?\d{2}:\d{2}[.,]\d{3}\s*-->.*$')
_INLINE_TIMESTAMP_RE = re.compile(r'<\d{2}:\d{2}:\d{2}[.,]\d{3}>')
_HTML_TAG_RE = re.compile(r'</?[^>]+>')
_SSA_TAG_RE = re.compile(r'\{\\[^}]*\}')
_WHITESPACE_RE = re.compile(r'\s+')


def _clean_line(line: str) -> str:
    line = _INLINE_TIMESTAMP_RE.sub('', line)
    line = _HTML_TAG_RE.sub('', line)
    line = _SSA_TAG_RE.sub('', line)
    line = html.unescape(line)
    return _WHITESPACE_RE.sub(' ', line).strip()


def _cue_text_lines(content: str) -> list[str]:
    """
    Text lines of every cue, in order.

    Blocks are separated by blank lines. Only lines after a timing line
    belong to a cue; anything before it (cue ids) and any block without a
    timing line (WEBVTT header, NOTE, STYLE, REGION) carries no text.
    """
    lines = []
    in_cue = False
    for raw in content.lstrip('\ufeff').splitlines():
        stripped = raw.strip()
        if not stripped:
            in_cue = False
            continue
        if _CUE_TIMING_LINE_RE.match(stripped):
            in_cue = True
            continue
        if in_cue:
            lines.append(_clean_line(stripped))
    return lines


def _join_cues(lines: list[str]) -> str:
    """Drop consecutive duplicates and join into a single reading-order string."""
    out = []
    for line in lines:
        if not line:
            continue
        if out and line == out[-1]:
            continue
        out.append(line)
    return _WHITESPACE_RE.sub(' ', ' '.join(out)).strip()


class CaptionParser:
    """Base strategy. ``can_parse`` must be cheap and side-effect-free."""

    name = "base"

    def can_parse(self, content: str) -> bool:
        raise NotImplementedError

    def parse(self, content: str) -> str:
        raise NotImplementedError


class VttCaptionParser(CaptionParser):
    name = "vtt"

    def can_parse(self, content: str) -> bool:
        if not content:
            return False
        head = content.lstrip('\ufeff').lstrip()
        return (head.startswith('WEBVTT')
                or 'kind: captions' in head[:500].lower()
                or _VTT_TIMESTAMP_RE.search(content) is not None)

    def parse(self, content: str) -> str:
        return _join_cues(_cue_text_lines(content))


class SrtCaptionParser(CaptionParser):
    name = "srt"

    def can_parse(self, content: str) -> bool:
        return bool(content) and _SRT_TIMESTAMP_RE.search(content) is not None

    def parse(self, content: str) -> str:
        return _join_cues(_cue_text_lines(content))


class CaptionParserFactory:
    """Ordered strategy table: the first parser whose sniff matches wins."""

    def __init__(self, parsers: list[CaptionParser] | None = None):
        if parsers is None:
            parsers = [VttCaptionParser(), SrtCaptionParser()]
        self.parsers = list(parsers)

    def register(self, parser: CaptionParser):
        """Append a dialect; earlier registrations take precedence."""
        self.parsers.append(parser)

    def get_parser(self, content: str) -> CaptionParser:
        for parser in self.parsers:
            if parser.can_parse(content):
                return parser
        raise UnsupportedFormatError("No suitable parser found for the caption content")


class CaptionService:
    """Isolates callers from caption format churn."""

    def __init__(self, parser_factory: CaptionParserFactory | None = None):
        self.parser_factory = parser_factory or CaptionParserFactory()

    def extract_transcription(self, content: str) -> str:
        """
        Return clean transcription text, or "" when the content cannot be
        parsed. Never raises: extraction failure degrades to the fallback path.
        """
        try:
            parser = self.parser_factory.get_parser(content)
            text = parser.parse(content)
        except UnsupportedFormatError:
            logger.info("Caption format not recognised — using transcript fallback")
            return ""
        except Exception as e:
            logger.warning("Caption parse failed: %s", e)
            return ""
        logger.info("Parsed %d characters of %s captions", len(text), parser.name)
        return text
