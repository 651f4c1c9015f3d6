# -*- coding: utf-8 -*-
"""
Streaming report accumulation and rendering.

Only one stage produces the report. Its chunks are concatenated verbatim
(whitespace and newlines matter to the markdown) and re-rendered after every
chunk, with an in-progress annotation until the stage completes.
"""

import html
import re
from dataclasses import dataclass
from typing import Callable, Optional

from markdown_it import MarkdownIt

from research_monitor.logger_config import logger

MarkdownRenderer = Callable[[str], str]

PROGRESS_ANNOTATION = '<div class="report-progress">✍️ Generating...</div>'

# Code fences the model wraps the whole report in
_WRAPPER_FENCE_RE = re.compile(r"```markdown\n?|```\n?")

_H3_RE = re.compile(r"^### (.*)", re.MULTILINE)
_H2_RE = re.compile(r"^## (.*)", re.MULTILINE)
_H1_RE = re.compile(r"^# (.*)", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")


@dataclass(frozen=True)
class RenderedReport:
    """Render output handed to the view.

    Attributes:
        markup: Rendered HTML, with the progress annotation while streaming
        source: Markdown source after wrapper fences were stripped
        streaming: True until the report stage completes
        used_fallback: True if the markdown renderer failed
    """

    markup: str
    source: str
    streaming: bool
    used_fallback: bool = False


def strip_wrapper_fences(text: str) -> str:
    """Remove ```markdown / ``` fence markers wrapping the report."""
    return _WRAPPER_FENCE_RE.sub("", text)


def default_markdown_renderer() -> MarkdownRenderer:
    """CommonMark renderer with tables and strikethrough enabled."""
    md = MarkdownIt("commonmark", {"linkify": False}).enable(["table", "strikethrough"])
    return md.render


def fallback_render(text: str) -> str:
    """Minimal markup for when the markdown renderer fails. Never raises."""
    out = _H3_RE.sub(r"<h3>\1</h3>", text)
    out = _H2_RE.sub(r"<h2>\1</h2>", out)
    out = _H1_RE.sub(r"<h1>\1</h1>", out)
    out = _BOLD_RE.sub(r"<strong>\1</strong>", out)
    return out.replace("\n", "<br>")


class ReportAccumulator:
    """Text buffer for the report-producing stage."""

    def __init__(self, report_stage_id: str, renderer: Optional[MarkdownRenderer] = None):
        self.report_stage_id = report_stage_id
        self._renderer = renderer or default_markdown_renderer()
        self.active_stage_id: Optional[str] = None
        self.text = ""

    @property
    def streaming(self) -> bool:
        return self.active_stage_id is not None

    def clear(self) -> None:
        self.active_stage_id = None
        self.text = ""

    def begin_stage(self, stage_id: str) -> bool:
        if stage_id != self.report_stage_id:
            return False
        self.active_stage_id = stage_id
        self.text = ""
        return True

    def append_chunk(self, stage_id: str, chunk: str) -> bool:
        if self.active_stage_id is None or stage_id != self.active_stage_id:
            return False
        self.text += chunk
        return True

    def finalize(self, stage_id: str) -> bool:
        if self.active_stage_id is None or stage_id != self.active_stage_id:
            return False
        self.active_stage_id = None
        return True

    def render(self) -> RenderedReport:
        source = strip_wrapper_fences(self.text)
        used_fallback = False
        try:
            markup = self._renderer(source)
        except Exception as e:
            logger.warning(f"[Report] Markdown rendering failed, using fallback: {e}")
            markup = fallback_render(html.escape(source, quote=False))
            used_fallback = True

        if self.streaming:
            markup += PROGRESS_ANNOTATION
        return RenderedReport(markup=markup, source=source, streaming=self.streaming, used_fallback=used_fallback)
