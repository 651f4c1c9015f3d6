# -*- coding: utf-8 -*-
"""
Unit tests for report accumulation and rendering.
"""

from research_monitor.report import (
    PROGRESS_ANNOTATION,
    ReportAccumulator,
    fallback_render,
    strip_wrapper_fences,
)

REPORT_STAGE = "synthesize_and_report"


def _broken_renderer(text: str) -> str:
    raise RuntimeError("renderer exploded")


def test_chunks_are_appended_verbatim():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)

    for chunk in ("# Title", "\n", "body  ", "\n\n- item"):
        assert report.append_chunk(REPORT_STAGE, chunk) is True

    assert report.text == "# Title\nbody  \n\n- item"


def test_chunks_for_other_stages_are_ignored():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "kept")

    assert report.append_chunk("generate_search_queries", "dropped") is False
    assert report.text == "kept"


def test_chunks_before_stage_start_are_ignored():
    report = ReportAccumulator(REPORT_STAGE)

    assert report.append_chunk(REPORT_STAGE, "early") is False
    assert report.text == ""


def test_begin_stage_only_accepts_report_stage():
    report = ReportAccumulator(REPORT_STAGE)

    assert report.begin_stage("merge_search_results") is False
    assert report.streaming is False
    assert report.begin_stage(REPORT_STAGE) is True
    assert report.streaming is True


def test_begin_stage_discards_previous_text():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "old")

    report.begin_stage(REPORT_STAGE)

    assert report.text == ""


def test_streaming_render_carries_progress_annotation():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "# Title\nbody")

    rendered = report.render()

    assert rendered.streaming is True
    assert rendered.markup.endswith(PROGRESS_ANNOTATION)
    assert "<h1>Title</h1>" in rendered.markup


def test_finalized_render_has_no_annotation():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "# Title\nbody")

    assert report.finalize(REPORT_STAGE) is True
    rendered = report.render()

    assert rendered.streaming is False
    assert PROGRESS_ANNOTATION not in rendered.markup
    assert rendered.source == "# Title\nbody"


def test_finalize_other_stage_is_ignored():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)

    assert report.finalize("merge_search_results") is False
    assert report.streaming is True


def test_clear_resets_buffer():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "text")

    report.clear()

    assert report.text == ""
    assert report.active_stage_id is None


def test_wrapper_fences_are_stripped():
    assert strip_wrapper_fences("```markdown\n# Title\n```\n") == "# Title\n"
    assert strip_wrapper_fences("```\nplain\n```") == "plain\n"

    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "```markdown\n## Findings\n```")
    rendered = report.render()

    assert "```" not in rendered.source
    assert "<h2>Findings</h2>" in rendered.markup


def test_tables_render():
    report = ReportAccumulator(REPORT_STAGE)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "| a | b |\n|---|---|\n| 1 | 2 |\n")
    report.finalize(REPORT_STAGE)

    assert "<table>" in report.render().markup


def test_renderer_failure_uses_fallback():
    report = ReportAccumulator(REPORT_STAGE, renderer=_broken_renderer)
    report.begin_stage(REPORT_STAGE)
    report.append_chunk(REPORT_STAGE, "# Title\n## Sub\n### Minor\nsome **bold** <b>x</b>")

    rendered = report.render()

    assert rendered.used_fallback is True
    assert "<h1>Title</h1>" in rendered.markup
    assert "<h2>Sub</h2>" in rendered.markup
    assert "<h3>Minor</h3>" in rendered.markup
    assert "<strong>bold</strong>" in rendered.markup
    assert "&lt;b&gt;x&lt;/b&gt;" in rendered.markup
    assert rendered.markup.endswith(PROGRESS_ANNOTATION)


def test_fallback_render_converts_newlines():
    assert fallback_render("a\nb") == "a<br>b"
    assert fallback_render("# H\ntext") == "<h1>H</h1><br>text"
