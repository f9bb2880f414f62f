"""
Tests for the content analyzer.
"""

import pytest

from site_audit.engines.base import Severity
from site_audit.engines.content.engine import ContentAnalyzer

from conftest import html_page

LONG_COPY = "<p>" + " ".join(["widget"] * 320) + "</p>"


class TestContentAnalyzer:

    @pytest.fixture
    def analyzer(self):
        return ContentAnalyzer()

    def test_clean_page(self, analyzer, page_factory):
        result = analyzer.analyze(page_factory(html_page(body="<h1>Widgets</h1>" + LONG_COPY)))
        assert result.issues == []
        assert result.score == 100.0
        assert result.metrics["word_count"] == 321
        assert result.metrics["h1_count"] == 1

    def test_five_images_two_missing_alt(self, analyzer, page_factory):
        images = (
            '<img src="1.png" alt="One">'
            '<img src="2.png">'
            '<img src="3.png" alt="Three">'
            '<img src="4.png">'
            '<img src="5.png" alt="">'
        )
        result = analyzer.analyze(page_factory(html_page(body="<h1>Gallery</h1>" + LONG_COPY + images)))
        missing = [i for i in result.issues if i.type == "images_missing_alt"]

        assert len(missing) == 2
        assert all(i.severity == Severity.WARNING for i in missing)
        assert [i.metadata["src"] for i in missing] == ["2.png", "4.png"]
        assert result.metrics["image_count"] == 5
        assert result.metrics["images_missing_alt"] == 2

    def test_missing_h1_is_critical(self, analyzer, page_factory):
        result = analyzer.analyze(page_factory(html_page(body=LONG_COPY)))
        assert [(i.type, i.severity) for i in result.issues] == [("missing_h1", Severity.CRITICAL)]

    def test_multiple_h1(self, analyzer, page_factory):
        result = analyzer.analyze(page_factory(html_page(body="<h1>A</h1><h1>B</h1>" + LONG_COPY)))
        assert [i.type for i in result.issues] == ["multiple_h1"]
        assert result.issues[0].metadata["count"] == 2

    def test_thin_content(self, analyzer, page_factory):
        result = analyzer.analyze(page_factory(html_page(body="<h1>Hi</h1><p>Short page.</p>")))
        thin = [i for i in result.issues if i.type == "thin_content"]
        assert thin and thin[0].metadata["word_count"] == 3

    def test_scripts_and_styles_not_counted(self, analyzer, page_factory):
        body = "<h1>Hi</h1><script>var a = 'lots of words here';</script><style>p { color: red }</style><p>two words</p>"
        result = analyzer.analyze(page_factory(html_page(body=body)))
        assert result.metrics["word_count"] == 3

    def test_heading_outline_metric(self, analyzer, page_factory):
        body = "<h1>A</h1><h2>B</h2><h2>C</h2><h3>D</h3>" + LONG_COPY
        result = analyzer.analyze(page_factory(html_page(body=body)))
        assert result.metrics["headings"] == {"h1": 1, "h2": 2, "h3": 1, "h4": 0, "h5": 0, "h6": 0}

    def test_analyzer_failure_is_contained(self, page_factory):
        class BrokenAnalyzer(ContentAnalyzer):
            def run(self, page, soup):
                raise RuntimeError("boom")

        result = BrokenAnalyzer().analyze(page_factory(html_page()))
        assert result.score == 0.0
        assert result.error_message == "boom"
        assert [i.type for i in result.issues] == ["analysis_error"]
