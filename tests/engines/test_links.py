"""
Tests for URL normalization and link extraction.
"""

from site_audit.engines.crawler.links import LinkExtractor, URLNormalizer


# ─────────────────────────────────────────────
# URL Normalizer Tests
# ─────────────────────────────────────────────

class TestURLNormalizer:

    def test_normalizes_relative_url(self):
        result = URLNormalizer.normalize("/about", "https://example.com/")
        assert result == "https://example.com/about"

    def test_resolves_against_page_directory(self):
        result = URLNormalizer.normalize("team", "https://example.com/about/")
        assert result == "https://example.com/about/team"

    def test_removes_fragment(self):
        result = URLNormalizer.normalize("https://example.com/page#section", "https://example.com")
        assert result == "https://example.com/page"

    def test_removes_tracking_params(self):
        result = URLNormalizer.normalize(
            "https://example.com/page?utm_source=google&id=123&fbclid=abc",
            "https://example.com",
        )
        assert result == "https://example.com/page?id=123"

    def test_lowercases_scheme_and_host(self):
        assert URLNormalizer.normalize("HTTPS://Example.COM/Page") == "https://example.com/Page"

    def test_strips_default_port_only(self):
        assert URLNormalizer.normalize("https://example.com:443/a") == "https://example.com/a"
        assert URLNormalizer.normalize("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_skips_static_assets(self):
        assert URLNormalizer.normalize("https://example.com/doc.pdf") is None
        assert URLNormalizer.normalize("https://example.com/logo.PNG") is None
        assert URLNormalizer.normalize("https://example.com/sitemap.xml") is None

    def test_skips_non_http_schemes(self):
        assert URLNormalizer.normalize("mailto:test@example.com", "https://example.com") is None
        assert URLNormalizer.normalize("ftp://example.com/file") is None

    def test_malformed_url_returns_none(self):
        assert URLNormalizer.normalize("http://[::1/broken") is None

    def test_normalizes_trailing_slash(self):
        result = URLNormalizer.normalize("https://example.com/page/", "https://example.com")
        assert result == "https://example.com/page"

    def test_root_trailing_slash_preserved(self):
        assert URLNormalizer.normalize("https://example.com") == "https://example.com/"
        assert URLNormalizer.normalize("https://example.com/") == "https://example.com/"

    def test_site_root_strips_www(self):
        assert URLNormalizer.site_root("https://www.Example.com/x") == "example.com"

    def test_same_site_check(self):
        assert URLNormalizer.is_same_site("https://example.com/page", "example.com")
        assert URLNormalizer.is_same_site("https://www.example.com/page", "example.com")
        assert not URLNormalizer.is_same_site("https://blog.example.com/page", "example.com")
        assert URLNormalizer.is_same_site("https://blog.example.com/page", "example.com", include_subdomains=True)
        assert not URLNormalizer.is_same_site("https://notexample.com/page", "example.com", include_subdomains=True)
        assert not URLNormalizer.is_same_site("https://other.com/page", "example.com")


# ─────────────────────────────────────────────
# Link Extractor Tests
# ─────────────────────────────────────────────

class TestLinkExtractor:

    def test_extracts_same_site_links_in_document_order(self):
        html = """
        <a href="/b">B</a>
        <a href="/a#top">A</a>
        <a href="/b">B again</a>
        <a href="https://other.com/x">External</a>
        <a href="mailto:hello@example.com">Mail</a>
        <a href="javascript:void(0)">JS</a>
        <a href="tel:+15555555">Call</a>
        <a href="#section">Jump</a>
        <a href="">Empty</a>
        """
        extractor = LinkExtractor("https://example.com/")
        assert extractor.extract(html, "https://example.com/") == [
            "https://example.com/b",
            "https://example.com/a",
        ]

    def test_honors_base_href(self):
        html = '<head><base href="https://example.com/docs/"></head><body><a href="intro">Intro</a></body>'
        extractor = LinkExtractor("https://example.com/")
        assert extractor.extract(html, "https://example.com/") == ["https://example.com/docs/intro"]

    def test_malformed_base_href_is_ignored(self):
        html = '<head><base href="http://[broken"></head><body><a href="/a">A</a></body>'
        extractor = LinkExtractor("https://example.com/")
        assert extractor.extract(html, "https://example.com/page") == ["https://example.com/a"]

    def test_subdomains_excluded_by_default(self):
        html = '<a href="https://blog.example.com/post">Post</a><a href="/home">Home</a>'
        extractor = LinkExtractor("https://example.com/")
        assert extractor.extract(html, "https://example.com/") == ["https://example.com/home"]

    def test_subdomains_included_when_requested(self):
        html = '<a href="https://blog.example.com/post">Post</a>'
        extractor = LinkExtractor("https://www.example.com/", include_subdomains=True)
        assert extractor.root_domain == "example.com"
        assert extractor.extract(html, "https://www.example.com/") == ["https://blog.example.com/post"]

    def test_malformed_hrefs_are_skipped(self):
        html = '<a href="http://[::1/broken">Bad</a><a href="/ok">Ok</a>'
        extractor = LinkExtractor("https://example.com/")
        assert extractor.extract(html, "https://example.com/") == ["https://example.com/ok"]

    def test_empty_document(self):
        extractor = LinkExtractor("https://example.com/")
        assert extractor.extract("", "https://example.com/") == []
