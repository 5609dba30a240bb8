"""Tests for the DuckDuckGo search tool."""

from unittest.mock import patch

import pytest
import requests

from search_tools import (
    HEADERS,
    NetworkFailure,
    ParseFailure,
    RateLimited,
    SEARCH_URL,
    SearchError,
    SearchResult,
    _to_result,
    format_results,
    parse_results_page,
    search_web,
)
from tests.pages import ddg_page, ddg_result, fake_response, make_results, page_with


class TestSearchWeb:
    def test_returns_results_in_page_order(self, session):
        session.get.return_value = fake_response(200, page_with(make_results(3)))

        results = list(search_web("wasm", 5, session=session))

        assert results == [
            SearchResult("Result 1", "https://example1.com/page", "Snippet number 1"),
            SearchResult("Result 2", "https://example2.com/page", "Snippet number 2"),
            SearchResult("Result 3", "https://example3.com/page", "Snippet number 3"),
        ]

    @pytest.mark.parametrize("limit", [1, 2, 5, 10])
    def test_never_exceeds_limit(self, session, limit):
        session.get.return_value = fake_response(200, page_with(make_results(7)))
        results = list(search_web("wasm", limit, session=session))
        assert len(results) == min(limit, 7)

    def test_single_request_with_query_and_timeout(self, session):
        session.get.return_value = fake_response(200, page_with(make_results(1)))

        search_web("rust async", 3, session=session, timeout=2.5)

        session.get.assert_called_once_with(
            SEARCH_URL, params={"q": "rust async"}, headers=HEADERS, timeout=2.5
        )

    def test_iterator_is_not_restartable(self, session):
        session.get.return_value = fake_response(200, page_with(make_results(2)))
        results = search_web("wasm", 5, session=session)
        assert len(list(results)) == 2
        assert list(results) == []

    def test_zero_results_is_empty_not_error(self, session):
        session.get.return_value = fake_response(200, ddg_page())
        assert list(search_web("zxqv nothing", 5, session=session)) == []

    def test_invalid_limit(self, session):
        with pytest.raises(ValueError):
            search_web("wasm", 0, session=session)
        session.get.assert_not_called()

    def test_uses_requests_without_session(self):
        with patch("search_tools.requests.get") as mock_get:
            mock_get.return_value = fake_response(200, page_with(make_results(1)))
            results = list(search_web("wasm", 5))
        mock_get.assert_called_once()
        assert results[0].url == "https://example1.com/page"


class TestSearchErrors:
    @pytest.mark.parametrize("status", [301, 400, 403, 404, 500, 503])
    def test_non_2xx_is_network_failure(self, session, status):
        session.get.return_value = fake_response(status, page_with(make_results(3)))

        with pytest.raises(NetworkFailure) as exc:
            search_web("wasm", 5, session=session)

        assert exc.value.status_code == status
        assert str(status) in str(exc.value)

    def test_429_is_rate_limited(self, session):
        session.get.return_value = fake_response(429, "")
        with pytest.raises(RateLimited) as exc:
            search_web("wasm", 5, session=session)
        assert isinstance(exc.value, NetworkFailure)

    def test_connection_error(self, session):
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkFailure) as exc:
            search_web("wasm", 5, session=session)
        assert exc.value.status_code is None
        assert isinstance(exc.value.__cause__, requests.ConnectionError)

    def test_timeout(self, session):
        session.get.side_effect = requests.Timeout("too slow")
        with pytest.raises(NetworkFailure):
            search_web("wasm", 5, session=session)

    def test_unrecognized_body_is_parse_failure(self, session):
        session.get.return_value = fake_response(200, "<html><body><p>Captcha</p></body></html>")
        with pytest.raises(ParseFailure):
            search_web("wasm", 5, session=session)

    def test_json_body_is_parse_failure(self, session):
        session.get.return_value = fake_response(200, '{"error": "nope"}')
        with pytest.raises(ParseFailure):
            search_web("wasm", 5, session=session)

    def test_all_errors_are_search_errors(self):
        for cls in (NetworkFailure, RateLimited, ParseFailure):
            assert issubclass(cls, SearchError)


class TestParsing:
    def _parse(self, html):
        return [r for r in map(_to_result, parse_results_page(html)) if r]

    def test_unwraps_redirect_url(self):
        html = ddg_page(ddg_result("Docs", "https://webassembly.org/docs/?a=1&b=2", "About wasm"))
        [result] = self._parse(html)
        assert result.url == "https://webassembly.org/docs/?a=1&b=2"

    def test_skips_ads(self):
        html = ddg_page(
            ddg_result("Buy now", "https://ads.example.com", "Ad", ad=True),
            ddg_result("Real", "https://real.example.com", "Organic"),
        )
        assert [r.title for r in self._parse(html)] == ["Real"]

    def test_direct_links(self):
        html = ddg_page(
            '<div class="result"><a class="result__a" href="https://direct.example.com/x">Direct</a></div>'
        )
        [result] = self._parse(html)
        assert result.url == "https://direct.example.com/x"
        assert result.snippet == ""

    def test_empty_title_falls_back_to_domain(self):
        html = ddg_page(ddg_result("", "https://www.rust-lang.org/learn", "Learn Rust"))
        [result] = self._parse(html)
        assert result.title == "www.rust-lang.org"

    def test_skips_blocks_without_usable_link(self):
        html = ddg_page(
            '<div class="result"><span>no link</span></div>',
            '<div class="result"><a class="result__a" href="javascript:void(0)">Bad</a></div>',
            '<div class="result"><a class="result__a" href="//duckduckgo.com/y.js?ad=1">Tracker</a></div>',
            ddg_result("Good", "https://good.example.com", "ok"),
        )
        assert [r.url for r in self._parse(html)] == ["https://good.example.com"]

    def test_snippet_text_is_flattened(self):
        html = ddg_page(ddg_result("T", "https://t.example.com", "Fast <b>WebAssembly</b> runtime"))
        [result] = self._parse(html)
        assert result.snippet == "Fast WebAssembly runtime"

    def test_inline_markup_does_not_split_words(self):
        html = ddg_page(ddg_result(
            "<b>Web</b>Assembly",
            "https://webassembly.org",
            "Use <b>wasm</b>-bindgen today",
        ))
        [result] = self._parse(html)
        assert result.title == "WebAssembly"
        assert result.snippet == "Use wasm-bindgen today"

    def test_whitespace_inside_text_is_collapsed(self):
        html = ddg_page(ddg_result("Rust\n   Book", "https://doc.rust-lang.org", "  The   book \n"))
        [result] = self._parse(html)
        assert (result.title, result.snippet) == ("Rust Book", "The book")

    def test_results_container_without_blocks_is_empty(self):
        assert parse_results_page('<div id="links"></div>') == []


class TestFormatResults:
    def test_numbered_markdown(self):
        text = format_results("q", [
            SearchResult("One", "https://one.example", "first"),
            SearchResult("Two", "https://two.example", ""),
        ])
        assert text.startswith("1. **One**")
        assert "   first" in text
        assert "   URL: https://one.example" in text
        assert "2. **Two**" in text
        assert text.count("URL:") == 2

    def test_empty(self):
        assert format_results("rare topic", []) == "No results found for: rare topic"
