from __future__ import annotations

from unittest.mock import patch

from sourcerank.tools.content_extractor import extract_main_content


def test_soup_extraction_drops_non_content_elements():
    html = (
        "<html><head><title>Title</title><script>x()</script></head><body>"
        "<nav>menu</nav><p>Alpha\n\n beta</p><iframe src='a'></iframe>"
        "<svg><text>chart</text></svg><p>gamma</p><footer>foot</footer></body></html>"
    )

    result = extract_main_content("https://x.example", html, mode="soup")

    assert result.method == "soup"
    assert result.title == "Title"
    assert result.text == "Alpha beta gamma"
    assert result.raw_length == len(html)


def test_extraction_clips_long_pages():
    html = "<html><body><p>" + ("word " * 100) + "</p></body></html>"

    result = extract_main_content("https://x.example", html, mode="soup", max_chars=20)

    assert result.text.endswith("...")
    assert len(result.text) == 23


def test_trafilatura_mode_uses_trafilatura_output():
    with patch("trafilatura.extract", return_value="Main   article\nbody") as extract:
        result = extract_main_content("https://x.example", "<html><body>x</body></html>", mode="trafilatura")

    extract.assert_called_once()
    assert result.method == "trafilatura"
    assert result.text == "Main article body"


def test_trafilatura_mode_falls_back_to_soup_when_empty():
    with patch("trafilatura.extract", return_value=None):
        result = extract_main_content(
            "https://x.example", "<html><body><p>fallback text</p></body></html>", mode="trafilatura"
        )

    assert result.method == "soup"
    assert result.text == "fallback text"
