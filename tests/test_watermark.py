"""Tests for the certification watermark."""

from datetime import date

from sparkvertex.utils.watermark import find_watermark_id, inject_watermark, new_watermark_id

PAGE = (
    "<!doctype html>\n<html>\n<head>\n<meta charset=\"gbk\">\n<title>Clock</title>\n</head>\n"
    "<body>\n<div id=\"clock\"></div>\n</body>\n</html>"
)


def _mark(html: str) -> str:
    return inject_watermark(html, watermark_id="abc123", today=date(2026, 3, 1))


def test_marks_a_full_document() -> None:
    marked = _mark(PAGE)

    assert marked.startswith("<!DOCTYPE html>\n<!--\n")
    assert "🛡️ SparkVertex Certified" in marked
    assert "  Date: 2026-03-01\n  ID: abc123\n" in marked
    assert '<meta charset="UTF-8">' in marked
    assert 'charset="gbk"' not in marked
    assert '<head>\n    <meta name="spark-vertex-id" content="abc123">\n    <meta name="generator" content="SparkVertex">' in marked
    assert 'window.SPARK_VERTEX_ID = "abc123";' in marked
    assert marked.index("SPARK_VERTEX_ID") < marked.index("</body>")


def test_is_idempotent() -> None:
    marked = _mark(PAGE)

    assert inject_watermark(marked) == marked
    assert find_watermark_id(marked) == "abc123"


def test_adds_charset_when_missing() -> None:
    marked = _mark("<html><head><title>x</title></head><body></body></html>")

    assert marked.count('<meta charset="UTF-8">') == 1
    assert marked.startswith("<!--\n")


def test_fragment_without_head_or_body() -> None:
    marked = _mark("<div>hello</div>")

    assert marked.startswith("<!--\n")
    assert "<div>hello</div>" in marked
    assert 'name="spark-vertex-id"' not in marked
    assert marked.rstrip().endswith("</script>")


def test_only_first_body_close_gets_the_script() -> None:
    marked = _mark("<html><head></head><body><template></body></template></body></html>")

    assert marked.count("SPARK_VERTEX_ID = ") == 1


def test_generated_ids_are_base36() -> None:
    first, second = new_watermark_id(), new_watermark_id()

    assert first != second
    assert len(first) == 22
    assert set(first) <= set("0123456789abcdefghijklmnopqrstuvwxyz")


def test_unmarked_document_has_no_id() -> None:
    assert find_watermark_id(PAGE) is None
