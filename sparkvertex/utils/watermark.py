"""Certification watermark for published single-file apps.

A watermarked document carries a header comment, a ``spark-vertex-id`` meta
tag and a small script that exposes the id as ``window.SPARK_VERTEX_ID``.
Watermarking is idempotent: a document that already has the meta tag is
returned unchanged.
"""

from __future__ import annotations

import re
import secrets
import string
from datetime import date

WATERMARK_META_NAME = 'name="spark-vertex-id"'

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_LENGTH = 22

_CHARSET_RE = re.compile(r"<meta[^>]*charset=[^>]*>", re.IGNORECASE)
_DOCTYPE_RE = re.compile(r"<!DOCTYPE html>", re.IGNORECASE)
_EXISTING_ID_RE = re.compile(r'<meta\s+name="spark-vertex-id"\s+content="([^"]*)"', re.IGNORECASE)


def new_watermark_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


def find_watermark_id(html: str) -> str | None:
    """Id of an existing watermark, or None when the document has none."""
    match = _EXISTING_ID_RE.search(html)
    return match.group(1) if match else None


def _header_comment(watermark_id: str, today: date) -> str:
    rule = "=" * 64
    return (
        "<!--\n"
        f"{rule}\n"
        "  🛡️ SparkVertex Certified\n"
        "\n"
        "  This content was generated/verified on SparkVertex.\n"
        "  Platform: SparkVertex (Local-First Geek Tools)\n"
        f"  Date: {today.isoformat()}\n"
        f"  ID: {watermark_id}\n"
        "\n"
        "  Philosophy: Single File, Local First, No Cloud.\n"
        f"{rule}\n"
        "-->"
    )


def _protection_script(watermark_id: str) -> str:
    return (
        "\n  <script>\n"
        "      (function(){\n"
        "          if(window.SPARK_VERTEX_ID) return;\n"
        f'          window.SPARK_VERTEX_ID = "{watermark_id}";\n'
        "      })();\n"
        "  </script>"
    )


def inject_watermark(
    html: str,
    *,
    watermark_id: str | None = None,
    today: date | None = None,
) -> str:
    """Stamp ``html`` with the SparkVertex header, meta tags and id script.

    The charset is forced to UTF-8 so the emoji in the header survives. Only
    the first ``<head>`` and ``</body>`` are touched; documents without them
    get the header prepended and the script appended.

    >>> marked = inject_watermark("<html><head></head><body></body></html>", watermark_id="abc")
    >>> inject_watermark(marked) == marked
    True
    """
    if WATERMARK_META_NAME in html:
        return html

    watermark_id = watermark_id or new_watermark_id()
    today = today or date.today()
    meta_tags = (
        f'\n    <meta name="spark-vertex-id" content="{watermark_id}">'
        '\n    <meta name="generator" content="SparkVertex">'
    )

    if _CHARSET_RE.search(html):
        html = _CHARSET_RE.sub('<meta charset="UTF-8">', html, count=1)
    else:
        html = html.replace("<head>", '<head>\n    <meta charset="UTF-8">', 1)

    header = _header_comment(watermark_id, today)
    if _DOCTYPE_RE.search(html):
        html = _DOCTYPE_RE.sub(lambda _: "<!DOCTYPE html>\n" + header, html, count=1)
    else:
        html = header + "\n" + html

    html = html.replace("<head>", "<head>" + meta_tags, 1)

    script = _protection_script(watermark_id)
    if "</body>" in html:
        html = html.replace("</body>", script + "\n</body>", 1)
    else:
        html += script
    return html
