from __future__ import annotations

from typing import Optional, Tuple
from xml.sax.saxutils import escape, quoteattr

BRAND_NAME = "PSU Leases"
BRAND_COLOR = "#5A67D8"


def _paragraphs(message: str) -> str:
    lines = (message or "").split("\n")
    return "".join(f'<p style="margin-bottom:12px">{escape(line)}</p>' for line in lines)


def render_invite_email(message: str, invite_link: Optional[str] = None) -> Tuple[str, str]:
    """Return `(html, text)` bodies for an invite or blast message."""
    button = ""
    if invite_link:
        button = (
            '<div style="margin:24px 0">'
            f"<a href={quoteattr(invite_link)} "
            f'style="background-color:{BRAND_COLOR};color:white;padding:12px 24px;'
            'border-radius:4px;text-decoration:none;display:inline-block;font-weight:bold">'
            f"Join {BRAND_NAME}</a></div>"
        )
    html = (
        '<div style="font-family:system-ui,-apple-system,sans-serif;color:#333;'
        'max-width:600px;margin:0 auto;padding:20px;line-height:1.6">'
        f'<h1 style="font-size:24px;font-weight:bold;margin-bottom:16px">{BRAND_NAME}</h1>'
        f'<div style="height:2px;background-color:{BRAND_COLOR};width:100%;margin-bottom:24px"></div>'
        f'<div style="font-size:16px;margin-bottom:24px">{_paragraphs(message)}</div>'
        f"{button}"
        f'<p style="font-size:12px;color:#888">You received this email from {BRAND_NAME}.</p>'
        "</div>"
    )
    text = message or ""
    if invite_link:
        text = f"{text}\n\nJoin {BRAND_NAME}: {invite_link}"
    return html, text
