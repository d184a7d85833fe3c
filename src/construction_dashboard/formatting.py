"""Rendering helpers for delivering plain-text emails.

- :func:`render_outlook_html` turns a generated plain-text body into the
  HTML sent through Outlook, coloring the section icons. Rendering goes
  through a Jinja2 template shipped in ``templates/`` with autoescaping on,
  so subjects typed by users cannot inject markup.
- :func:`build_mailto_url` builds the mail-compose link used when Outlook is
  not available.
- :func:`manual_copy_text` is the text offered for manual copy when delivery
  failed outright.
"""

import re
from functools import lru_cache
from urllib.parse import quote

from jinja2 import Environment, PackageLoader, select_autoescape

from .models import GeneratedEmail

ICON_COLORS = {
    "🔴": "red",
    "🟡": "orange",
    "🟢": "green",
    "📋": "blue",
    "📊": "purple",
}

_ICON_PATTERN = re.compile("(" + "|".join(map(re.escape, ICON_COLORS)) + ")")


@lru_cache(maxsize=1)
def _environment() -> Environment:
    return Environment(
        loader=PackageLoader("construction_dashboard", "templates"),
        autoescape=select_autoescape(["html"]),
    )


def _segments(line: str) -> list[dict[str, str]]:
    segments = []
    for part in _ICON_PATTERN.split(line):
        if part:
            segments.append({"text": part, "color": ICON_COLORS.get(part, "")})
    return segments


def render_outlook_html(body: str) -> str:
    """
    Render a plain-text email body as Outlook HTML.

    Each line becomes one ``<br>``-terminated line; the colored status icons
    are wrapped in styled spans.

    Args:
        body: Plain-text body.

    Returns:
        str: HTML fragment.
    """
    template = _environment().get_template("outlook_email.html")
    lines = [_segments(line) for line in body.rstrip("\n").split("\n")]
    return template.render(lines=lines)


def build_mailto_url(to: str, subject: str, body: str) -> str:
    """Build a ``mailto:`` link with an encoded subject and body."""
    return (
        f"mailto:{quote(to, safe='@')}"
        f"?subject={quote(subject, safe='')}&body={quote(body, safe='')}"
    )


def manual_copy_text(email: GeneratedEmail) -> str:
    """Full email text for manual copy into a mail client."""
    return f"To: {email.to}\nSubject: {email.subject}\n\n{email.body}"
