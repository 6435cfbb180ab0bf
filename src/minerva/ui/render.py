"""HTML rendering for assistant answers and book cards."""

from __future__ import annotations

import html
import re
from typing import Sequence

from minerva.models import NormalizedBook, ProcessedContent

AMAZON_URL = (
    "https://www.amazon.com/gp/product/{asin}/ref=as_li_tl?ie=UTF8&camp=1789&creative=9325"
    "&creativeASIN={asin}&linkCode=as2&tag=allaboutromance"
)
REVIEW_URL = "https://allaboutromance.com/?p={post_id}"
LOADING_PLACEHOLDER = '<div class="minerva-loading">Minerva is looking through the reviews…</div>'

GRADE_COLORS = {
    "A+": "bg-emerald-500",
    "A": "bg-emerald-400",
    "A-": "bg-emerald-300",
    "B+": "bg-blue-500",
    "B": "bg-blue-400",
    "B-": "bg-blue-300",
    "C+": "bg-yellow-500",
    "C": "bg-yellow-400",
    "C-": "bg-yellow-300",
    "D+": "bg-orange-500",
    "D": "bg-orange-400",
    "D-": "bg-orange-300",
    "F": "bg-red-500",
}
SENSUALITY_COLORS = {
    "Burning": "bg-red-500/20 text-red-200",
    "Hot": "bg-orange-500/20 text-orange-200",
    "Warm": "bg-yellow-500/20 text-yellow-200",
    "Subtle": "bg-blue-500/20 text-blue-200",
    "Kisses": "bg-pink-500/20 text-pink-200",
    "None": "bg-gray-500/20 text-gray-200",
}

_HEADER_RE = re.compile(r"^(#{1,3})\s+(.*)$")
_BULLET_RE = re.compile(r"^\s*(?:•|-|\*)\s+(.*)$")
_QUOTE_RE = re.compile(r"^\s*>\s?(.*)$")
_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<![*\w])\*(?!\s)(.+?)(?<!\s)\*(?![*\w])")


def _inline(text: str) -> str:
    escaped = html.escape(text, quote=True)
    escaped = _LINK_RE.sub(r'<a href="\2" target="_blank" rel="noopener noreferrer">\1</a>', escaped)
    escaped = _BOLD_RE.sub(r"<strong>\1</strong>", escaped)
    return _ITALIC_RE.sub(r"<em>\1</em>", escaped)


def markdown_to_html(text: str) -> str:
    """Convert the answer's markdown subset to HTML.

    Must be applied to raw answer text only; running it on its own output
    would escape the generated tags.
    """

    parts: list[str] = []
    bullets: list[str] = []

    def flush_bullets() -> None:
        if bullets:
            parts.append("<ul>" + "".join(f"<li>{item}</li>" for item in bullets) + "</ul>")
            bullets.clear()

    for line in text.split("\n"):
        if not line.strip():
            flush_bullets()
            continue
        bullet = _BULLET_RE.match(line)
        if bullet:
            bullets.append(_inline(bullet.group(1).strip()))
            continue
        flush_bullets()
        header = _HEADER_RE.match(line.strip())
        quote = _QUOTE_RE.match(line)
        if header:
            level = len(header.group(1))
            parts.append(f"<h{level}>{_inline(header.group(2).strip())}</h{level}>")
        elif quote:
            parts.append(f"<blockquote>{_inline(quote.group(1).strip())}</blockquote>")
        else:
            parts.append(f"<p>{_inline(line.strip())}</p>")
    flush_bullets()
    return "\n".join(parts)


def review_link(book: NormalizedBook) -> str:
    if book.post_id:
        return REVIEW_URL.format(post_id=book.post_id)
    return book.review_url


def render_book_card(book: NormalizedBook) -> str:
    title = html.escape(book.title)
    author = html.escape(book.author)
    if book.featured_image:
        cover = f'<img class="book-cover" src="{html.escape(book.featured_image)}" alt="Cover of {title}"/>'
    else:
        cover = '<div class="book-cover book-cover--placeholder"></div>'
    badges: list[str] = []
    if book.grade:
        color = GRADE_COLORS.get(book.grade, "bg-[#7f85c2]/50")
        badges.append(f'<span class="badge badge-grade {color}">{html.escape(book.grade)}</span>')
    if book.sensuality:
        color = SENSUALITY_COLORS.get(book.sensuality, "bg-white/10 text-white")
        badges.append(f'<span class="badge badge-sensuality {color}">{html.escape(book.sensuality)}</span>')
    tags = "".join(f'<span class="badge badge-type">{html.escape(kind)}</span>' for kind in book.book_types)
    actions: list[str] = []
    if book.asin:
        href = html.escape(AMAZON_URL.format(asin=book.asin))
        actions.append(f'<a class="button button-buy" href="{href}" target="_blank" rel="noopener noreferrer">Buy on Amazon</a>')
    link = review_link(book)
    if link:
        actions.append(
            f'<a class="button button-review" href="{html.escape(link)}" target="_blank" rel="noopener noreferrer">Read Review</a>'
        )
    return (
        '<div class="book-card">'
        f"{cover}"
        '<div class="book-details">'
        f'<h3 class="book-title">{title}</h3>'
        f'<p class="book-author">by {author}</p>'
        f'<div class="book-badges">{"".join(badges)}</div>'
        f'<div class="book-types">{tags}</div>'
        f'<div class="book-actions">{"".join(actions)}</div>'
        "</div></div>"
    )


def render_books(books: Sequence[NormalizedBook]) -> str:
    return "".join(render_book_card(book) for book in books)


def render_message(processed: ProcessedContent) -> str:
    """Render cards followed by prose, or a placeholder while not ready."""

    if not processed.ready:
        return LOADING_PLACEHOLDER
    if processed.error:
        return f'<div class="minerva-message"><p>{html.escape(processed.content)}</p></div>'
    cards = render_books(processed.books)
    cards_html = f'<div class="book-cards">{cards}</div>' if cards else ""
    return f'{cards_html}<div class="minerva-message">{processed.content}</div>'
