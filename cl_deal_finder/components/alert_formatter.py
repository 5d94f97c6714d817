"""
Digest email formatting for the Craigslist Deal Finder.

Renders one HTML email (with a plain-text alternative) summarising every
good deal found by a single scan of a saved search.
"""

import html
from typing import List, Optional

from ..models.alert import DealAlert, DigestRequest, FormattedDigest

ACCENT_COLOR = "#00d4aa"
EXCEPTIONAL_SCORE = 80
FOOTER_NOTE = "Prices are AI-estimated. Always verify before purchasing."


def format_cents(cents: Optional[int]) -> str:
    """Format a cents amount for display, e.g. ``$1,250``."""
    if cents is None:
        return "Price not listed"
    if cents % 100 == 0:
        return f"${cents // 100:,}"
    return f"${cents / 100:,.2f}"


def _plural(count: int) -> str:
    return "s" if count > 1 else ""


def _score_badge_colors(score: int):
    if score >= EXCEPTIONAL_SCORE:
        return "#dcfce7", "#166534"
    return "#fef9c3", "#854d0e"


class DigestFormatter:
    """Formats a scan's good deals into a single digest email."""

    def format_digest(self, request: DigestRequest) -> FormattedDigest:
        """
        Render a digest email.

        Args:
            request: Recipient, search context and the deals to include

        Returns:
            FormattedDigest: Subject, HTML and text bodies
        """
        request.validate()
        count = len(request.deals)

        digest = FormattedDigest(
            recipient=request.recipient_email,
            subject=f'🎯 {count} new deal{_plural(count)} for "{request.search_query}"',
            html=self._render_html(request),
            text=self._render_text(request),
        )
        digest.validate()
        return digest

    def _render_card(self, deal: DealAlert) -> str:
        url = html.escape(deal.url, quote=True)
        background, color = _score_badge_colors(deal.deal_score)

        image = ""
        if deal.image_url:
            image = (
                f'<img src="{html.escape(deal.image_url, quote=True)}" alt="" '
                'style="width: 120px; height: 90px; object-fit: cover; border-radius: 8px;">'
            )

        retail = ""
        if deal.retail_price_range:
            retail = (
                '<p style="margin: 8px 0 0 0; font-size: 13px; color: #888;">'
                f"Retail: {format_cents(deal.retail_price_range.low)} - "
                f"{format_cents(deal.retail_price_range.high)}</p>"
            )

        return f"""
        <div style="border: 1px solid #e0e0e0; border-radius: 12px; padding: 20px; margin-bottom: 16px; background: #fff;">
            <div style="display: flex; gap: 16px;">
                {image}
                <div style="flex: 1;">
                    <h3 style="margin: 0 0 8px 0; font-size: 16px;">
                        <a href="{url}" style="color: #1a1a1a; text-decoration: none;">{html.escape(deal.title)}</a>
                    </h3>
                    <div style="font-size: 24px; font-weight: 700; color: {ACCENT_COLOR}; margin-bottom: 8px;">
                        {format_cents(deal.price)}
                    </div>
                    <div style="display: inline-block; background: {background}; color: {color}; padding: 4px 12px; border-radius: 100px; font-size: 13px; font-weight: 600;">
                        Score: {deal.deal_score}/100
                    </div>
                </div>
            </div>
            <p style="margin: 12px 0 0 0; font-size: 14px; color: #666; line-height: 1.5;">
                {html.escape(deal.reasoning)}
            </p>
            {retail}
            <a href="{url}" style="display: inline-block; margin-top: 12px; background: {ACCENT_COLOR}; color: #000; padding: 10px 20px; border-radius: 8px; text-decoration: none; font-weight: 600; font-size: 14px;">
                View on Craigslist →
            </a>
        </div>"""

    def _render_html(self, request: DigestRequest) -> str:
        count = len(request.deals)
        cards = "".join(self._render_card(deal) for deal in request.deals)
        query = html.escape(request.search_query)
        zipcode = html.escape(request.zipcode)

        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: #f5f5f5; margin: 0; padding: 20px;">
    <div style="max-width: 600px; margin: 0 auto; background: #fff; border-radius: 16px; overflow: hidden; box-shadow: 0 4px 6px rgba(0,0,0,0.1);">
        <div style="background: #0a0a0a; color: #fff; padding: 24px; text-align: center;">
            <h1 style="margin: 0; font-size: 24px;">🎯 New Deals Found!</h1>
            <p style="margin: 8px 0 0 0; color: #888; font-size: 14px;">
                {count} great deal{_plural(count)} for &quot;{query}&quot; near {zipcode}
            </p>
        </div>
        <div style="padding: 24px;">
            {cards}
        </div>
        <div style="background: #f9f9f9; padding: 16px 24px; text-align: center; border-top: 1px solid #e0e0e0;">
            <p style="margin: 0; font-size: 12px; color: #888;">
                {FOOTER_NOTE}
            </p>
        </div>
    </div>
</body>
</html>"""

    def _render_text(self, request: DigestRequest) -> str:
        count = len(request.deals)
        lines: List[str] = [
            f'{count} great deal{_plural(count)} for "{request.search_query}" '
            f"near {request.zipcode}",
            "",
        ]

        for deal in request.deals:
            lines.append(f"{deal.title} - {format_cents(deal.price)}")
            lines.append(f"Score: {deal.deal_score}/100")
            if deal.reasoning:
                lines.append(deal.reasoning)
            if deal.retail_price_range:
                lines.append(
                    f"Retail: {format_cents(deal.retail_price_range.low)} - "
                    f"{format_cents(deal.retail_price_range.high)}"
                )
            lines.append(deal.url)
            lines.append("")

        lines.append(FOOTER_NOTE)
        return "\n".join(lines)
