"""HTML receipt rendering using Jinja2."""
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from ledger.config import settings
from ledger.utils.currency import format_amount_for_currency
from ledger.utils.dates import format_period_date

if TYPE_CHECKING:
    from ledger.models.invoice import Invoice

logger = structlog.get_logger(__name__)


class ReceiptService:
    """Service for rendering invoice receipts with branding."""

    def __init__(self):
        """Initialize receipt service with Jinja2 template environment."""
        templates_dir = Path(__file__).parent.parent / "templates"
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html"]),
        )

        # Add custom filters
        self.env.filters["format_currency"] = format_amount_for_currency
        self.env.filters["period_date"] = format_period_date

    def render_html(self, invoice: "Invoice") -> str:
        """
        Render an invoice as a standalone HTML receipt.

        Args:
            invoice: Invoice with its items loaded

        Returns:
            HTML document
        """
        template = self.env.get_template("receipt.html")
        html = template.render(invoice=invoice, company_name=settings.company_name)

        logger.debug("receipt_rendered", invoice_id=str(invoice.id), size=len(html))
        return html

    def subject(self, invoice: "Invoice") -> str:
        """Email subject line for a receipt."""
        return f"Receipt for invoice {invoice.id}"
