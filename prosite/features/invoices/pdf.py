"""
Invoice PDF rendering.

HTML comes from the `invoice.html` Jinja2 template and is converted with
WeasyPrint. Rendering happens only on explicit download requests.
"""
from prosite.core.templates import get_template_env, long_date
from prosite.features.plans.catalog import CURRENCY_SYMBOLS
from prosite.models.invoice import Invoice


class InvoiceRenderer:
    template_name = "invoice.html"

    def render_html(self, invoice: Invoice) -> str:
        template = get_template_env().get_template(self.template_name)
        return template.render(
            invoice=invoice,
            symbol=CURRENCY_SYMBOLS.get(invoice.currency, invoice.currency + " "),
            issued_on=long_date(invoice.created_at),
            paid_on=long_date(invoice.paid_at or invoice.created_at),
        )

    def render_invoice(self, invoice: Invoice) -> bytes:
        # WeasyPrint loads Pango at import time; keep it off the import path of the app.
        from weasyprint import HTML

        return HTML(string=self.render_html(invoice)).write_pdf()
