from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from prosite.models.invoice import Invoice


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeEmailSender:
    def __init__(self, configured: bool = True, fail_times: int = 0):
        self.configured = configured
        self.fail_times = fail_times
        self.sent: List[Tuple[str, str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send(self, to: str, subject: str, html: str) -> Optional[str]:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("smtp unavailable")
        self.sent.append((to, subject, html))
        return f"msg-{len(self.sent)}"


class FakeRenderer:
    def __init__(self):
        self.rendered: List[str] = []

    def render_invoice(self, invoice: Invoice) -> bytes:
        self.rendered.append(invoice.invoice_number)
        return b"%PDF-1.4 " + invoice.invoice_number.encode()


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Tuple[str, str]] = []

    def notify_payment_confirmed(self, invoice: Invoice, email: str) -> None:
        self.calls.append((invoice.invoice_number, email))
        if self.fail:
            raise RuntimeError("notifier down")


class FailingSequencer:
    def __init__(self, error: Exception):
        self.error = error

    def issue(self, **kwargs) -> Invoice:
        raise self.error
