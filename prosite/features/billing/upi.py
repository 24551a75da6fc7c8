"""UPI deep-link construction for manual payments."""
from urllib.parse import quote, urlencode

UPI_SCHEME = "upi://pay"


def build_upi_link(
    payee_id: str,
    payee_name: str,
    amount: int,
    currency: str,
    order_id: str,
    note: str,
) -> str:
    """
    Build a `upi://pay` URI that payment apps open with the fields prefilled.

    pa: payee VPA, pn: payee name, am: amount, cu: currency,
    tr: transaction reference (our order id), tn: note shown to the payer.
    """
    params = {
        "pa": payee_id,
        "pn": payee_name,
        "am": str(amount),
        "cu": currency,
        "tr": order_id,
        "tn": note,
    }
    return f"{UPI_SCHEME}?{urlencode(params, quote_via=quote, safe='@')}"
