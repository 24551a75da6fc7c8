from urllib.parse import parse_qs, urlsplit

from prosite.features.billing.upi import build_upi_link


def test_upi_link_fields():
    link = build_upi_link(
        payee_id="prosite@okaxis",
        payee_name="ProSite",
        amount=499,
        currency="INR",
        order_id="ORD-1-ABC",
        note="ProSite Professional Plan",
    )
    parts = urlsplit(link)
    assert parts.scheme == "upi"
    assert link.startswith("upi://pay?")
    query = parse_qs(parts.query)
    assert query["pa"] == ["prosite@okaxis"]
    assert query["pn"] == ["ProSite"]
    assert query["am"] == ["499"]
    assert query["cu"] == ["INR"]
    assert query["tr"] == ["ORD-1-ABC"]
    assert query["tn"] == ["ProSite Professional Plan"]


def test_upi_link_percent_encodes_spaces():
    link = build_upi_link("a@b", "Pro Site", 9, "USD", "ORD-2", "Pro Site Starter Plan")
    assert "pn=Pro%20Site" in link
    assert "pa=a@b" in link
    assert "+" not in link
