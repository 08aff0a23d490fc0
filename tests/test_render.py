import pytest

from ecoquote.blobs import LocalBlobStore
from ecoquote.errors import RenderError
from ecoquote.models import CompanyInfo, Quote
from ecoquote.render import HtmlQuoteRenderer, QuoteDocument

from conftest import make_client, make_product


def _quote(**overrides):
    data = dict(
        brand="Daikin",
        model="Sensira 35",
        option="3,5 kW",
        price=1260,
        financing="12 meses\nCuota: 105 €/mes\nTotal a pagar: 1.260 €",
        extras=["Instalación: Kit básico", "Metro de tubería (x3)"],
        client=make_client(work_order="12345678"),
    )
    data.update(overrides)
    return Quote(**data)


def test_document_contains_quote_snapshot():
    company = CompanyInfo(brand_name="Clima Norte", phone="900 000 000")
    doc = HtmlQuoteRenderer().render(QuoteDocument(quote=_quote(), company=company, product=make_product()))
    html = doc.content.decode("utf-8")

    assert doc.content_type == "text/html"
    assert "Clima Norte" in html
    assert "Daikin Sensira 35" in html
    assert "1.260 €" in html
    assert "Metro de tubería (x3)" in html
    assert "WO: 12345678" in html
    assert "Silencioso" in html
    assert "Pendiente de firma" in html


def test_signature_embedded_when_present():
    quote = _quote(signature="data:image/png;base64,AAAA", language="en")
    html = HtmlQuoteRenderer().render(QuoteDocument(quote=quote, company=CompanyInfo())).content.decode()
    assert 'src="data:image/png;base64,AAAA"' in html
    assert "Client Signature" in html


def test_missing_template_raises_render_error(tmp_path):
    renderer = HtmlQuoteRenderer(templates_dir=tmp_path)
    with pytest.raises(RenderError):
        renderer.render(QuoteDocument(quote=_quote(), company=CompanyInfo()))


def test_signed_quote_needs_document():
    with pytest.raises(ValueError):
        _quote(status="signed")


def test_blob_store_sanitises_names(tmp_path):
    blobs = LocalBlobStore(tmp_path, "http://files")
    url = blobs.upload("clients", b"data", "application/pdf", "DNI Lucía (1).pdf")
    name = url.rsplit("/", 1)[1]
    assert url.startswith("http://files/clients/")
    assert name.endswith("DNI_Luc_a__1_.pdf")
    assert (tmp_path / "clients" / name).read_bytes() == b"data"
