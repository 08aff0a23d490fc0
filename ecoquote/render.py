from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from loguru import logger

from .errors import RenderError
from .i18n import resolve_text
from .locales import translate
from .models import CompanyInfo, Product, Quote
from .utils import money

TEMPLATES_DIR = Path(__file__).parent / "templates"


@dataclass(frozen=True)
class QuoteDocument:
    quote: Quote
    company: CompanyInfo
    product: Optional[Product] = None


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes
    content_type: str = "text/html"
    extension: str = ".html"


class DocumentRenderer(Protocol):
    def render(self, document: QuoteDocument) -> RenderedDocument: ...


def make_env(templates_dir: Path = TEMPLATES_DIR) -> Environment:
    return Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html", "j2"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


class HtmlQuoteRenderer:
    """Renders a printable, A4-paginated HTML quote."""

    template_name = "quote_document.html.j2"

    def __init__(self, currency_symbol: str = "€", decimals: int = 0, templates_dir: Path = TEMPLATES_DIR) -> None:
        self.env = make_env(templates_dir)
        self.currency_symbol = currency_symbol
        self.decimals = decimals

    def render(self, document: QuoteDocument) -> RenderedDocument:
        quote = document.quote
        lang = quote.language
        product = document.product
        features = []
        if product is not None:
            features = [
                {"title": resolve_text(f.title, lang), "description": resolve_text(f.description, lang)}
                for f in product.features
            ]
        ctx = {
            "quote": quote,
            "company": document.company,
            "product_image": product.image_url if product else None,
            "features": features,
            "issued_on": dt.date.today().strftime("%d/%m/%Y"),
            "t": lambda key: translate(key, lang),
            "format_money": lambda x: money(x, self.currency_symbol, self.decimals),
        }
        try:
            html = self.env.get_template(self.template_name).render(**ctx)
        except TemplateError as e:
            logger.exception("quote document rendering failed")
            raise RenderError(f"could not render quote document: {e}") from e
        return RenderedDocument(content=html.encode("utf-8"), content_type="text/html")
