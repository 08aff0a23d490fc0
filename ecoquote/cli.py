from __future__ import annotations

import json
import mimetypes
import os
from pathlib import Path
from typing import List, Optional

import typer
import yaml

from .calculators.pricing import price_selection
from .config import load_config
from .errors import EcoQuoteError
from .i18n import resolve_text
from .log import configure_logging
from .logic import records
from .logic.admin import import_product_draft
from .logic.builder import extras_list, financing_text
from .logic.catalog import ALL, CatalogView, base_price
from .models import Product, Selection
from .render import QuoteDocument
from .services import Services, build_services
from .utils import money

app = typer.Typer(help="EcoQuote HVAC quote tool", no_args_is_help=True)


def _services(ctx: typer.Context) -> Services:
    if ctx.obj is None:
        ctx.obj = build_services(load_config())
    return ctx.obj


def _fail(e) -> None:
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, help="Path to app.yaml"),
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
):
    cfg = load_config(config)
    configure_logging(log_level or cfg.log_level, cfg.log_dir)
    ctx.obj = build_services(cfg)


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8000),
    reload: bool = typer.Option(False, help="Auto-reload on code changes"),
):
    """Run the web app (public configurator, signing page and admin API)."""
    import uvicorn

    from .web.app import create_app

    if not reload:
        uvicorn.run(create_app(services=_services(ctx)), host=host, port=port)
        return
    # The reloader imports the app in a fresh process; hand it the same options.
    params = ctx.parent.params if ctx.parent is not None else {}
    if params.get("config"):
        os.environ["ECOQUOTE_CONFIG"] = params["config"]
    if params.get("log_level"):
        os.environ["ECOQUOTE_LOG_LEVEL"] = params["log_level"]
    uvicorn.run("ecoquote.web.app:create_app", factory=True, host=host, port=port, reload=True)


@app.command()
def catalog(
    ctx: typer.Context,
    type_filter: str = typer.Option(ALL, "--type", help="Product type or 'all'"),
    brand: str = typer.Option(ALL, help="Brand or 'all'"),
    max_price: Optional[float] = typer.Option(None, help="Price ceiling (defaults to catalog maximum)"),
):
    """List active products the way the public catalog shows them."""
    svc = _services(ctx)
    view = CatalogView.load(records.list_products(svc.store, status="active"))
    products = view.filter(type_filter, brand, max_price)
    symbol, places = svc.config.display.currency_symbol, svc.config.display.decimals
    for p in products:
        typer.echo(f"{p.id}  {p.brand} {p.model}  [{p.type}]  desde {money(base_price(p), symbol, places)}")
    typer.echo(f"{len(products)} of {len(view.products)} products (ceiling {money(view.max_price, symbol, places)})")


@app.command()
def price(
    ctx: typer.Context,
    product_id: str = typer.Argument(..., help="Product id"),
    option: Optional[str] = typer.Option(None, help="Pricing option id"),
    kit: Optional[str] = typer.Option(None, help="Installation kit id"),
    extra: List[str] = typer.Option([], help="Extra as id=qty, repeatable"),
    plan: Optional[int] = typer.Option(None, help="Financing plan index; omit to pay in full"),
    lang: str = typer.Option("es"),
):
    """Price a configuration and print the breakdown."""
    svc = _services(ctx)
    product = records.get_product(svc.store, product_id)
    if product is None:
        _fail(f"product {product_id} not found")
    extras = {}
    try:
        for item in extra:
            extra_id, _, qty = item.partition("=")
            extras[extra_id] = int(qty or 1)
        breakdown = price_selection(
            product, Selection(option_id=option, kit_id=kit, extras=extras, financing_index=plan)
        )
    except ValueError as e:
        _fail(e)
    symbol, places = svc.config.display.currency_symbol, svc.config.display.decimals
    typer.echo(f"{product.brand} {product.model} · {resolve_text(breakdown.option.name, lang)}")
    for line in extras_list(breakdown, lang):
        typer.echo(f"  - {line}")
    typer.echo(f"Total: {money(breakdown.total, symbol, places)}")
    typer.echo(financing_text(breakdown, lang, symbol, places))


@app.command()
def extract(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="Product datasheet (PDF or image)"),
    save: bool = typer.Option(False, help="Store the result as a draft product"),
):
    """Extract a draft product from a datasheet with Gemini."""
    svc = _services(ctx)
    file_path = Path(path)
    mime = mimetypes.guess_type(file_path.name)[0] or "application/pdf"
    try:
        draft = import_product_draft(svc.extractor, file_path.read_bytes(), mime)
        if save:
            draft = svc.catalog.create(draft)
    except (EcoQuoteError, OSError) as e:
        _fail(e)
    typer.echo(json.dumps(draft.model_dump(mode="json"), indent=2, ensure_ascii=False))


@app.command("add-product")
def add_product(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="YAML or JSON file with one product"),
):
    """Create a product from a YAML/JSON definition."""
    svc = _services(ctx)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        product = svc.catalog.create(Product(**data))
    except (EcoQuoteError, OSError, ValueError) as e:
        _fail(e)
    typer.echo(f"Created {product.id}: {product.brand} {product.model}")


@app.command()
def resend(ctx: typer.Context, quote_id: str = typer.Argument(...)):
    """Email the stored document link of a signed quote again."""
    svc = _services(ctx)
    try:
        sent = svc.lifecycle.resend_notification(quote_id)
    except EcoQuoteError as e:
        _fail(e)
    typer.echo("Sent" if sent else "Not sent (check SMTP settings and logs)")
    if not sent:
        raise typer.Exit(code=1)


@app.command()
def render(
    ctx: typer.Context,
    quote_id: str = typer.Argument(...),
    out: Optional[str] = typer.Option(None, help="Output HTML path"),
):
    """Render a stored quote to a local HTML file."""
    svc = _services(ctx)
    quote = records.get_quote(svc.store, quote_id)
    if quote is None:
        _fail(f"quote {quote_id} not found")
    try:
        product = records.get_product(svc.store, quote.product_id)
        doc = svc.renderer.render(
            QuoteDocument(quote=quote, company=records.load_company_info(svc.store), product=product)
        )
    except EcoQuoteError as e:
        _fail(e)
    out_path = Path(out) if out else Path(f"quote_{quote_id}{doc.extension}")
    out_path.write_bytes(doc.content)
    typer.echo(f"Wrote {out_path}")


if __name__ == "__main__":  # pragma: no cover
    app()
