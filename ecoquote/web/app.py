from __future__ import annotations

import hashlib
import hmac
import json
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.templating import Jinja2Templates

from ..blobs import IMAGES, PRODUCT_DOCS
from ..calculators.pricing import price_selection
from ..config import AppConfig, load_config
from ..errors import (
    AuthError,
    CollaboratorError,
    ExtractionError,
    IllegalTransition,
    NotFound,
    QuoteUnavailable,
    TransitionFailed,
    ValidationFailed,
)
from ..locales import translate
from ..logic import records
from ..logic.admin import import_product_draft, send_contact, verify_admin_password
from ..logic.builder import extras_list, financing_text
from ..logic.catalog import ALL, CatalogView
from ..logic.lifecycle import Attachment, FinalizeSubmission, QuoteSession
from ..models import ClientData, CompanyInfo, Product, Selection
from ..services import Services, build_services
from ..utils import money

TEMPLATES_DIR = Path(__file__).parent / "templates"
ADMIN_COOKIE = "ecoquote_admin"
UPLOAD_FOLDERS = {IMAGES, PRODUCT_DOCS}

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def _admin_token(password: str) -> str:
    return hmac.new(password.encode(), b"ecoquote-admin", hashlib.sha256).hexdigest()


def _parse_extras(raw: Optional[str]) -> Dict[str, int]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationFailed("extras must be a JSON object", {"extras": str(e)}) from e
    if not isinstance(data, dict):
        raise ValidationFailed("extras must be a JSON object", {"extras": "not an object"})
    try:
        return {str(k): int(v) for k, v in data.items()}
    except (TypeError, ValueError) as e:
        raise ValidationFailed("extra quantities must be integers", {"extras": str(e)}) from e


async def _attachment(upload: Optional[UploadFile]) -> Optional[Attachment]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return Attachment(upload.filename, content, upload.content_type or "application/octet-stream")


def _selection(**kwargs) -> Selection:
    try:
        return Selection(**kwargs)
    except ValidationError as e:
        raise ValidationFailed("invalid selection", {"extras": e.errors()[0]["msg"]}) from e


def create_app(config: Optional[AppConfig] = None, services: Optional[Services] = None) -> FastAPI:
    cfg = services.config if services is not None else (config or load_config())
    svc = services or build_services(cfg)
    display = cfg.display

    app = FastAPI(title="EcoQuote")
    app.state.services = svc

    files_dir = Path(cfg.files_dir)
    files_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/files", StaticFiles(directory=str(files_dir)), name="files")

    # -- error mapping ------------------------------------------------------

    @app.exception_handler(ValidationFailed)
    async def _validation(request: Request, exc: ValidationFailed):
        return JSONResponse({"detail": exc.message, "field_errors": exc.field_errors}, status_code=422)

    @app.exception_handler(NotFound)
    @app.exception_handler(QuoteUnavailable)
    async def _not_found(request: Request, exc: Exception):
        return JSONResponse({"detail": str(exc)}, status_code=404)

    @app.exception_handler(CollaboratorError)
    @app.exception_handler(TransitionFailed)
    async def _transition(request: Request, exc: Exception):
        return JSONResponse({"detail": str(exc)}, status_code=502)

    @app.exception_handler(IllegalTransition)
    async def _illegal(request: Request, exc: IllegalTransition):
        return JSONResponse({"detail": str(exc)}, status_code=409)

    @app.exception_handler(ExtractionError)
    async def _extraction(request: Request, exc: ExtractionError):
        return JSONResponse({"detail": str(exc)}, status_code=422)

    @app.exception_handler(AuthError)
    async def _auth(request: Request, exc: AuthError):
        return JSONResponse({"detail": str(exc)}, status_code=401)

    def require_admin(request: Request) -> None:
        token = request.cookies.get(ADMIN_COOKIE)
        if token and hmac.compare_digest(token, _admin_token(cfg.admin_password)):
            return
        if verify_admin_password(request.headers.get("x-admin-password"), cfg.admin_password):
            return
        raise AuthError("admin login required")

    def public_product(product_id: str) -> Product:
        product = records.get_product(svc.store, product_id)
        if product is None or product.is_deleted or product.status != "active":
            raise NotFound(f"product {product_id} not found")
        return product

    # -- public ---------------------------------------------------------------

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/api/catalog")
    def catalog(type: str = ALL, brand: str = ALL, max_price: Optional[float] = None):
        view = CatalogView.load(records.list_products(svc.store, status="active"))
        products = view.filter(type, brand, max_price)
        return {
            "products": [p.model_dump(mode="json") for p in products],
            "max_price": view.max_price,
            "brands": view.brands,
            "types": view.types,
        }

    @app.get("/api/products/{product_id}")
    def product_detail(product_id: str):
        return public_product(product_id).model_dump(mode="json")

    @app.get("/api/settings")
    def company_info():
        return svc.settings.get().model_dump(mode="json")

    @app.post("/api/products/{product_id}/price")
    def price(product_id: str, selection: Selection, lang: str = display.default_language):
        product = public_product(product_id)
        breakdown = price_selection(product, selection)
        return {
            "breakdown": breakdown.model_dump(mode="json"),
            "total": money(breakdown.total, display.currency_symbol, display.decimals),
            "financing": financing_text(breakdown, lang, display.currency_symbol, display.decimals),
            "items": extras_list(breakdown, lang),
        }

    @app.post("/api/products/{product_id}/quote", status_code=201)
    async def submit_quote(
        product_id: str,
        option_id: Optional[str] = Form(None),
        kit_id: Optional[str] = Form(None),
        financing_index: Optional[int] = Form(None),
        extras: Optional[str] = Form(None),
        name: str = Form(""),
        surname: str = Form(""),
        email: str = Form(""),
        phone: str = Form(""),
        address: str = Form(""),
        city: str = Form(""),
        postal_code: str = Form(""),
        work_order: Optional[str] = Form(None),
        legal_accepted: bool = Form(False),
        client_not_present: bool = Form(False),
        signature: Optional[str] = Form(None),
        language: str = Form(display.default_language),
        send_email: bool = Form(True),
        identity_document: Optional[UploadFile] = File(None),
        income_proof: Optional[UploadFile] = File(None),
    ):
        product = public_product(product_id)
        selection = _selection(
            option_id=option_id, kit_id=kit_id, extras=_parse_extras(extras), financing_index=financing_index
        )
        session = QuoteSession(product, selection)
        draft = session.open_confirmation()
        submission = FinalizeSubmission(
            client=ClientData(
                name=name,
                surname=surname,
                email=email,
                phone=phone,
                address=address,
                city=city,
                postal_code=postal_code,
                work_order=work_order or None,
            ),
            legal_accepted=legal_accepted,
            client_not_present=client_not_present,
            signature=signature,
            identity_document=await _attachment(identity_document),
            income_proof=await _attachment(income_proof),
            language=language,
            send_email=send_email,
        )
        result = await run_in_threadpool(svc.lifecycle.submit, draft, submission)
        return result.model_dump()

    @app.post("/api/contact", status_code=201)
    def contact(payload: Dict[str, Any] = Body(...)):
        msg_id = send_contact(svc.store, payload.get("name", ""), payload.get("email", ""), payload.get("message", ""))
        return {"id": msg_id}

    # -- remote signing -------------------------------------------------------

    def sign_context(request: Request, quote, error: Optional[str] = None) -> Dict[str, Any]:
        lang = quote.language
        return {
            "request": request,
            "quote": quote,
            "company": svc.settings.get(),
            "price": money(quote.price, display.currency_symbol, display.decimals),
            "error": error,
            "t": lambda key: translate(key, lang),
        }

    def invalid_link(request: Request, lang: Optional[str] = None) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "sign_invalid.html",
            {"request": request, "message": translate("error.link_invalid", lang)},
            status_code=404,
        )

    @app.get("/sign/{quote_id}", response_class=HTMLResponse)
    def sign_page(request: Request, quote_id: str):
        try:
            quote = svc.lifecycle.load_pending(quote_id)
        except QuoteUnavailable:
            return invalid_link(request)
        return templates.TemplateResponse(request, "sign.html", sign_context(request, quote))

    @app.post("/sign/{quote_id}", response_class=HTMLResponse)
    def sign_submit(request: Request, quote_id: str, signature: str = Form("")):
        try:
            quote = svc.lifecycle.load_pending(quote_id)
        except QuoteUnavailable:
            return invalid_link(request)
        try:
            result = svc.lifecycle.finalize_remote(quote_id, signature)
        except QuoteUnavailable:
            return invalid_link(request, quote.language)
        except ValidationFailed as e:
            return templates.TemplateResponse(request, "sign.html", sign_context(request, quote, e.message), status_code=422)
        except TransitionFailed as e:
            return templates.TemplateResponse(request, "sign.html", sign_context(request, quote, str(e)), status_code=502)
        return templates.TemplateResponse(
            request,
            "sign_done.html",
            {
                "request": request,
                "message": translate("sign.done", quote.language),
                "document_url": result.document_url,
            },
        )

    # -- admin auth -----------------------------------------------------------

    @app.post("/admin/login")
    def admin_login(password: str = Form(...)):
        if not verify_admin_password(password, cfg.admin_password):
            logger.warning("failed admin login")
            raise AuthError("wrong password")
        response = JSONResponse({"ok": True})
        response.set_cookie(ADMIN_COOKIE, _admin_token(cfg.admin_password), httponly=True, samesite="lax")
        return response

    @app.post("/admin/logout")
    def admin_logout():
        response = RedirectResponse(url="/", status_code=303)
        response.delete_cookie(ADMIN_COOKIE)
        return response

    # -- admin: products --------------------------------------------------------

    @app.get("/api/admin/products")
    def admin_products(request: Request, trash: bool = False):
        require_admin(request)
        return [p.model_dump(mode="json") for p in svc.catalog.list(trash=trash)]

    @app.post("/api/admin/products", status_code=201)
    def admin_create_product(request: Request, product: Product):
        require_admin(request)
        return svc.catalog.create(product).model_dump(mode="json")

    @app.get("/api/admin/products/{product_id}")
    def admin_get_product(request: Request, product_id: str):
        require_admin(request)
        return svc.catalog.get(product_id).model_dump(mode="json")

    @app.put("/api/admin/products/{product_id}")
    def admin_update_product(request: Request, product_id: str, product: Product):
        require_admin(request)
        return svc.catalog.update(product_id, product).model_dump(mode="json")

    @app.delete("/api/admin/products/{product_id}")
    def admin_delete_product(request: Request, product_id: str, permanent: bool = False):
        require_admin(request)
        if permanent:
            svc.catalog.purge(product_id)
        else:
            svc.catalog.soft_delete(product_id)
        return {"ok": True}

    @app.post("/api/admin/products/{product_id}/restore")
    def admin_restore_product(request: Request, product_id: str):
        require_admin(request)
        svc.catalog.restore(product_id)
        return {"ok": True}

    @app.post("/api/admin/products/{product_id}/duplicate", status_code=201)
    def admin_duplicate_product(request: Request, product_id: str):
        require_admin(request)
        return svc.catalog.duplicate(product_id).model_dump(mode="json")

    @app.post("/api/admin/products/extract")
    async def admin_extract_product(request: Request, file: UploadFile = File(...)):
        require_admin(request)
        data = await file.read()
        draft = import_product_draft(svc.extractor, data, file.content_type or "application/pdf")
        return draft.model_dump(mode="json")

    @app.post("/api/admin/uploads", status_code=201)
    async def admin_upload(request: Request, folder: str = Form(IMAGES), file: UploadFile = File(...)):
        require_admin(request)
        if folder not in UPLOAD_FOLDERS:
            raise ValidationFailed("unknown upload folder", {"folder": folder})
        data = await file.read()
        url = svc.blobs.upload(folder, data, file.content_type or "application/octet-stream", file.filename)
        return {"url": url}

    # -- admin: settings, quotes, messages ----------------------------------

    @app.get("/api/admin/settings")
    def admin_settings(request: Request):
        require_admin(request)
        return svc.settings.get().model_dump(mode="json")

    @app.put("/api/admin/settings")
    def admin_update_settings(request: Request, info: CompanyInfo):
        require_admin(request)
        return svc.settings.update(info).model_dump(mode="json")

    @app.get("/api/admin/quotes")
    def admin_quotes(request: Request, trash: bool = False, search: Optional[str] = None):
        require_admin(request)
        return [q.model_dump(mode="json") for q in svc.quotes.list(trash=trash, search=search)]

    @app.post("/api/admin/quotes/{quote_id}/resend")
    def admin_resend(request: Request, quote_id: str):
        require_admin(request)
        return {"sent": svc.quotes.resend(quote_id)}

    @app.delete("/api/admin/quotes/{quote_id}")
    def admin_delete_quote(request: Request, quote_id: str, permanent: bool = False):
        require_admin(request)
        if permanent:
            svc.quotes.purge(quote_id)
        else:
            svc.quotes.soft_delete(quote_id)
        return {"ok": True}

    @app.post("/api/admin/quotes/{quote_id}/restore")
    def admin_restore_quote(request: Request, quote_id: str):
        require_admin(request)
        svc.quotes.restore(quote_id)
        return {"ok": True}

    @app.get("/api/admin/messages")
    def admin_messages(request: Request):
        require_admin(request)
        return [m.model_dump(mode="json") for m in svc.inbox.list()]

    return app


