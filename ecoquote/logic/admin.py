from __future__ import annotations

import hmac
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError
from rapidfuzz import fuzz

from ..errors import NotFound, ValidationFailed
from ..i18n import BASE_LANGUAGE
from ..models import CompanyInfo, ContactMessage, Product, Quote
from ..store import MESSAGES, PRODUCTS, SETTINGS, RecordStore
from ..utils import short_id, to_float
from ..importers.ai_extract import ProductExtractor, draft_from_extraction
from . import records
from .lifecycle import EMAIL_RE, QuoteLifecycle

# Editable fields per product collection: (key, kind) with kind in
# "text" | "number" | "localized".
COLLECTION_FIELDS: Dict[str, List[Tuple[str, str]]] = {
    "features": [("title", "localized"), ("description", "localized"), ("icon", "text")],
    "pricing": [("name", "localized"), ("price", "number")],
    "installation_kits": [("name", "localized"), ("price", "number")],
    "extras": [("name", "localized"), ("price", "number")],
    "financing": [("label", "localized"), ("months", "number"), ("commission", "number"), ("coefficient", "number")],
}

# A plan cannot have zero months.
_ENTRY_OVERRIDES = {"financing": {"months": 1}}


def _fields(collection: str) -> List[Tuple[str, str]]:
    if collection not in COLLECTION_FIELDS:
        raise ValidationFailed(f"unknown collection {collection!r}")
    return COLLECTION_FIELDS[collection]


def _rebuild(product: Product, collection: str, items: List[Dict[str, Any]]) -> Product:
    try:
        return Product(**{**product.model_dump(), collection: items})
    except ValidationError as e:
        raise ValidationFailed(f"invalid {collection} entry: {e.errors()[0]['msg']}") from e


def new_entry(collection: str) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"id": short_id()}
    for key, kind in _fields(collection):
        if kind == "number":
            entry[key] = 0
        elif kind == "localized":
            entry[key] = {BASE_LANGUAGE: ""}
        else:
            entry[key] = ""
    entry.update(_ENTRY_OVERRIDES.get(collection, {}))
    return entry


def add_entry(product: Product, collection: str) -> Product:
    items = [i.model_dump() for i in getattr(product, collection)]
    items.append(new_entry(collection))
    return _rebuild(product, collection, items)


def edit_entry(product: Product, collection: str, index: int, key: str, value: Any, lang: str = BASE_LANGUAGE) -> Product:
    """Set one field of one entry. Localized fields are edited per language."""
    kinds = dict(_fields(collection))
    if key not in kinds:
        raise ValidationFailed(f"{collection} has no field {key!r}")
    items = [i.model_dump() for i in getattr(product, collection)]
    if not 0 <= index < len(items):
        raise NotFound(f"{collection}[{index}] does not exist")

    kind = kinds[key]
    if kind == "number":
        value = to_float(value)
        if key == "months":
            value = int(value)
    elif kind == "localized":
        current = items[index].get(key)
        texts = dict(current) if isinstance(current, dict) else {BASE_LANGUAGE: current or ""}
        texts[lang] = "" if value is None else str(value)
        value = texts
    items[index][key] = value
    return _rebuild(product, collection, items)


def remove_entry(product: Product, collection: str, index: int) -> Product:
    _fields(collection)
    items = [i.model_dump() for i in getattr(product, collection)]
    if not 0 <= index < len(items):
        raise NotFound(f"{collection}[{index}] does not exist")
    del items[index]
    return _rebuild(product, collection, items)


class CatalogAdmin:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def list(self, trash: bool = False) -> List[Product]:
        return records.list_products(self.store, deleted=trash)

    def get(self, product_id: str) -> Product:
        product = records.get_product(self.store, product_id)
        if product is None:
            raise NotFound(f"product {product_id} not found")
        return product

    @staticmethod
    def _check(product: Product) -> None:
        errors = {}
        if not product.brand.strip():
            errors["brand"] = "required"
        if not product.model.strip():
            errors["model"] = "required"
        if errors:
            raise ValidationFailed("brand and model are required", errors)

    def create(self, product: Product) -> Product:
        self._check(product)
        product_id = self.store.insert(PRODUCTS, records.encode(product))
        logger.info(f"product {product_id} created: {product.brand} {product.model}")
        return self.get(product_id)

    def update(self, product_id: str, product: Product) -> Product:
        self.get(product_id)
        self._check(product)
        self.store.update(PRODUCTS, product_id, records.encode(product))
        logger.info(f"product {product_id} updated")
        return self.get(product_id)

    def soft_delete(self, product_id: str) -> None:
        self.get(product_id)
        self.store.soft_delete(PRODUCTS, product_id)

    def restore(self, product_id: str) -> None:
        self.get(product_id)
        self.store.restore(PRODUCTS, product_id)

    def purge(self, product_id: str) -> None:
        self.get(product_id)
        self.store.hard_delete(PRODUCTS, product_id)

    def duplicate(self, product_id: str) -> Product:
        """Persist a draft copy with a fresh identity."""
        src = self.get(product_id)
        data = src.model_dump()
        data.update(
            id=None,
            created_at=None,
            is_deleted=False,
            status="draft",
            model=f"{src.model} (Copia)",
            reference=f"{src.reference}-CPY" if src.reference else src.reference,
        )
        return self.create(Product(**data))


class SettingsAdmin:
    """Company info is a singleton row in the settings collection."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def get(self) -> CompanyInfo:
        return records.load_company_info(self.store)

    def update(self, info: CompanyInfo) -> CompanyInfo:
        current = self.get()
        if current.id:
            self.store.update(SETTINGS, current.id, records.encode(info))
        else:
            self.store.insert(SETTINGS, records.encode(info))
        logger.info("company settings saved")
        return self.get()


class QuoteHistory:
    def __init__(self, store: RecordStore, lifecycle: QuoteLifecycle) -> None:
        self.store = store
        self.lifecycle = lifecycle

    def list(self, trash: bool = False, search: Optional[str] = None, score_cutoff: int = 80) -> List[Quote]:
        quotes = records.list_quotes(self.store, deleted=trash)
        term = (search or "").strip().lower()
        if not term:
            return quotes

        def matches(q: Quote) -> bool:
            hay = f"{q.client.full_name} {q.client.email}".lower()
            return term in hay or fuzz.partial_ratio(term, hay) >= score_cutoff

        return [q for q in quotes if matches(q)]

    def get(self, quote_id: str) -> Quote:
        quote = records.get_quote(self.store, quote_id)
        if quote is None:
            raise NotFound(f"quote {quote_id} not found")
        return quote

    def resend(self, quote_id: str) -> bool:
        return self.lifecycle.resend_notification(quote_id)

    def soft_delete(self, quote_id: str) -> None:
        self.lifecycle.soft_delete(quote_id)

    def restore(self, quote_id: str) -> None:
        self.lifecycle.restore(quote_id)

    def purge(self, quote_id: str) -> None:
        self.lifecycle.purge(quote_id)


class Inbox:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def list(self) -> List[ContactMessage]:
        return records.list_messages(self.store)

    def send(self, name: str, email: str, message: str) -> str:
        return send_contact(self.store, name, email, message)


def send_contact(store: RecordStore, name: str, email: str, message: str) -> str:
    errors = {}
    if not (name or "").strip():
        errors["name"] = "required"
    if not EMAIL_RE.match((email or "").strip()):
        errors["email"] = "invalid"
    if not (message or "").strip():
        errors["message"] = "required"
    if errors:
        raise ValidationFailed("contact form incomplete", errors)
    msg = ContactMessage(name=name.strip(), email=email.strip(), message=message.strip())
    msg_id = store.insert(MESSAGES, records.encode(msg))
    logger.info(f"contact message {msg_id} from {msg.email}")
    return msg_id


def verify_admin_password(given: Optional[str], expected: str) -> bool:
    return hmac.compare_digest((given or "").encode(), expected.encode())


def import_product_draft(extractor: ProductExtractor, data: bytes, mime_type: str) -> Product:
    """Run the AI extractor and return an unsaved draft for review."""
    return draft_from_extraction(extractor.extract(data, mime_type))
