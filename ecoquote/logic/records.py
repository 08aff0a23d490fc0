from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import StorageError
from ..models import CompanyInfo, ContactMessage, Product, Quote
from ..store import MESSAGES, PRODUCTS, QUOTES, SETTINGS, RecordStore

M = TypeVar("M", bound=BaseModel)

# Set by the store, never written back from a model.
STORE_FIELDS = {"id", "created_at", "is_deleted"}


def decode(model: Type[M], record: Dict[str, Any]) -> M:
    try:
        return model.model_validate(record)
    except ValidationError as e:
        raise StorageError(f"malformed {model.__name__} record {record.get('id')}: {e}") from e


def encode(obj: BaseModel) -> Dict[str, Any]:
    return obj.model_dump(mode="json", exclude=STORE_FIELDS)


def list_products(store: RecordStore, deleted: bool = False, status: Optional[str] = None) -> List[Product]:
    where = {"status": status} if status else None
    return [decode(Product, r) for r in store.list(PRODUCTS, deleted=deleted, where=where)]


def get_product(store: RecordStore, product_id: Optional[str]) -> Optional[Product]:
    if not product_id:
        return None
    rec = store.get_by_id(PRODUCTS, product_id)
    return decode(Product, rec) if rec else None


def list_quotes(store: RecordStore, deleted: bool = False) -> List[Quote]:
    return [decode(Quote, r) for r in store.list(QUOTES, deleted=deleted)]


def get_quote(store: RecordStore, quote_id: str) -> Optional[Quote]:
    rec = store.get_by_id(QUOTES, quote_id)
    return decode(Quote, rec) if rec else None


def load_company_info(store: RecordStore) -> CompanyInfo:
    rows = store.list(SETTINGS, deleted=None)
    if not rows:
        return CompanyInfo()
    return decode(CompanyInfo, rows[0])


def list_messages(store: RecordStore) -> List[ContactMessage]:
    return [decode(ContactMessage, r) for r in store.list(MESSAGES)]
