from __future__ import annotations

from typing import List, Tuple

import pytest

from ecoquote.blobs import LocalBlobStore
from ecoquote.errors import RenderError
from ecoquote.logic import records
from ecoquote.logic.lifecycle import QuoteLifecycle
from ecoquote.models import ClientData, Product
from ecoquote.render import HtmlQuoteRenderer, QuoteDocument, RenderedDocument
from ecoquote.store import PRODUCTS, MemoryRecordStore


class RecordingNotifier:
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: List[Tuple[str, str, str, str, str]] = []

    def send(self, email, name, brand, model, document_url) -> bool:
        self.calls.append((email, name, brand, model, document_url))
        return self.result


class CountingRenderer:
    def __init__(self) -> None:
        self.inner = HtmlQuoteRenderer()
        self.documents: List[QuoteDocument] = []

    def render(self, document: QuoteDocument) -> RenderedDocument:
        self.documents.append(document)
        return self.inner.render(document)


class FailingRenderer:
    def render(self, document: QuoteDocument) -> RenderedDocument:
        raise RenderError("template exploded")


def make_product(**overrides) -> Product:
    data = dict(
        brand="Daikin",
        model="Sensira 35",
        type="Aire Acondicionado",
        reference="DK-35",
        features=[{"title": {"es": "Silencioso", "en": "Quiet"}, "description": {"es": "19 dB"}}],
        pricing=[
            {"id": "o1", "name": {"es": "3,5 kW", "en": "3.5 kW"}, "price": 1000},
            {"id": "o2", "name": {"es": "5 kW"}, "price": 1400},
        ],
        installation_kits=[
            {"id": "k1", "name": {"es": "Kit básico", "en": "Basic kit"}, "price": 200},
            {"id": "k2", "name": {"es": "Kit premium"}, "price": 350},
        ],
        extras=[
            {"id": "e1", "name": {"es": "Metro de tubería", "en": "Pipe metre"}, "price": 50},
            {"id": "e2", "name": {"es": "Soporte suelo"}, "price": 30},
        ],
        financing=[
            {"id": "f1", "label": {"es": "12 meses"}, "months": 12, "coefficient": 1.05},
            {"id": "f2", "label": {"es": "10 meses sin intereses"}, "months": 10, "commission": 5, "requires_documents": False},
        ],
    )
    data.update(overrides)
    return Product(**data)


def make_client(**overrides) -> ClientData:
    data = dict(
        name="Lucía",
        surname="García",
        email="lucia@example.com",
        phone="612 345 678",
        address="Calle Mayor 1",
        city="Madrid",
        postal_code="28001",
    )
    data.update(overrides)
    return ClientData(**data)


@pytest.fixture
def product() -> Product:
    return make_product()


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def stored_product(store) -> Product:
    product_id = store.insert(PRODUCTS, records.encode(make_product()))
    return records.get_product(store, product_id)


@pytest.fixture
def blobs(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "files", "http://test/files")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def renderer() -> CountingRenderer:
    return CountingRenderer()


@pytest.fixture
def lifecycle(store, blobs, renderer, notifier) -> QuoteLifecycle:
    return QuoteLifecycle(store, blobs, renderer, notifier, public_base_url="http://test")
