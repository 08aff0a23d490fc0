from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from .blobs import BlobStore, LocalBlobStore
from .config import AppConfig
from .importers.ai_extract import GeminiExtractor, ProductExtractor
from .logic.admin import CatalogAdmin, Inbox, QuoteHistory, SettingsAdmin
from .logic.lifecycle import QuoteLifecycle
from .notify import LogNotifier, Notifier, SmtpNotifier
from .render import DocumentRenderer, HtmlQuoteRenderer
from .store import JsonRecordStore, RecordStore


@dataclass
class Services:
    """Everything a request handler or CLI command needs, wired once."""

    config: AppConfig
    store: RecordStore
    blobs: BlobStore
    renderer: DocumentRenderer
    notifier: Notifier
    extractor: ProductExtractor
    lifecycle: QuoteLifecycle
    catalog: CatalogAdmin
    settings: SettingsAdmin
    quotes: QuoteHistory
    inbox: Inbox


def build_services(
    cfg: AppConfig,
    store: Optional[RecordStore] = None,
    blobs: Optional[BlobStore] = None,
    renderer: Optional[DocumentRenderer] = None,
    notifier: Optional[Notifier] = None,
    extractor: Optional[ProductExtractor] = None,
) -> Services:
    """Wire collaborators from config; any of them can be passed in instead."""
    store = store or JsonRecordStore(Path(cfg.data_dir))
    blobs = blobs or LocalBlobStore(Path(cfg.files_dir), cfg.files_url)
    renderer = renderer or HtmlQuoteRenderer(cfg.display.currency_symbol, cfg.display.decimals)
    if notifier is None:
        if cfg.smtp.enabled:
            notifier = SmtpNotifier(cfg.smtp)
        else:
            logger.info("SMTP disabled, quote emails are only logged")
            notifier = LogNotifier()
    extractor = extractor or GeminiExtractor(cfg.gemini.api_key, cfg.gemini.model)

    lifecycle = QuoteLifecycle(
        store,
        blobs,
        renderer,
        notifier,
        public_base_url=cfg.public_base_url,
        currency_symbol=cfg.display.currency_symbol,
        decimals=cfg.display.decimals,
    )
    return Services(
        config=cfg,
        store=store,
        blobs=blobs,
        renderer=renderer,
        notifier=notifier,
        extractor=extractor,
        lifecycle=lifecycle,
        catalog=CatalogAdmin(store),
        settings=SettingsAdmin(store),
        quotes=QuoteHistory(store, lifecycle),
        inbox=Inbox(store),
    )
