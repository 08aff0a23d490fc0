from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from loguru import logger

from ..blobs import CLIENT_DOCS, QUOTE_DOCS, BlobStore
from ..calculators.pricing import kits_of, options_of, price_selection
from ..errors import (
    CollaboratorError,
    IllegalTransition,
    NotFound,
    QuoteUnavailable,
    TransitionFailed,
    ValidationFailed,
)
from ..locales import translate
from ..models import (
    ClientData,
    PendingQuoteResult,
    PriceBreakdown,
    Product,
    Quote,
    SaveQuoteResult,
    Selection,
)
from ..notify import Notifier
from ..render import DocumentRenderer, QuoteDocument
from ..store import QUOTES, RecordStore
from ..utils import safe_filename
from . import records
from .builder import build_quote


class QuoteState(str, Enum):
    """States of a ``QuoteSession``; persisted quotes carry ``Quote.status``."""

    CONFIGURING = "configuring"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class FinalizingDraft:
    """Selection and price frozen when the confirmation step was opened."""

    product: Product
    selection: Selection
    breakdown: PriceBreakdown


class QuoteSession:
    """Client-side part of the lifecycle: Configuring -> Finalizing.

    The breakdown is recomputed on every read while configuring and frozen
    into a ``FinalizingDraft`` once the confirmation step opens.
    """

    def __init__(self, product: Product, selection: Optional[Selection] = None) -> None:
        self.product = product
        self.selection = selection or Selection(
            option_id=options_of(product)[0].id,
            kit_id=kits_of(product)[0].id,
        )
        self.state = QuoteState.CONFIGURING
        self.draft: Optional[FinalizingDraft] = None

    @property
    def breakdown(self) -> PriceBreakdown:
        if self.draft is not None:
            return self.draft.breakdown
        return price_selection(self.product, self.selection)

    def _change(self, **update) -> Selection:
        if self.state != QuoteState.CONFIGURING:
            raise IllegalTransition("selection is frozen while finalizing")
        self.selection = Selection(**{**self.selection.model_dump(), **update})
        return self.selection

    def select_option(self, option_id: str) -> Selection:
        return self._change(option_id=option_id)

    def select_kit(self, kit_id: str) -> Selection:
        return self._change(kit_id=kit_id)

    def select_financing(self, index: Optional[int]) -> Selection:
        return self._change(financing_index=index)

    def change_extra(self, extra_id: str, delta: int) -> Selection:
        if self.state != QuoteState.CONFIGURING:
            raise IllegalTransition("selection is frozen while finalizing")
        self.selection = self.selection.with_extra_delta(extra_id, delta)
        return self.selection

    def open_confirmation(self) -> FinalizingDraft:
        if self.state != QuoteState.CONFIGURING:
            raise IllegalTransition(f"cannot open confirmation from {self.state.value}")
        self.draft = FinalizingDraft(
            product=self.product,
            selection=self.selection,
            breakdown=price_selection(self.product, self.selection),
        )
        self.state = QuoteState.FINALIZING
        return self.draft

    def back_to_configuring(self) -> None:
        if self.state != QuoteState.FINALIZING:
            raise IllegalTransition(f"cannot go back from {self.state.value}")
        self.draft = None
        self.state = QuoteState.CONFIGURING


@dataclass
class FinalizeSubmission:
    client: ClientData
    legal_accepted: bool = False
    client_not_present: bool = False
    signature: Optional[str] = None
    identity_document: Optional[Attachment] = None
    income_proof: Optional[Attachment] = None
    language: str = "es"
    send_email: bool = True


REQUIRED_IN_PERSON = ("name", "email", "phone", "address", "postal_code")
REQUIRED_REMOTE = ("name", "email", "phone")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def client_field_errors(client: ClientData, required: Tuple[str, ...], lang: str) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for name in required:
        if not (getattr(client, name) or "").strip():
            errors[name] = translate("error.required", lang)
    if "email" not in errors and client.email.strip() and not EMAIL_RE.match(client.email.strip()):
        errors["email"] = translate("error.email_invalid", lang)
    if "phone" not in errors and client.phone.strip() and len(re.sub(r"\D", "", client.phone)) < 9:
        errors["phone"] = translate("error.phone_invalid", lang)
    wo = (client.work_order or "").strip()
    if wo and not re.fullmatch(r"\d{8}", wo):
        errors["work_order"] = translate("error.wo_invalid", lang)
    return errors


def validate_submission(draft: FinalizingDraft, sub: FinalizeSubmission) -> None:
    """Check every precondition of leaving Finalizing; raises before any I/O."""
    lang = sub.language
    required = REQUIRED_REMOTE if sub.client_not_present else REQUIRED_IN_PERSON
    errors = client_field_errors(sub.client, required, lang)
    if errors:
        raise ValidationFailed(translate("error.required_fields", lang), errors)
    if not sub.client_not_present and not (sub.signature or "").strip():
        raise ValidationFailed(translate("error.signature_required", lang))
    if not sub.legal_accepted:
        raise ValidationFailed(translate("error.legal_required", lang))
    plan = draft.breakdown.plan
    if plan is not None and plan.requires_documents:
        if sub.identity_document is None or sub.income_proof is None:
            raise ValidationFailed(translate("error.docs_required", lang))


class QuoteLifecycle:
    """Persisted part of the lifecycle.

    Finalizing -> Signed (in person), Finalizing -> PendingRemoteSignature,
    PendingRemoteSignature -> Signed (remote link), plus the operator's
    resend / soft-delete / restore / purge.
    """

    def __init__(
        self,
        store: RecordStore,
        blobs: BlobStore,
        renderer: DocumentRenderer,
        notifier: Notifier,
        public_base_url: str = "http://localhost:8000",
        currency_symbol: str = "€",
        decimals: int = 0,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.renderer = renderer
        self.notifier = notifier
        self.public_base_url = public_base_url.rstrip("/")
        self.currency_symbol = currency_symbol
        self.decimals = decimals

    def signing_url(self, quote_id: str) -> str:
        return f"{self.public_base_url}/sign/{quote_id}"

    # -- helpers -----------------------------------------------------------

    def _build(self, draft: FinalizingDraft, sub: FinalizeSubmission) -> Quote:
        return build_quote(
            draft.product,
            draft.breakdown,
            sub.client,
            lang=sub.language,
            currency_symbol=self.currency_symbol,
            decimals=self.decimals,
        )

    def _upload_attachments(self, draft: FinalizingDraft, sub: FinalizeSubmission) -> Dict[str, Optional[str]]:
        urls: Dict[str, Optional[str]] = {"identity_document_url": None, "income_proof_url": None}
        plan = draft.breakdown.plan
        if plan is None or not plan.requires_documents:
            return urls
        for key, att in (("identity_document_url", sub.identity_document), ("income_proof_url", sub.income_proof)):
            if att is not None:
                urls[key] = self.blobs.upload(CLIENT_DOCS, att.content, att.content_type, att.filename)
        return urls

    def _render_and_upload(self, quote: Quote, product: Optional[Product]) -> str:
        company = records.load_company_info(self.store)
        rendered = self.renderer.render(QuoteDocument(quote=quote, company=company, product=product))
        filename = safe_filename(f"{quote.client.name or 'cliente'}{rendered.extension}")
        return self.blobs.upload(QUOTE_DOCS, rendered.content, rendered.content_type, filename)

    def _notify(self, quote: Quote, document_url: str) -> bool:
        sent = self.notifier.send(quote.client.email, quote.client.full_name, quote.brand, quote.model, document_url)
        if not sent:
            logger.warning(f"notification not delivered for {quote.brand} {quote.model} to {quote.client.email}")
        return sent

    def _notify_saved(self, quote_id: str, quote: Quote, document_url: str) -> bool:
        """Email a quote that is already persisted and record the outcome."""
        sent = self._notify(quote, document_url)
        if sent:
            try:
                self.store.update(QUOTES, quote_id, {"notification_sent": True})
            except CollaboratorError as e:
                logger.warning(f"quote {quote_id} notified but the flag was not saved: {e}")
        return sent

    def _get(self, quote_id: str) -> Quote:
        quote = records.get_quote(self.store, quote_id)
        if quote is None:
            raise NotFound(f"quote {quote_id} not found")
        return quote

    # -- transitions -------------------------------------------------------

    def submit(self, draft: FinalizingDraft, sub: FinalizeSubmission) -> SaveQuoteResult | PendingQuoteResult:
        if sub.client_not_present:
            return self.finalize_remote_pending(draft, sub)
        return self.finalize_in_person(draft, sub)

    def finalize_in_person(self, draft: FinalizingDraft, sub: FinalizeSubmission) -> SaveQuoteResult:
        if sub.client_not_present:
            raise IllegalTransition("client not present: use the remote signature path")
        validate_submission(draft, sub)

        try:
            urls = self._upload_attachments(draft, sub)
            quote = self._build(draft, sub).model_copy(update={"signature": sub.signature, **urls})
            document_url = self._render_and_upload(quote, draft.product)
        except CollaboratorError as e:
            logger.error(f"in-person finalize aborted before saving: {e}")
            raise TransitionFailed(f"{translate('error.save_error', sub.language)}: {e}") from e

        signed = Quote(
            **{**quote.model_dump(), "status": "signed", "document_url": document_url, "notification_sent": False}
        )
        try:
            quote_id = self.store.insert(QUOTES, records.encode(signed))
        except CollaboratorError as e:
            logger.error(f"in-person finalize could not persist the quote: {e}")
            raise TransitionFailed(f"{translate('error.save_error', sub.language)}: {e}") from e

        sent = self._notify_saved(quote_id, signed, document_url) if sub.send_email else False
        logger.info(f"quote {quote_id} signed in person ({signed.brand} {signed.model}, {signed.price})")
        return SaveQuoteResult(id=quote_id, status="signed", document_url=document_url, notification_sent=sent)

    def finalize_remote_pending(self, draft: FinalizingDraft, sub: FinalizeSubmission) -> PendingQuoteResult:
        if not sub.client_not_present:
            raise IllegalTransition("client present: use the in-person path")
        validate_submission(draft, sub)

        try:
            urls = self._upload_attachments(draft, sub)
            quote = self._build(draft, sub).model_copy(update=urls)
            quote_id = self.store.insert(QUOTES, records.encode(quote))
        except CollaboratorError as e:
            logger.error(f"remote quote could not be saved: {e}")
            raise TransitionFailed(f"{translate('error.save_error', sub.language)}: {e}") from e

        logger.info(f"quote {quote_id} awaiting remote signature")
        return PendingQuoteResult(id=quote_id, signing_url=self.signing_url(quote_id))

    def load_pending(self, quote_id: str) -> Quote:
        quote = records.get_quote(self.store, quote_id)
        if quote is None or quote.status != "pending" or quote.is_deleted:
            raise QuoteUnavailable(translate("error.link_invalid", quote.language if quote else None))
        return quote

    def finalize_remote(self, quote_id: str, signature: str) -> SaveQuoteResult:
        quote = self.load_pending(quote_id)
        if not (signature or "").strip():
            raise ValidationFailed(translate("error.signature_required", quote.language))

        try:
            product = records.get_product(self.store, quote.product_id)
        except CollaboratorError as e:
            logger.warning(f"product {quote.product_id} for quote {quote_id} not resolvable: {e}")
            product = None

        signed_copy = quote.model_copy(update={"signature": signature})
        try:
            document_url = self._render_and_upload(signed_copy, product)
        except CollaboratorError as e:
            logger.error(f"remote finalize of {quote_id} aborted: {e}")
            raise TransitionFailed(f"{translate('error.save_error', quote.language)}: {e}") from e

        patch = {"status": "signed", "signature": signature, "document_url": document_url, "notification_sent": False}
        try:
            updated = self.store.update_if(QUOTES, quote_id, {"status": "pending"}, patch)
        except CollaboratorError as e:
            logger.error(f"remote finalize of {quote_id} could not persist: {e}")
            raise TransitionFailed(f"{translate('error.save_error', quote.language)}: {e}") from e
        if not updated:
            logger.warning(f"quote {quote_id} was signed concurrently")
            raise QuoteUnavailable(translate("error.link_invalid", quote.language))

        sent = self._notify_saved(quote_id, signed_copy, document_url)
        logger.info(f"quote {quote_id} signed remotely")
        return SaveQuoteResult(id=quote_id, status="signed", document_url=document_url, notification_sent=sent)

    # -- operator side transitions -----------------------------------------

    def resend_notification(self, quote_id: str) -> bool:
        """Send the stored document link again; nothing is re-rendered."""
        quote = self._get(quote_id)
        if quote.status != "signed" or not quote.document_url:
            raise ValidationFailed("quote has no document to send yet")
        sent = self._notify(quote, quote.document_url)
        if sent:
            self.store.update(QUOTES, quote_id, {"notification_sent": True})
        return sent

    def soft_delete(self, quote_id: str) -> None:
        self._get(quote_id)
        self.store.soft_delete(QUOTES, quote_id)

    def restore(self, quote_id: str) -> None:
        self._get(quote_id)
        self.store.restore(QUOTES, quote_id)

    def purge(self, quote_id: str) -> None:
        self._get(quote_id)
        self.store.hard_delete(QUOTES, quote_id)
