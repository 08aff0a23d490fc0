import pytest

from ecoquote.errors import IllegalTransition, NotFound, QuoteUnavailable, StorageError, TransitionFailed, ValidationFailed
from ecoquote.logic import records
from ecoquote.logic.lifecycle import (
    Attachment,
    FinalizeSubmission,
    QuoteLifecycle,
    QuoteSession,
    QuoteState,
)
from ecoquote.models import Selection
from ecoquote.store import QUOTES, JsonRecordStore, MemoryRecordStore

from conftest import FailingRenderer, RecordingNotifier, make_client

SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


def _draft(product, **selection):
    session = QuoteSession(product, Selection(option_id="o1", kit_id="k1", **selection))
    return session.open_confirmation()


def _docs():
    return dict(
        identity_document=Attachment("dni.pdf", b"%PDF-dni", "application/pdf"),
        income_proof=Attachment("nomina.pdf", b"%PDF-nomina", "application/pdf"),
    )


def test_session_freezes_selection(product):
    session = QuoteSession(product)
    session.change_extra("e1", 2)
    draft = session.open_confirmation()
    assert session.state == QuoteState.FINALIZING
    assert [s.value for s in QuoteState] == ["configuring", "finalizing"]
    assert draft.breakdown.total == 1000 + 200 + 100
    with pytest.raises(IllegalTransition):
        session.change_extra("e1", 1)
    session.back_to_configuring()
    session.change_extra("e1", -2)
    assert session.breakdown.total == 1200


def test_in_person_signed_and_persisted(stored_product, lifecycle, store, notifier, renderer):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    result = lifecycle.finalize_in_person(_draft(stored_product), sub)

    assert result.status == "signed"
    assert result.notification_sent is True
    quote = records.get_quote(store, result.id)
    assert quote.status == "signed"
    assert quote.document_url == result.document_url
    assert quote.product_id == stored_product.id
    assert quote.signature == SIGNATURE
    assert len(renderer.documents) == 1
    assert notifier.calls[0][0] == "lucia@example.com"


def test_required_fields_reported_per_field(product, lifecycle, store):
    client = make_client(address="", postal_code=" ", email="not-an-email", phone="123")
    sub = FinalizeSubmission(client=client, legal_accepted=True, signature=SIGNATURE)
    with pytest.raises(ValidationFailed) as exc:
        lifecycle.finalize_in_person(_draft(product), sub)
    assert set(exc.value.field_errors) == {"address", "postal_code", "email", "phone"}
    assert store.list(QUOTES) == []


def test_work_order_must_have_eight_digits(product, lifecycle):
    sub = FinalizeSubmission(client=make_client(work_order="1234"), legal_accepted=True, signature=SIGNATURE)
    with pytest.raises(ValidationFailed) as exc:
        lifecycle.finalize_in_person(_draft(product), sub)
    assert "work_order" in exc.value.field_errors


def test_signature_required_in_person(product, lifecycle):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature="")
    with pytest.raises(ValidationFailed) as exc:
        lifecycle.finalize_in_person(_draft(product), sub)
    assert exc.value.field_errors == {}
    assert "firma" in exc.value.message


def test_legal_acceptance_required(product, lifecycle):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=False, signature=SIGNATURE)
    with pytest.raises(ValidationFailed):
        lifecycle.finalize_in_person(_draft(product), sub)


def test_financing_requires_documents(product, lifecycle, store, blobs):
    draft = _draft(product, financing_index=0)
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    with pytest.raises(ValidationFailed):
        lifecycle.finalize_in_person(draft, sub)
    assert not blobs.root.exists()

    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE, **_docs())
    result = lifecycle.finalize_in_person(draft, sub)
    quote = records.get_quote(store, result.id)
    assert quote.identity_document_url.startswith("http://test/files/clients/")
    assert quote.income_proof_url.endswith("nomina.pdf")


def test_plan_without_document_requirement(product, lifecycle):
    draft = _draft(product, financing_index=1)
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    assert lifecycle.finalize_in_person(draft, sub).status == "signed"


def test_render_failure_persists_nothing(product, store, blobs, notifier):
    lifecycle = QuoteLifecycle(store, blobs, FailingRenderer(), notifier)
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    with pytest.raises(TransitionFailed):
        lifecycle.finalize_in_person(_draft(product), sub)
    assert store.list(QUOTES, deleted=None) == []
    assert notifier.calls == []


class QuoteInsertFails(MemoryRecordStore):
    def insert(self, collection, record):
        if collection == QUOTES:
            raise StorageError("disk full")
        return super().insert(collection, record)


def test_persist_failure_after_render_stores_and_sends_nothing(product, blobs, renderer, notifier):
    store = QuoteInsertFails()
    lifecycle = QuoteLifecycle(store, blobs, renderer, notifier)
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    with pytest.raises(TransitionFailed):
        lifecycle.finalize_in_person(_draft(product), sub)
    assert len(renderer.documents) == 1
    assert store.list(QUOTES, deleted=None) == []
    assert notifier.calls == []


def test_scenario_e_remote_without_signature(stored_product, lifecycle, store, notifier):
    client = make_client(address="", postal_code="")
    sub = FinalizeSubmission(client=client, legal_accepted=True, client_not_present=True)
    result = lifecycle.submit(_draft(stored_product), sub)

    assert result.status == "pending"
    assert result.signing_url == f"http://test/sign/{result.id}"
    quote = records.get_quote(store, result.id)
    assert quote.status == "pending"
    assert quote.document_url is None
    assert notifier.calls == []


def test_remote_path_still_requires_contact_fields(product, lifecycle):
    sub = FinalizeSubmission(client=make_client(phone=""), legal_accepted=True, client_not_present=True)
    with pytest.raises(ValidationFailed) as exc:
        lifecycle.submit(_draft(product), sub)
    assert list(exc.value.field_errors) == ["phone"]


def test_scenario_d_second_remote_finalize_rejected(stored_product, lifecycle, store):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, client_not_present=True)
    pending = lifecycle.submit(_draft(stored_product), sub)

    signed = lifecycle.finalize_remote(pending.id, SIGNATURE)
    assert signed.status == "signed"
    assert records.get_quote(store, pending.id).status == "signed"

    with pytest.raises(QuoteUnavailable):
        lifecycle.finalize_remote(pending.id, SIGNATURE)


def test_remote_finalize_survives_deleted_product(stored_product, lifecycle, store, renderer):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, client_not_present=True)
    pending = lifecycle.submit(_draft(stored_product), sub)
    store.hard_delete("products", stored_product.id)

    result = lifecycle.finalize_remote(pending.id, SIGNATURE)
    assert result.status == "signed"
    assert renderer.documents[-1].product is None


def test_remote_finalize_loses_race(stored_product, lifecycle, store, notifier):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, client_not_present=True)
    pending = lifecycle.submit(_draft(stored_product), sub)

    real_update_if = store.update_if

    def racing_update_if(collection, record_id, expected, patch):
        # another request signs first
        real_update_if(collection, record_id, expected, patch)
        return real_update_if(collection, record_id, expected, patch)

    store.update_if = racing_update_if
    with pytest.raises(QuoteUnavailable):
        lifecycle.finalize_remote(pending.id, SIGNATURE)
    assert notifier.calls == []


def test_remote_finalize_flush_failure_keeps_link_usable(tmp_path, monkeypatch, product, blobs, renderer, notifier):
    store = JsonRecordStore(tmp_path / "data")
    lifecycle = QuoteLifecycle(store, blobs, renderer, notifier)
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, client_not_present=True)
    pending = lifecycle.submit(_draft(product), sub)

    def broken_flush(name):
        raise StorageError("disk full")

    monkeypatch.setattr(store, "_flush", broken_flush)
    with pytest.raises(TransitionFailed):
        lifecycle.finalize_remote(pending.id, SIGNATURE)
    assert records.get_quote(store, pending.id).status == "pending"
    assert notifier.calls == []

    monkeypatch.undo()
    assert lifecycle.finalize_remote(pending.id, SIGNATURE).status == "signed"
    assert len(notifier.calls) == 1


def test_unknown_signing_link(lifecycle):
    with pytest.raises(QuoteUnavailable):
        lifecycle.load_pending("missing")


def test_scenario_f_notification_failure_then_resend(product, store, blobs, renderer):
    notifier = RecordingNotifier(result=False)
    lifecycle = QuoteLifecycle(store, blobs, renderer, notifier)
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    result = lifecycle.finalize_in_person(_draft(product), sub)

    quote = records.get_quote(store, result.id)
    assert quote.status == "signed"
    assert quote.notification_sent is False

    notifier.result = True
    assert lifecycle.resend_notification(result.id) is True
    assert records.get_quote(store, result.id).notification_sent is True
    assert len(renderer.documents) == 1
    assert notifier.calls[-1][4] == quote.document_url


def test_resend_rejects_unsigned_quote(product, lifecycle):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, client_not_present=True)
    pending = lifecycle.submit(_draft(product), sub)
    with pytest.raises(ValidationFailed):
        lifecycle.resend_notification(pending.id)
    with pytest.raises(NotFound):
        lifecycle.resend_notification("missing")


def test_soft_delete_restore_purge(product, lifecycle, store):
    sub = FinalizeSubmission(client=make_client(), legal_accepted=True, signature=SIGNATURE)
    result = lifecycle.finalize_in_person(_draft(product), sub)

    lifecycle.soft_delete(result.id)
    assert records.list_quotes(store) == []
    assert [q.id for q in records.list_quotes(store, deleted=True)] == [result.id]
    lifecycle.restore(result.id)
    assert [q.id for q in records.list_quotes(store)] == [result.id]
    lifecycle.purge(result.id)
    assert records.get_quote(store, result.id) is None
