from ecoquote.i18n import resolve_text
from ecoquote.locales import translate


def test_falls_back_to_spanish():
    assert resolve_text({"es": "x"}, "en") == "x"


def test_region_tag_uses_short_language():
    assert resolve_text({"es": "x", "en": "y"}, "en-GB") == "y"


def test_missing_value_is_empty():
    assert resolve_text(None, "en") == ""
    assert resolve_text({}, "en") == ""


def test_plain_string_returned_as_is():
    assert resolve_text("Kit básico", "fr") == "Kit básico"


def test_empty_translation_counts_as_missing():
    assert resolve_text({"es": "Hola", "en": ""}, "en") == "Hola"


def test_first_entry_when_no_spanish():
    assert resolve_text({"ca": "Bon dia", "fr": "Bonjour"}, "en") == "Bon dia"


def test_no_language_means_spanish():
    assert resolve_text({"es": "Hola", "en": "Hi"}, None) == "Hola"


def test_translate_unknown_key_is_returned():
    assert translate("nope.missing", "en") == "nope.missing"
    assert translate("payment.cash", "en-US") == "Cash Payment"
    assert translate("payment.cash", "de") == "Pago al Contado"
