from __future__ import annotations

from typing import Dict, Optional

from .i18n import resolve_text

# Flat keys, one entry per language. Only strings that end up in stored
# quotes, rendered documents and user-facing errors live here.
MESSAGES: Dict[str, Dict[str, str]] = {
    "payment.cash": {"es": "Pago al Contado", "en": "Cash Payment"},
    "payment.fee": {"es": "Cuota", "en": "Fee"},
    "payment.month": {"es": "mes", "en": "month"},
    "payment.total_pay": {"es": "Total a pagar", "en": "Total to pay"},
    "summary.installation": {"es": "Instalación", "en": "Installation"},
    "summary.model": {"es": "Modelo", "en": "Model"},
    "document.title": {"es": "PRESUPUESTO", "en": "QUOTE"},
    "document.date": {"es": "Fecha", "en": "Date"},
    "document.client": {"es": "Cliente", "en": "Client"},
    "document.details": {"es": "DETALLES", "en": "DETAILS"},
    "document.concept": {"es": "Concepto", "en": "Concept"},
    "document.total": {"es": "Total", "en": "Total"},
    "document.payment": {"es": "Pago", "en": "Payment"},
    "document.features": {"es": "Características", "en": "Features"},
    "document.signature": {"es": "Firma Cliente", "en": "Client Signature"},
    "document.pending_signature": {"es": "Pendiente de firma", "en": "Awaiting signature"},
    "error.required_fields": {
        "es": "Por favor completa los campos obligatorios (*)",
        "en": "Please complete required fields (*)",
    },
    "error.required": {"es": "Campo obligatorio", "en": "Required field"},
    "error.email_invalid": {"es": "El formato del email no es válido.", "en": "Invalid email format."},
    "error.phone_invalid": {
        "es": "El teléfono debe tener al menos 9 dígitos.",
        "en": "Phone must be at least 9 digits.",
    },
    "error.wo_invalid": {
        "es": "El Nº de Work Order debe tener 8 dígitos.",
        "en": "Work Order # must have 8 digits.",
    },
    "error.signature_required": {
        "es": "La firma del cliente es obligatoria.",
        "en": "The client's signature is required.",
    },
    "error.legal_required": {
        "es": "Por favor acepta las condiciones legales.",
        "en": "Please accept the legal conditions.",
    },
    "error.docs_required": {
        "es": "Para financiar es obligatorio adjuntar DNI y Justificante de ingresos.",
        "en": "Financing requires ID and Proof of Income.",
    },
    "error.save_error": {"es": "Error al guardar", "en": "Error saving"},
    "error.link_invalid": {
        "es": "Este enlace no es válido o el presupuesto ya ha sido firmado.",
        "en": "This link is not valid or the quote has already been signed.",
    },
    "sign.title": {"es": "Firma tu presupuesto", "en": "Sign your quote"},
    "sign.instructions": {
        "es": "Revisa el presupuesto y firma en el recuadro.",
        "en": "Review the quote and sign in the box.",
    },
    "sign.clear": {"es": "Borrar", "en": "Clear"},
    "sign.submit": {"es": "Firmar y enviar", "en": "Sign and send"},
    "sign.done": {
        "es": "¡Presupuesto firmado! Te hemos enviado una copia por email.",
        "en": "Quote signed! We have emailed you a copy.",
    },
}


def translate(key: str, lang: Optional[str] = None) -> str:
    """Look up a UI string; unknown keys come back unchanged."""
    entry = MESSAGES.get(key)
    if entry is None:
        return key
    return resolve_text(entry, lang)
