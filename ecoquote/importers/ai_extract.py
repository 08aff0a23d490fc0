from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Protocol

from google import genai
from google.genai import types
from loguru import logger
from pydantic import ValidationError

from ..errors import ExtractionError
from ..models import Product
from ..utils import short_id, to_float

PROMPT = (
    "Extrae los datos del equipo de climatización de este documento y responde solo con JSON: "
    '{"brand": "", "model": "", "type": "", "reference": "", '
    '"features": [{"title": {"es": "", "en": "", "ca": "", "fr": ""}, '
    '"description": {"es": "", "en": "", "ca": "", "fr": ""}}], '
    '"pricing": [{"name": {"es": "", "en": "", "ca": "", "fr": ""}, "price": 0}], '
    '"installation_kits": [{"name": {"es": ""}, "price": 0}], '
    '"extras": [{"name": {"es": ""}, "price": 0}], '
    '"financing": [{"label": {"es": ""}, "months": 12, "coefficient": 1.0}]}'
)

# Models sometimes answer in the camelCase the prompt examples were written in.
KEY_ALIASES = {"installationKits": "installation_kits", "imageUrl": "image_url", "pdfUrl": "pdf_url"}

PRICED = ("pricing", "installation_kits", "extras")


class ProductExtractor(Protocol):
    def extract(self, data: bytes, mime_type: str) -> Dict[str, Any]:
        """Return the raw product fields found in ``data`` or raise ExtractionError."""
        ...


def parse_model_json(text: Optional[str]) -> Dict[str, Any]:
    """Strip markdown fences from a model answer and decode the JSON object."""
    cleaned = re.sub(r"```(?:json)?", "", text or "", flags=re.IGNORECASE).strip()
    if not cleaned:
        raise ExtractionError("empty answer from the extraction model")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"extraction model did not return JSON: {e}") from e
    if not isinstance(data, dict):
        raise ExtractionError("extraction model did not return a JSON object")
    return data


class GeminiExtractor:
    def __init__(self, api_key: Optional[str], model: str = "gemini-2.5-flash", client=None) -> None:
        self.model = model
        if client is not None:
            self.client = client
        elif api_key:
            self.client = genai.Client(api_key=api_key)
        else:
            self.client = None

    def extract(self, data: bytes, mime_type: str = "application/pdf") -> Dict[str, Any]:
        if self.client is None:
            raise ExtractionError("GEMINI_API_KEY is not configured")
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[PROMPT, types.Part.from_bytes(data=data, mime_type=mime_type)],
            )
        except Exception as e:
            logger.exception("product extraction request failed")
            raise ExtractionError(f"extraction request failed: {e}") from e
        return parse_model_json(response.text)


def _priced_items(rows: Any) -> List[Dict[str, Any]]:
    items = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        items.append({"id": str(row.get("id") or short_id()), "name": row.get("name") or "", "price": to_float(row.get("price"))})
    return items


def _plans(rows: Any) -> List[Dict[str, Any]]:
    plans = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        plan = {
            "id": str(row.get("id") or short_id()),
            "label": row.get("label") or "",
            "months": max(1, int(to_float(row.get("months")) or 1)),
        }
        for key in ("commission", "coefficient"):
            if row.get(key) is not None:
                plan[key] = to_float(row[key])
        plans.append(plan)
    return plans


def draft_from_extraction(raw: Dict[str, Any]) -> Product:
    """Turn extracted fields into an unsaved draft product for review."""
    data = {KEY_ALIASES.get(k, k): v for k, v in (raw or {}).items()}
    fields: Dict[str, Any] = {
        "brand": str(data.get("brand") or ""),
        "model": str(data.get("model") or ""),
        "type": str(data.get("type") or ""),
        "reference": data.get("reference") or None,
        "features": [f for f in data.get("features") or [] if isinstance(f, dict)],
        "financing": _plans(data.get("financing")),
        "status": "draft",
    }
    for key in PRICED:
        fields[key] = _priced_items(data.get(key))
    try:
        return Product(**fields)
    except ValidationError as e:
        raise ExtractionError(f"extracted data does not fit a product: {e}") from e
