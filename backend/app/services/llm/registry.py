"""Vendor registry - the closed set of model vendors, keyed by VendorId."""

from app.services.llm.base import ModelVendor, VendorId
from app.services.llm.gemini import GeminiVendor
from app.services.llm.localai import LocalAIVendor
from app.services.llm.ollama import OllamaVendor
from app.services.llm.oobabooga import OobaboogaVendor
from app.services.llm.openai import OpenAIVendor

_VENDORS: dict[VendorId, ModelVendor] = {
    VendorId.OPENAI: OpenAIVendor(),
    VendorId.LOCALAI: LocalAIVendor(),
    VendorId.OOBABOOGA: OobaboogaVendor(),
    VendorId.OLLAMA: OllamaVendor(),
    VendorId.GEMINI: GeminiVendor(),
}

_missing = set(VendorId) - set(_VENDORS)
if _missing:
    raise RuntimeError(f"Vendors without an implementation: {sorted(v.value for v in _missing)}")


def find_vendor_by_id(vendor_id: str | None) -> ModelVendor | None:
    """Look up a vendor; a miss returns None and callers skip the affected source."""
    try:
        return _VENDORS.get(VendorId(vendor_id))
    except ValueError:
        return None


def list_vendors() -> list[ModelVendor]:
    return sorted(_VENDORS.values(), key=lambda v: v.rank)
