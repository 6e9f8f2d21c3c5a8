"""Model discovery: list a source's remote models and register them as LLMs."""

import logging

from app.core.errors import ConfigurationError
from app.services.llm.base import DLLM
from app.services.llm.registry import find_vendor_by_id
from app.services.stores.llms import ModelStore

logger = logging.getLogger(__name__)


async def refresh_source_models(models: ModelStore, source_id: str) -> list[DLLM]:
    source = models.get_source(source_id)
    if source is None:
        raise ConfigurationError(f"Unknown model source: {source_id}")
    vendor = find_vendor_by_id(source.vendor_id)
    if vendor is None:
        raise ConfigurationError(f"Source {source_id} has an unknown vendor: {source.vendor_id}")

    access = vendor.get_access(source.setup)
    descriptions = await vendor.list_models(access)

    # the source may have been removed while the listing was in flight
    source = models.get_source(source_id)
    if source is None:
        logger.info(f"Source {source_id} went away during discovery, dropping {len(descriptions)} models")
        return []

    llms = [llm for llm in (vendor.model_to_llm(d, source) for d in descriptions) if llm]
    models.add_llms(llms)
    logger.info(f"Discovered {len(llms)} models on {source.label}")
    return llms
