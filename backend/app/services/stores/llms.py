"""Model sources and the LLMs discovered from them.

All mutation goes through ModelStore methods, which keep three invariants:
every source resolves to a registered vendor within its instance limit, every
LLM belongs to an existing source, and the chat/fast/func role ids are either
None or the id of an existing LLM.
"""

import logging
from typing import Any, Callable

from app.core.errors import ConfigurationError
from app.core.events import EventChannel, StoreEvent
from app.services.llm.base import DLLM, DModelSource
from app.services.llm.registry import find_vendor_by_id

logger = logging.getLogger(__name__)

ROLES = ("chat", "fast", "func")


class ModelStore:
    def __init__(self, events: EventChannel | None = None) -> None:
        self.sources: list[DModelSource] = []
        self.llms: list[DLLM] = []
        self.chat_llm_id: str | None = None
        self.fast_llm_id: str | None = None
        self.func_llm_id: str | None = None
        self._events = events or EventChannel()

    def _emit(self, topic: str, action: str, key: str | None = None) -> None:
        self._events.emit(StoreEvent(topic=topic, action=action, key=key))

    # --- Sources ---

    def get_source(self, source_id: str) -> DModelSource | None:
        return next((s for s in self.sources if s.id == source_id), None)

    def _unique_source_id(self, base: str) -> str:
        taken = {s.id for s in self.sources}
        if base not in taken:
            return base
        n = 1
        while f"{base}-{n}" in taken:
            n += 1
        return f"{base}-{n}"

    def add_source(
        self, vendor_id: str, label: str | None = None, setup: dict[str, Any] | None = None
    ) -> str:
        vendor = find_vendor_by_id(vendor_id)
        if vendor is None:
            raise ConfigurationError(f"Unknown vendor: {vendor_id}")

        existing = [s for s in self.sources if s.vendor_id == vendor.id.value]
        if len(existing) >= vendor.instance_limit:
            raise ConfigurationError(
                f"{vendor.name}: instance limit of {vendor.instance_limit} reached"
            )

        source = DModelSource(
            id=self._unique_source_id(vendor.id.value),
            label=label or vendor.name + (f" #{len(existing)}" if existing else ""),
            vendor_id=vendor.id.value,
            setup=vendor.normalize_setup(setup),
        )
        self.sources.append(source)
        logger.info(f"Added model source {source.id} ({vendor.name})")
        self._emit("sources", "create", source.id)
        return source.id

    def restore_source(self, source: DModelSource) -> None:
        """Re-add a previously saved source, keeping its id."""
        vendor = find_vendor_by_id(source.vendor_id)
        if vendor is None:
            raise ConfigurationError(f"Unknown vendor: {source.vendor_id}")
        if self.get_source(source.id) is None:
            count = sum(1 for s in self.sources if s.vendor_id == vendor.id.value)
            if count >= vendor.instance_limit:
                raise ConfigurationError(
                    f"{vendor.name}: instance limit of {vendor.instance_limit} reached"
                )
        restored = DModelSource(
            id=source.id,
            label=source.label,
            vendor_id=vendor.id.value,
            setup=vendor.normalize_setup(source.setup),
        )
        self.sources = [s for s in self.sources if s.id != source.id] + [restored]
        self._emit("sources", "create", restored.id)

    def update_source_setup(self, source_id: str, partial: dict[str, Any]) -> DModelSource:
        source = self.get_source(source_id)
        if source is None:
            raise ConfigurationError(f"Unknown model source: {source_id}")
        vendor = find_vendor_by_id(source.vendor_id)
        if vendor is None:
            raise ConfigurationError(f"Unknown vendor: {source.vendor_id}")
        source.setup = vendor.normalize_setup({**source.setup, **partial})
        self._emit("sources", "update", source_id)
        return source

    def update_source_label(self, source_id: str, label: str) -> None:
        source = self.get_source(source_id)
        if source is None:
            raise ConfigurationError(f"Unknown model source: {source_id}")
        source.label = label
        self._emit("sources", "update", source_id)

    def remove_source(self, source_id: str) -> bool:
        if self.get_source(source_id) is None:
            return False
        self.sources = [s for s in self.sources if s.id != source_id]
        dropped = [llm.id for llm in self.llms if llm.source_id == source_id]
        self.llms = [llm for llm in self.llms if llm.source_id != source_id]
        self._clear_dangling_roles()
        logger.info(f"Removed model source {source_id} and {len(dropped)} models")
        self._emit("sources", "delete", source_id)
        if dropped:
            self._emit("llms", "delete", source_id)
        return True

    # --- LLMs ---

    def get_llm(self, llm_id: str | None) -> DLLM | None:
        if not llm_id:
            return None
        return next((llm for llm in self.llms if llm.id == llm_id), None)

    def source_of(self, llm: DLLM) -> DModelSource | None:
        return self.get_source(llm.source_id)

    def add_llms(self, llms: list[DLLM]) -> None:
        """Upsert by id: an LLM with a known id replaces the old one in place."""
        for llm in llms:
            if self.get_source(llm.source_id) is None:
                raise ConfigurationError(f"LLM {llm.id} references unknown source {llm.source_id}")

        positions = {llm.id: i for i, llm in enumerate(self.llms)}
        for llm in llms:
            if llm.id in positions:
                self.llms[positions[llm.id]] = llm
            else:
                positions[llm.id] = len(self.llms)
                self.llms.append(llm)

        self._fill_default_roles()
        self._emit("llms", "update")

    def remove_llm(self, llm_id: str) -> bool:
        if self.get_llm(llm_id) is None:
            return False
        self.llms = [llm for llm in self.llms if llm.id != llm_id]
        self._clear_dangling_roles()
        self._emit("llms", "delete", llm_id)
        return True

    def update_llm_options(self, llm_id: str, options: dict[str, Any]) -> DLLM:
        llm = self.get_llm(llm_id)
        if llm is None:
            raise ConfigurationError(f"Unknown LLM: {llm_id}")
        llm.options = {**llm.options, **options}
        self._emit("llms", "update", llm_id)
        return llm

    def list_llms(
        self, filter: Callable[[DLLM], bool] | None = None, include_hidden: bool = True
    ) -> list[DLLM]:
        """LLMs by vendor rank, then discovery order. LLMs of unknown vendors are skipped."""
        ranked = []
        for llm in self.llms:
            source = self.source_of(llm)
            vendor = find_vendor_by_id(source.vendor_id) if source else None
            if vendor is None:
                continue
            if llm.hidden and not include_hidden:
                continue
            if filter and not filter(llm):
                continue
            ranked.append((vendor.rank, llm))
        return [llm for _, llm in sorted(ranked, key=lambda pair: pair[0])]

    # --- Default roles ---

    def _set_role(self, role: str, llm_id: str | None) -> None:
        if llm_id is not None and self.get_llm(llm_id) is None:
            raise ConfigurationError(f"Unknown LLM: {llm_id}")
        setattr(self, f"{role}_llm_id", llm_id)
        self._emit("llms", "roles", role)

    def set_chat_llm_id(self, llm_id: str | None) -> None:
        self._set_role("chat", llm_id)

    def set_fast_llm_id(self, llm_id: str | None) -> None:
        self._set_role("fast", llm_id)

    def set_func_llm_id(self, llm_id: str | None) -> None:
        self._set_role("func", llm_id)

    def _clear_dangling_roles(self) -> None:
        ids = {llm.id for llm in self.llms}
        for role in ROLES:
            if getattr(self, f"{role}_llm_id") not in ids:
                setattr(self, f"{role}_llm_id", None)

    def _fill_default_roles(self) -> None:
        visible = self.list_llms(include_hidden=False)
        if not visible:
            return
        for role in ROLES:
            if getattr(self, f"{role}_llm_id") is None:
                setattr(self, f"{role}_llm_id", visible[0].id)
