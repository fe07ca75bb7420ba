"""Backend selection: which model provider to call, in which order."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from sceneforge.config import Settings
from sceneforge.models.base import BaseChatModel
from sceneforge.models.gemini import GeminiChatModel
from sceneforge.models.openai_compat import OpenAICompatChatModel
from sceneforge.state import ProviderOverride


GEMINI = "gemini"
OPENROUTER = "openrouter"
NVIDIA = "nvidia"
FALLBACK_ORDER = (GEMINI, OPENROUTER, NVIDIA)
FAMILIES = frozenset(FALLBACK_ORDER)


@dataclass(frozen=True)
class ProviderSelection:
    family: str
    api_key: str
    model: str
    base_url: str
    timeout_seconds: float
    pinned: bool = False


def _clean(value: str | None) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def family_for_model(model: str) -> str:
    lowered = model.strip().lower()
    if lowered.startswith("gemini") or lowered.startswith("models/gemini"):
        return GEMINI
    if lowered.startswith("nvidia/") or lowered.startswith("qwen3-coder"):
        return NVIDIA
    return OPENROUTER


class ProviderRouter:
    """Orders backend candidates and resolves their credentials.

    Request values win over deployment settings; candidates without a key are skipped.
    """

    def __init__(
        self,
        settings: Settings,
        provider: ProviderOverride | None = None,
        model_override: str | None = None,
    ) -> None:
        self.settings = settings
        self.provider = provider
        self.model_override = _clean(model_override)

    @property
    def requested_family(self) -> str | None:
        name = _clean(self.provider.name) if self.provider else None
        name = name.lower() if name else None
        return name if name in FAMILIES else None

    def candidate_order(self) -> list[str]:
        preference: list[str] = []
        if self.model_override:
            preference.append(family_for_model(self.model_override))
        if self.requested_family:
            preference.append(self.requested_family)
        default = _clean(self.settings.default_provider)
        if default and default.lower() in FAMILIES:
            preference.append(default.lower())
        if self.settings.force_openrouter:
            preference.append(OPENROUTER)
        preference.extend(FALLBACK_ORDER)
        ordered: list[str] = []
        for family in preference:
            if family not in ordered:
                ordered.append(family)
        return ordered

    def _resolve_family(self, family: str) -> ProviderSelection | None:
        request = self.provider if self.requested_family == family else None
        request_key = _clean(request.api_key) if request else None
        api_key = request_key or _clean(getattr(self.settings, f"{family}_api_key"))
        if not api_key:
            return None
        override = (
            self.model_override
            if self.model_override and family_for_model(self.model_override) == family
            else None
        )
        model = (
            (_clean(request.model) if request else None)
            or override
            or getattr(self.settings, f"{family}_model")
        )
        base_url = (_clean(request.base_url) if request else None) or getattr(
            self.settings, f"{family}_base_url"
        )
        return ProviderSelection(
            family=family,
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout_seconds=getattr(self.settings, f"{family}_timeout_seconds"),
            pinned=request_key is not None,
        )

    def resolve(self) -> list[ProviderSelection]:
        selections = []
        for family in self.candidate_order():
            selection = self._resolve_family(family)
            if selection is not None:
                selections.append(selection)
        return selections

    def select(self) -> ProviderSelection | None:
        resolved = self.resolve()
        return resolved[0] if resolved else None

    def build_model(
        self,
        selection: ProviderSelection,
        transport: httpx.BaseTransport | None = None,
    ) -> BaseChatModel:
        if selection.family == GEMINI:
            return GeminiChatModel(
                api_key=selection.api_key,
                model=selection.model,
                base_url=selection.base_url,
                timeout_seconds=selection.timeout_seconds,
                max_retries=self.settings.provider_max_retries,
                retry_delay=self.settings.provider_retry_delay,
                transport=transport,
            )
        return OpenAICompatChatModel(
            base_url=selection.base_url,
            api_key=selection.api_key,
            model=selection.model,
            provider=selection.family,
            timeout_seconds=selection.timeout_seconds,
            max_retries=self.settings.provider_max_retries,
            retry_delay=self.settings.provider_retry_delay,
            transport=transport,
        )
