# app/services/adapter_registry.py
"""
Adapter selection: skill type + rule model_id/rubric_id -> ScoringAdapter.

Built once per worker process and handed to the ScoringPipeline.
"""

import logging

import httpx

from app.models.enums import SkillType
from app.schemas.score import ScoreResult
from app.schemas.scoring_rule import ScoringRuleConfig
from app.services.gemini_adapter import GeminiScoringAdapter
from app.services.openai_adapter import OpenAIScoringAdapter
from app.services.scoring_adapter import (
    ScoringAdapter,
    UnsupportedScoringError,
    get_rubric,
    is_audio_reference,
)

logger = logging.getLogger(__name__)

# model_id prefix -> adapter name
MODEL_PREFIXES = (
    ("gemini", "gemini"),
    ("gpt", "openai"),
    ("o1", "openai"),
    ("o3", "openai"),
    ("o4", "openai"),
)


class AdapterRegistry:
    def __init__(
        self,
        adapters: dict[str, ScoringAdapter],
        *,
        default_adapter: str,
        fallback_models: dict[str, str] | None = None,
    ):
        if default_adapter not in adapters:
            raise ValueError(f"default adapter '{default_adapter}' is not registered")
        self._adapters = adapters
        self.default_adapter = default_adapter
        # adapter name -> model run when a rule's model_id names another provider
        self.fallback_models = dict(fallback_models or {})

    @classmethod
    def from_settings(cls, settings, client: httpx.Client | None = None) -> "AdapterRegistry":
        timeout = settings.SCORING_PROVIDER_TIMEOUT_SECONDS
        adapters: dict[str, ScoringAdapter] = {
            "openai": OpenAIScoringAdapter(
                settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                timeout=timeout,
                client=client,
            ),
            "gemini": GeminiScoringAdapter(
                settings.GEMINI_API_KEY,
                base_url=settings.GEMINI_BASE_URL,
                timeout=timeout,
                client=client,
            ),
        }
        default = cls.adapter_name_for_model(settings.DEFAULT_SCORING_MODEL) or "gemini"
        return cls(
            adapters,
            default_adapter=default,
            fallback_models={
                "openai": settings.OPENAI_FALLBACK_MODEL,
                "gemini": settings.GEMINI_FALLBACK_MODEL,
            },
        )

    @staticmethod
    def adapter_name_for_model(model_id: str) -> str | None:
        lowered = model_id.lower()
        for prefix, name in MODEL_PREFIXES:
            if lowered.startswith(prefix):
                return name
        return None

    def resolve(self, skill_type: SkillType, rule: ScoringRuleConfig, content: str) -> ScoringAdapter:
        skill_type = SkillType(skill_type)
        get_rubric(rule.rubric_id, skill_type)

        name = self.adapter_name_for_model(rule.model_id) or self.default_adapter
        adapter = self._adapters.get(name)
        if adapter is None:
            raise UnsupportedScoringError(f"No scoring adapter registered for model '{rule.model_id}'")

        if skill_type == SkillType.SPEAKING and is_audio_reference(content) and not adapter.supports_audio:
            audio_capable = [a for a in self._adapters.values() if a.supports_audio]
            if not audio_capable:
                raise UnsupportedScoringError("No audio-capable scoring adapter is registered")
            logger.info(
                f"model '{rule.model_id}' cannot hear audio; routing to {audio_capable[0].name}"
            )
            adapter = audio_capable[0]
        return adapter

    def evaluate(
        self,
        skill_type: SkillType,
        rule: ScoringRuleConfig,
        content: str,
        context: str | None,
    ) -> ScoreResult:
        adapter = self.resolve(skill_type, rule, content)
        # model_id only makes sense to the adapter it names
        model_id = rule.model_id
        if self.adapter_name_for_model(model_id) not in (None, adapter.name):
            model_id = self._fallback_model(adapter)

        if SkillType(skill_type) == SkillType.SPEAKING:
            return adapter.evaluate_speaking(
                content,
                context,
                rule.weights,
                rule.strictness,
                model_id=model_id,
                rubric_id=rule.rubric_id,
                options=rule.extra_config,
            )
        return adapter.evaluate_writing(
            content,
            context,
            rule.weights,
            rule.strictness,
            model_id=model_id,
            rubric_id=rule.rubric_id,
            options=rule.extra_config,
        )

    def _fallback_model(self, adapter: ScoringAdapter) -> str:
        model_id = self.fallback_models.get(adapter.name)
        if not model_id:
            raise UnsupportedScoringError(f"No fallback model configured for adapter '{adapter.name}'")
        return model_id

    def close(self) -> None:
        for adapter in self._adapters.values():
            adapter.close()
