# app/services/openai_adapter.py
"""Text-only critic over an OpenAI-compatible chat completions endpoint."""

import logging
from typing import Any, Mapping

import httpx

from app.models.enums import SkillType
from app.schemas.score import ScoreResult
from app.services.scoring_adapter import (
    ProviderError,
    ProviderValidationError,
    Rubric,
    ScoringAdapter,
    UnsupportedScoringError,
    build_scoring_prompt,
    canonical_output_keys,
    get_rubric,
    is_audio_reference,
    load_json_object,
    parse_score_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.2


class OpenAIScoringAdapter(ScoringAdapter):
    name = "openai"
    supports_audio = False

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str,
        timeout: float,
        client: httpx.Client | None = None,
    ):
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def evaluate_speaking(
        self,
        audio_or_transcript,
        context,
        weights,
        strictness,
        *,
        model_id,
        rubric_id="ielts_speaking",
        options=None,
    ) -> ScoreResult:
        if is_audio_reference(audio_or_transcript):
            raise UnsupportedScoringError(
                "openai adapter scores transcripts only; audio needs a multimodal adapter"
            )
        rubric = get_rubric(rubric_id, SkillType.SPEAKING)
        return self._evaluate(
            rubric, "TRANSCRIPT", audio_or_transcript, context, weights, strictness, model_id, options
        )

    def evaluate_writing(
        self,
        text,
        context,
        weights,
        strictness,
        *,
        model_id,
        rubric_id="ielts_writing",
        options=None,
    ) -> ScoreResult:
        rubric = get_rubric(rubric_id, SkillType.WRITING)
        return self._evaluate(rubric, "ESSAY", text, context, weights, strictness, model_id, options)

    def _evaluate(
        self,
        rubric: Rubric,
        content_label: str,
        content: str,
        context: str | None,
        weights: Mapping[str, float],
        strictness: float,
        model_id: str,
        options: Mapping[str, Any] | None,
    ) -> ScoreResult:
        if not self.api_key:
            raise ProviderError("OPENAI_API_KEY is not configured")

        options = options or {}
        output_keys = canonical_output_keys(rubric)
        prompt = build_scoring_prompt(
            rubric,
            weights=weights,
            strictness=strictness,
            context=context,
            content_label=content_label,
            content=content,
            output_keys=output_keys,
            extra_instructions=options.get("instructions"),
        )
        payload = {
            "model": model_id,
            "messages": [
                {"role": "system", "content": f"You are an {rubric.title} examiner. Reply with JSON only."},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": options.get("temperature", DEFAULT_TEMPERATURE),
        }
        data = self._post_json(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderValidationError("openai response has no message content") from e
        if not isinstance(text, str):
            raise ProviderValidationError("openai response has no message content")

        result = parse_score_payload(load_json_object(text), rubric, output_keys=output_keys)
        logger.info(f"openai scored {rubric.rubric_id} with {model_id}: overall={result.overall_band}")
        return result
