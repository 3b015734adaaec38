# app/services/gemini_adapter.py
"""
Multimodal critic over the Gemini generateContent REST API.

Speaking submissions that are audio URLs are downloaded and sent inline so
the model can transcribe and judge pronunciation; transcripts and essays go
as plain text. The reply is constrained by a response schema written in
Gemini's camelCase idiom and mapped back to canonical criterion names.
"""

import base64
import logging
import re
from typing import Any, Mapping
from urllib.parse import urlparse

import httpx

from app.models.enums import SkillType
from app.schemas.score import ScoreResult
from app.services.scoring_adapter import (
    FEEDBACK_FIELDS,
    ProviderError,
    ProviderValidationError,
    Rubric,
    ScoringAdapter,
    build_scoring_prompt,
    get_rubric,
    is_audio_reference,
    load_json_object,
    parse_score_payload,
)

logger = logging.getLogger(__name__)

# canonical name -> Gemini response key
GEMINI_KEYS = {
    "overall_band": "overallBand",
    "fluency": "fluency",
    "coherence": "coherence",
    "lexical": "lexical",
    "grammar": "grammar",
    "pronunciation": "pronunciation",
    "task_response": "taskResponse",
}

AUDIO_MIME_TYPES = {
    ".mp3": "audio/mp3",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".webm": "audio/webm",
    ".flac": "audio/flac",
}


def to_mp3_url(url: str) -> str:
    """Ask Cloudinary to deliver an uploaded recording as MP3; other hosts pass through."""
    if "cloudinary.com" not in url:
        return url
    transformed = url.replace("/upload/", "/upload/f_mp3,q_auto/", 1)
    return re.sub(r"\.(webm|wav|m4a|ogg)$", ".mp3", transformed, flags=re.IGNORECASE)


def guess_audio_mime_type(url: str) -> str:
    path = urlparse(url).path.lower()
    for ext, mime in AUDIO_MIME_TYPES.items():
        if path.endswith(ext):
            return mime
    return "audio/mp3"


def response_schema(rubric: Rubric, *, with_transcript: bool) -> dict:
    keys = [GEMINI_KEYS["overall_band"]] + [GEMINI_KEYS[name] for name in rubric.criteria]
    properties: dict[str, Any] = {key: {"type": "NUMBER"} for key in keys}
    properties["feedback"] = {
        "type": "OBJECT",
        "properties": {field: {"type": "STRING"} for field in FEEDBACK_FIELDS},
        "required": list(FEEDBACK_FIELDS),
    }
    required = keys + ["feedback"]
    if with_transcript:
        properties["transcript"] = {"type": "STRING"}
        required.append("transcript")
    return {"type": "OBJECT", "properties": properties, "required": required}


class GeminiScoringAdapter(ScoringAdapter):
    name = "gemini"
    supports_audio = True

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
        rubric = get_rubric(rubric_id, SkillType.SPEAKING)
        options = options or {}
        output_keys = {name: GEMINI_KEYS[name] for name in rubric.criteria}
        output_keys["overall_band"] = GEMINI_KEYS["overall_band"]

        if is_audio_reference(audio_or_transcript):
            audio_url = to_mp3_url(audio_or_transcript.strip())
            audio_data = self._download_audio(audio_url)
            prompt = build_scoring_prompt(
                rubric,
                weights=weights,
                strictness=strictness,
                context=context,
                content_label="AUDIO RECORDING",
                content=None,
                output_keys=output_keys,
                extra_instructions=_join(
                    "Transcribe the recording verbatim into a \"transcript\" string field.",
                    options.get("instructions"),
                ),
            )
            parts = [
                {"text": prompt},
                {"inlineData": {"mimeType": guess_audio_mime_type(audio_url), "data": audio_data}},
            ]
            schema = response_schema(rubric, with_transcript=True)
        else:
            prompt = build_scoring_prompt(
                rubric,
                weights=weights,
                strictness=strictness,
                context=context,
                content_label="TRANSCRIPT",
                content=audio_or_transcript,
                output_keys=output_keys,
                extra_instructions=options.get("instructions"),
            )
            parts = [{"text": prompt}]
            schema = response_schema(rubric, with_transcript=False)

        return self._generate(model_id, parts, schema, rubric, output_keys, options)

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
        options = options or {}
        output_keys = {name: GEMINI_KEYS[name] for name in rubric.criteria}
        output_keys["overall_band"] = GEMINI_KEYS["overall_band"]
        prompt = build_scoring_prompt(
            rubric,
            weights=weights,
            strictness=strictness,
            context=context,
            content_label="ESSAY",
            content=text,
            output_keys=output_keys,
            extra_instructions=options.get("instructions"),
        )
        schema = response_schema(rubric, with_transcript=False)
        return self._generate(model_id, [{"text": prompt}], schema, rubric, output_keys, options)

    def _download_audio(self, url: str) -> str:
        response = self._request("GET", url)
        if not response.content:
            raise ProviderError(f"audio at {url} is empty")
        logger.info(f"gemini fetched audio {url}: {len(response.content)} bytes")
        return base64.b64encode(response.content).decode("ascii")

    def _generate(
        self,
        model_id: str,
        parts: list[dict],
        schema: dict,
        rubric: Rubric,
        output_keys: Mapping[str, str],
        options: Mapping[str, Any],
    ) -> ScoreResult:
        if not self.api_key:
            raise ProviderError("GEMINI_API_KEY is not configured")

        generation_config: dict[str, Any] = {
            "responseMimeType": "application/json",
            "responseSchema": schema,
        }
        if "temperature" in options:
            generation_config["temperature"] = options["temperature"]

        data = self._post_json(
            f"{self.base_url}/models/{model_id}:generateContent",
            json={"contents": [{"role": "user", "parts": parts}], "generationConfig": generation_config},
            headers={"x-goog-api-key": self.api_key},
        )
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderValidationError("gemini response has no candidate text") from e
        if not isinstance(text, str):
            raise ProviderValidationError("gemini response has no candidate text")

        result = parse_score_payload(load_json_object(text), rubric, output_keys=output_keys)
        logger.info(f"gemini scored {rubric.rubric_id} with {model_id}: overall={result.overall_band}")
        return result


def _join(*parts: str | None) -> str:
    return "\n".join(part for part in parts if part)
