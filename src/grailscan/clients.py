"""Vision client that ranks catalog candidates for a photograph."""

from __future__ import annotations

import json
import logging
from base64 import b64encode
from typing import Dict, List, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from .errors import ClassificationError, MissingAPIKey
from .images import PreparedImage

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert comic book cataloger. Identify the comic shown on the cover photo and "
    "return up to 10 candidate catalog matches as JSON, best first. Score each candidate "
    "between 0 and 1. Set is_reprint_flagged when the cover is a reprint, facsimile or later printing."
)


class CandidateSource(Protocol):
    async def classify(self, image: PreparedImage) -> List[Dict[str, object]]:
        ...


class VisionCandidateClient:
    """Wrapper around the OpenAI Responses API for cover identification."""

    def __init__(
        self,
        model: str,
        *,
        api_key: Optional[str] = None,
        organization: Optional[str] = None,
        timeout: float = 45.0,
        dry_run: bool = False,
    ) -> None:
        self._model = model
        self._dry_run = dry_run
        if dry_run:
            self._client = None
        else:
            if not api_key:
                raise MissingAPIKey("OPENAI_API_KEY is not set. Populate it in your environment.")
            kwargs = {"api_key": api_key, "timeout": timeout}
            if organization:
                kwargs["organization"] = organization
            self._client = AsyncOpenAI(**kwargs)

    async def classify(self, image: PreparedImage) -> List[Dict[str, object]]:
        """Send one photograph and return the raw ranked candidate records."""

        if self._dry_run:
            LOGGER.info("Dry-run enabled; returning synthetic candidates")
            return self._mock_response(image)

        assert self._client is not None, "Client should be initialized when dry_run is False"
        encoded = b64encode(image.data).decode("ascii")
        try:
            response = await self._client.responses.create(
                model=self._model,
                input=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "input_text",
                                "text": "Identify this comic cover and return ranked candidates.",
                            },
                            {
                                "type": "input_image",
                                "image_url": f"data:{image.mime_type};base64,{encoded}",
                            },
                        ],
                    },
                ],
                max_output_tokens=1500,
                text={"format": self._schema()},
            )
        except OpenAIError as exc:
            raise ClassificationError(f"Classification service error: {exc}") from exc
        LOGGER.debug("Received response: %s", response)
        return self._to_records(response.output_text)

    @staticmethod
    def _to_records(text: str) -> List[Dict[str, object]]:
        try:
            payload = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ClassificationError("Classification service returned invalid JSON") from exc
        if isinstance(payload, dict):
            payload = payload.get("candidates", [])
        if not isinstance(payload, list):
            raise ClassificationError("Classification service returned an unexpected payload")
        return payload

    @staticmethod
    def _mock_response(image: PreparedImage) -> List[Dict[str, object]]:
        return [
            {
                "id": "4000-105",
                "title": "The Amazing Spider-Man",
                "series_name": "The Amazing Spider-Man",
                "issue_label": "300",
                "publisher": "Marvel",
                "year": 1988,
                "score": 0.92,
                "provenance": "primary_catalog",
            },
            {
                "id": "4000-8841",
                "title": "The Amazing Spider-Man Facsimile Edition",
                "series_name": "The Amazing Spider-Man",
                "issue_label": "300",
                "publisher": "Marvel",
                "year": 2023,
                "variant_description": "Facsimile Edition",
                "score": 0.88,
                "is_reprint_flagged": True,
                "provenance": "primary_catalog",
            },
            {
                "id": "4000-2231",
                "title": "Venom: Lethal Protector",
                "series_name": "Venom: Lethal Protector",
                "issue_label": "1",
                "publisher": "Marvel",
                "year": 1993,
                "score": 0.41,
                "provenance": "secondary_catalog",
            },
        ]

    @staticmethod
    def _schema() -> Dict[str, object]:
        nullable_str = {"type": ["string", "null"]}
        return {
            "type": "json_schema",
            "name": "cover_candidates",
            "strict": False,
            "schema": {
                "type": "object",
                "properties": {
                    "candidates": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "id": {"type": "string"},
                                "title": {"type": "string"},
                                "series_name": nullable_str,
                                "issue_label": nullable_str,
                                "publisher": nullable_str,
                                "year": {"type": ["integer", "null"]},
                                "variant_description": nullable_str,
                                "score": {"type": "number"},
                                "is_reprint_flagged": {"type": "boolean"},
                                "cover_url": nullable_str,
                            },
                            "required": ["id", "title", "score"],
                        },
                    }
                },
                "required": ["candidates"],
                "additionalProperties": False,
            },
        }
