"""Vision model client for document extraction."""

import base64
import logging

from litellm import acompletion

from ledgerscan.config import Settings, settings as default_settings
from ledgerscan.errors import ApiConfigurationError, EmptyResponseError, UpstreamError
from ledgerscan.models import ExtractionRequest
from ledgerscan.parsers.prompts import SYSTEM_PROMPT, build_prompt

logger = logging.getLogger(__name__)


def encode_image(image_bytes: bytes, media_type: str) -> str:
    """Encode image bytes as a base64 data URL."""
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{media_type};base64,{encoded}"


class VisionClient:
    """Single-call wrapper around an OpenAI-compatible vision model endpoint."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    def _model_name(self) -> str:
        # litellm routes "openai/<model>" to any OpenAI-compatible api_base
        return f"openai/{self.settings.vision_model}"

    def _build_messages(self, request: ExtractionRequest) -> list[dict]:
        if request.image_url is not None:
            image_url = request.image_url
        else:
            image_url = encode_image(request.image_bytes, request.media_type)

        return [
            {"role": "system", "content": [{"type": "text", "text": SYSTEM_PROMPT}]},
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": image_url}},
                    {"type": "text", "text": build_prompt(request.kind)},
                ],
            },
        ]

    async def call(self, request: ExtractionRequest) -> str:
        """
        Send one extraction request to the vision model.

        No retry is performed; failures propagate immediately.

        Args:
            request: Image and document kind to extract

        Returns:
            Raw text content of the first choice (expected to contain JSON)

        Raises:
            ApiConfigurationError: If the API URL or key is not set
            UpstreamError: If the call fails or the endpoint returns an error status
            EmptyResponseError: If the model returns no text
        """
        if not self.settings.vision_api_url or not self.settings.vision_api_key:
            missing = [
                name
                for name, value in (
                    ("VISION_API_URL", self.settings.vision_api_url),
                    ("VISION_API_KEY", self.settings.vision_api_key),
                )
                if not value
            ]
            raise ApiConfigurationError(f"API configuration missing ({', '.join(missing)})")

        logger.info(f"Calling {self.settings.vision_model} for {request.kind.value} extraction")

        try:
            response = await acompletion(
                model=self._model_name(),
                messages=self._build_messages(request),
                api_base=self.settings.vision_api_url,
                api_key=self.settings.vision_api_key,
                temperature=0.1,  # Low temperature for consistency
                top_p=0.9,
                max_tokens=self.settings.vision_max_tokens,
                timeout=self.settings.vision_timeout,
            )
        except Exception as e:
            status_code = getattr(e, "status_code", None)
            logger.error(f"Vision API call failed (status={status_code}): {e}")
            raise UpstreamError(f"Vision API call failed: {e}", status_code=status_code)

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not isinstance(content, str) or not content.strip():
            logger.error("Vision API returned no content")
            raise EmptyResponseError("No content returned from the vision model")

        logger.info(f"Received {len(content)} chars from vision model")
        return content
