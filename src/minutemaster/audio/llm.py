"""
Shared plumbing for services backed by the OpenAI API.

Every AI-backed service (transcription, segment analysis, summarization,
speaker identification) derives from OpenAIService, which lazily builds the
OpenAI client and turns JSON-only chat replies into Python objects.

Key features:
- Lazy loading of the OpenAI client (or injection of a ready client)
- Markdown code-fence stripping before JSON parsing
- API key validation through the models endpoint
"""

import json
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ServiceUnavailable(Exception):
    """Raised when the OpenAI client cannot be created (for example, no API key)."""


class InvalidAPIKey(Exception):
    """Raised when the API rejects the key during validation."""


class InvalidModelResponse(Exception):
    """Raised when the model reply is not the JSON structure that was asked for."""


def _build_client(api_key: str, base_url: Optional[str] = None):
    # Import OpenAI only when a client is needed (not at module import time)
    from openai import OpenAI

    if base_url:
        return OpenAI(api_key=api_key, base_url=base_url)
    return OpenAI(api_key=api_key)


def parse_json_response(content: Optional[str]) -> Any:
    """
    Parse a JSON reply from a chat model.

    Models sometimes wrap the JSON in a ```json fenced block even when asked
    not to; the fences are removed before parsing.

    Raises:
        InvalidModelResponse: If the content is empty or not valid JSON
    """
    if not content:
        raise InvalidModelResponse("Empty response from model")

    content = content.strip()
    if content.startswith("```"):
        content = content.strip("`\n ")
        # After stripping backticks, it might begin with json
        if content.lower().startswith("json"):
            content = content[4:].lstrip("\n")

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise InvalidModelResponse(f"Model returned invalid JSON: {e}")


def validate_api_key(api_key: str, base_url: Optional[str] = None, client=None) -> bool:
    """
    Check an OpenAI API key by listing models.

    Args:
        api_key: Key to validate
        base_url: Optional custom API endpoint
        client: Pre-built client (tests)

    Returns:
        True if the key is accepted

    Raises:
        InvalidAPIKey: If the key is empty or rejected
    """
    if not api_key or not api_key.strip():
        raise InvalidAPIKey("API key is required")

    try:
        client = client or _build_client(api_key.strip(), base_url)
        client.models.list()
    except Exception as e:
        logger.warning(f"OpenAI API key validation failed: {type(e).__name__}")
        raise InvalidAPIKey(str(e))

    logger.info("OpenAI API key validated")
    return True


class OpenAIService:
    """
    Base class for services that call the OpenAI API.

    The OpenAI client is created on first use so that building a service is
    cheap and never touches the network.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4",
        base_url: Optional[str] = None,
        client=None,
    ):
        """
        Args:
            api_key: OpenAI API authentication key
            model: Model name used by this service
            base_url: Optional custom OpenAI-compatible endpoint
            client: Ready-made client; skips lazy loading when given
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or None
        self._client = client

    @property
    def client(self):
        """The OpenAI client, loaded on first access."""
        if self._client is None:
            self._load_client()
        return self._client

    def _load_client(self) -> None:
        if not self.api_key:
            raise ServiceUnavailable("OpenAI not initialized")

        self._client = _build_client(self.api_key, self.base_url)
        logger.info(f"OpenAI client loaded for {type(self).__name__} (model: {self.model})")

    def chat_json(self, system_prompt: str, user_prompt: str, temperature: float = 0.3) -> Any:
        """
        Send a chat completion and parse the reply as JSON.

        Args:
            system_prompt: System role instructions
            user_prompt: User message content
            temperature: Sampling temperature

        Returns:
            Parsed JSON value (dict or list)
        """
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
        )
        return parse_json_response(response.choices[0].message.content)
