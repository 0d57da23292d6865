"""Translation API client for batch translation using OpenAI chat completions."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from common.config import settings
from common.schemas import BatchItem, TranslationResult
from common.utils import StringUtils
from translator.exceptions import ApiErrorKind, TranslationApiError

logger = logging.getLogger(__name__)

FUNCTION_NAME = "translate_text_batch"

TRANSLATE_FUNCTION = {
    "name": FUNCTION_NAME,
    "description": "Translate multiple texts while maintaining IDs.",
    "parameters": {
        "type": "object",
        "properties": {
            "translations": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "string",
                            "description": "The original translation ID from database.",
                        },
                        "translated_text": {
                            "type": "string",
                            "description": "The translated text.",
                        },
                    },
                    "required": ["id", "translated_text"],
                },
            },
        },
        "required": ["translations"],
    },
}


class SettingsProvider(Protocol):
    """Source of the API credential and model name."""

    async def get_api_key(self) -> Optional[str]: ...

    async def get_model(self) -> str: ...


class OpenAITranslationClient:
    """Sends batches to OpenAI and returns structured per-item translations."""

    def __init__(
        self,
        settings_provider: SettingsProvider,
        timeout: Optional[float] = None,
        client_factory: Optional[Callable[[str], AsyncOpenAI]] = None,
    ):
        """
        Initialize the client.

        Args:
            settings_provider: Provides the API key and model on every call
            timeout: Request timeout in seconds, defaults to settings.openai_timeout
            client_factory: Builds an AsyncOpenAI client for an API key
        """
        self.settings_provider = settings_provider
        self.timeout = timeout or settings.openai_timeout
        self._client_factory = client_factory or self._default_client_factory
        self._client: Optional[AsyncOpenAI] = None
        self._client_key: Optional[str] = None
        self._last_response_info: Dict[str, Any] = {}

    def _default_client_factory(self, api_key: str) -> AsyncOpenAI:
        # No client-side retries: a failed call ends the run
        return AsyncOpenAI(
            api_key=api_key,
            base_url=settings.openai_base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    def _get_client(self, api_key: str) -> AsyncOpenAI:
        if self._client is None or self._client_key != api_key:
            self._client = self._client_factory(api_key)
            self._client_key = api_key
        return self._client

    def get_last_response_info(self) -> Dict[str, Any]:
        """
        Token usage and model of the latest successful call.

        Returns:
            ``{"tokens_used": int, "model": str}``, or an empty dict before
            the first successful call
        """
        return dict(self._last_response_info)

    async def translate_batch(
        self, items: Sequence[BatchItem], target_language: str
    ) -> List[TranslationResult]:
        """
        Translate a batch in one chat completion call.

        Args:
            items: Non-empty batch of items to translate
            target_language: Target locale (e.g. 'de_DE')

        Returns:
            Parsed results; empty when the model returned no function call

        Raises:
            TranslationApiError: On missing credentials, HTTP errors,
                network failures or a malformed response
        """
        api_key = await self.settings_provider.get_api_key()
        if not api_key:
            raise TranslationApiError(
                "OpenAI API key is not configured",
                kind=ApiErrorKind.UNCONFIGURED,
                code="no_api_key",
            )

        model = await self.settings_provider.get_model()
        content = json.dumps(
            {
                "target_language": target_language,
                "translations": [item.model_dump() for item in items],
            },
            ensure_ascii=False,
        )

        logger.info(f"🤖 Translating {len(items)} strings to {target_language} with {model}")

        client = self._get_client(api_key)
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": content}],
                tools=[{"type": "function", "function": TRANSLATE_FUNCTION}],
                tool_choice={"type": "function", "function": {"name": FUNCTION_NAME}},
            )
        except openai.APIStatusError as e:
            body = e.response.text if e.response is not None else str(e)
            raise TranslationApiError(
                f"API request failed with status code: {e.status_code}. Response: {body}",
                kind=ApiErrorKind.REMOTE,
                code="api_error",
                details={"status_code": e.status_code, "body": body},
            ) from e
        except openai.APIConnectionError as e:
            # APITimeoutError is a subclass
            raise TranslationApiError(
                f"API request failed: {e}",
                kind=ApiErrorKind.NETWORK,
                code="network_error",
            ) from e
        except openai.APIError as e:
            # Unparseable or schema-violating response bodies
            raise TranslationApiError(
                f"Invalid response from the endpoint: {e}",
                kind=ApiErrorKind.INVALID_RESPONSE,
                code="invalid_response",
            ) from e

        self._last_response_info = {
            "tokens_used": response.usage.total_tokens if response.usage else 0,
            "model": response.model or model,
        }

        arguments = self._extract_arguments(response)
        if not arguments:
            logger.warning("⚠️ Model returned no function call, treating as empty result")
            return []

        results = self._parse_arguments(arguments)
        logger.info(f"✅ Received {len(results)} translations")
        return results

    @staticmethod
    def _extract_arguments(response: Any) -> Optional[str]:
        if not response.choices:
            return None

        message = response.choices[0].message
        tool_calls = getattr(message, "tool_calls", None) or []
        for call in tool_calls:
            if call.function and call.function.name == FUNCTION_NAME:
                return call.function.arguments

        return None

    @staticmethod
    def _parse_arguments(arguments: str) -> List[TranslationResult]:
        try:
            data = json.loads(arguments)
        except json.JSONDecodeError as e:
            logger.error(
                f"❌ Unparseable function arguments: {StringUtils.truncate_for_logging(arguments)}"
            )
            raise TranslationApiError(
                "Received no translations from the endpoint!",
                kind=ApiErrorKind.INVALID_RESPONSE,
                code="invalid_response",
            ) from e

        translations = data.get("translations") if isinstance(data, dict) else None
        if not isinstance(translations, list):
            raise TranslationApiError(
                "Received no translations from the endpoint!",
                kind=ApiErrorKind.INVALID_RESPONSE,
                code="invalid_response",
            )

        results: List[TranslationResult] = []
        for raw in translations:
            if not isinstance(raw, dict) or raw.get("id") is None:
                raise TranslationApiError(
                    f"Translation item does not match the schema: {raw!r}",
                    kind=ApiErrorKind.INVALID_RESPONSE,
                    code="invalid_response",
                )
            try:
                results.append(
                    TranslationResult(
                        id=str(raw["id"]),
                        translated_text=raw.get("translated_text") or "",
                    )
                )
            except ValidationError as e:
                raise TranslationApiError(
                    f"Translation item does not match the schema: {raw!r}",
                    kind=ApiErrorKind.INVALID_RESPONSE,
                    code="invalid_response",
                ) from e

        return results
