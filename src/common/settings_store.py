"""Runtime AI settings (API key and model) editable through the manager API."""

import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from common.config import settings
from common.redis_client import RedisClient
from common.utils import StringUtils

logger = logging.getLogger(__name__)

SETTINGS_KEY = "ai_settings"
API_KEY_PATTERN = re.compile(r"^sk-[a-zA-Z0-9]{48}$")


class AISettings(BaseModel):
    """Stored AI settings."""

    open_ai_key: str = ""
    open_ai_model: str = ""


class AISettingsStore:
    """
    Settings provider for the translation API client.

    Values written through ``update`` are kept in a Redis hash and take
    precedence over the environment defaults from ``common.config``.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        default_api_key: Optional[str] = None,
        default_model: Optional[str] = None,
        allowed_models: Optional[List[str]] = None,
    ):
        self.redis_client = redis_client
        self.default_api_key = (
            default_api_key if default_api_key is not None else settings.openai_api_key or ""
        )
        self.allowed_models = allowed_models or list(settings.openai_allowed_models)
        self.default_model = default_model or settings.openai_model

    async def get_all(self) -> AISettings:
        client = await self.redis_client.require()
        stored = await client.hgetall(SETTINGS_KEY)
        return AISettings(
            open_ai_key=stored.get("open_ai_key") or self.default_api_key,
            open_ai_model=stored.get("open_ai_model") or self.default_model,
        )

    async def get_api_key(self) -> Optional[str]:
        """API key, or None when none is configured."""
        return (await self.get_all()).open_ai_key or None

    async def get_model(self) -> str:
        return (await self.get_all()).open_ai_model

    async def has_api_key(self) -> bool:
        return bool(await self.get_api_key())

    async def update(self, new_settings: Dict[str, Any]) -> AISettings:
        """
        Sanitize and store known settings, ignoring unknown keys.

        A masked API key (as returned by ``get_for_display``) keeps the stored
        key. A model outside the allowed list falls back to the default model.
        """
        sanitized: Dict[str, str] = {}

        if "open_ai_key" in new_settings:
            raw_key = new_settings["open_ai_key"] or ""
            if not self.is_masked_api_key(raw_key):
                sanitized["open_ai_key"] = StringUtils.sanitize_api_key(raw_key)

        if "open_ai_model" in new_settings:
            model = str(new_settings["open_ai_model"] or "").strip()
            sanitized["open_ai_model"] = (
                model if model in self.allowed_models else self.default_model
            )

        if sanitized:
            client = await self.redis_client.require()
            await client.hset(SETTINGS_KEY, mapping=sanitized)
            logger.info(f"⚙️ Updated AI settings: {', '.join(sorted(sanitized))}")

        return await self.get_all()

    async def delete_all(self) -> None:
        client = await self.redis_client.require()
        await client.delete(SETTINGS_KEY)

    async def get_for_display(self) -> AISettings:
        """Settings with the API key masked."""
        current = await self.get_all()
        return AISettings(
            open_ai_key=StringUtils.mask_secret(current.open_ai_key),
            open_ai_model=current.open_ai_model,
        )

    @staticmethod
    def is_masked_api_key(value: str) -> bool:
        return "*" in value

    def validate_api_key(self, api_key: Optional[str]) -> bool:
        """Empty and masked keys are accepted, anything else must look like an OpenAI key."""
        if not api_key or self.is_masked_api_key(api_key):
            return True
        return bool(API_KEY_PATTERN.match(api_key))

    def validate_model(self, model: Optional[str]) -> bool:
        if not model:
            return True
        return model in self.allowed_models
