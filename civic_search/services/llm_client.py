# civic_search/services/llm_client.py
import asyncio
import json
import logging
from typing import Optional

import aiohttp

from civic_search.config.settings import settings
from civic_search.core.exceptions import LLMClientException
from civic_search.interfaces.llm_client import LLMClientInterface

logger = logging.getLogger(__name__)


class OllamaClient(LLMClientInterface):
    """Completion client for a local Ollama server"""

    def __init__(
        self,
        host: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
    ):
        self.host = (host or settings.OLLAMA_HOST).rstrip("/")
        self.model = model or settings.LLM_MODEL
        self.max_tokens = settings.LLM_MAX_TOKENS
        self.temperature = settings.LLM_TEMPERATURE
        self.timeout = timeout or settings.LLM_TIMEOUT
        self.max_retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self, force_new: bool = False) -> aiohttp.ClientSession:
        """Lazy initialization of HTTP session with option to force recreation"""
        if self.session is None or force_new:
            if self.session:
                await self.session.close()

            connector = aiohttp.TCPConnector(
                limit=20,
                limit_per_host=10,
                keepalive_timeout=30,
                enable_cleanup_closed=True
            )
            timeout = aiohttp.ClientTimeout(
                total=self.timeout,
                connect=10,
                sock_read=self.timeout - 10 if self.timeout > 10 else self.timeout
            )
            self.session = aiohttp.ClientSession(connector=connector, timeout=timeout)
        return self.session

    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        """Call the model with retries; raises LLMClientException when every attempt fails"""
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                if attempt > 0:
                    await self._get_session(force_new=True)

                result = await self._call_ollama(prompt, json_mode)
                if result and result.strip():
                    return result

                logger.warning(f"Ollama returned empty response on attempt {attempt + 1}")
                last_exception = LLMClientException("Empty response from Ollama")

            except asyncio.TimeoutError as e:
                last_exception = e
                logger.warning(f"Ollama call attempt {attempt + 1} timed out after {self.timeout}s")
            except aiohttp.ClientError as e:
                last_exception = e
                logger.warning(f"Ollama call attempt {attempt + 1} failed with client error: {type(e).__name__}: {e}")
            except LLMClientException as e:
                last_exception = e
                logger.warning(f"Ollama call attempt {attempt + 1} failed: {e}")

            if attempt < self.max_retries:
                wait_time = min(2 ** attempt, 8)
                await asyncio.sleep(wait_time)

        logger.error(f"All {self.max_retries + 1} Ollama attempts failed. Last error: {type(last_exception).__name__}: {last_exception}")
        raise LLMClientException(f"LLM completion failed: {last_exception}")

    async def _call_ollama(self, prompt: str, json_mode: bool) -> str:
        session = await self._get_session()

        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
                "top_k": 40,
                "top_p": 0.9
            }
        }
        if json_mode:
            payload["format"] = "json"

        async with session.post(f"{self.host}/api/generate", json=payload) as response:
            if response.status == 200:
                try:
                    data = await response.json()
                except (json.JSONDecodeError, aiohttp.ContentTypeError) as e:
                    raise LLMClientException(f"Invalid JSON response from Ollama: {e}")
                return (data.get("response") or "").strip()

            error_text = await response.text()
            if response.status == 404:
                raise LLMClientException(f"Model {self.model} not found on Ollama server")
            raise LLMClientException(f"Ollama API error {response.status}: {error_text[:200]}")

    async def health_check(self) -> str:
        try:
            session = await self._get_session()
            async with session.get(
                f"{self.host}/api/version",
                timeout=aiohttp.ClientTimeout(total=5)
            ) as response:
                return "healthy" if response.status == 200 else f"unhealthy - HTTP {response.status}"
        except Exception as e:
            logger.error(f"LLM health check failed: {type(e).__name__}: {e}")
            return f"unhealthy - {type(e).__name__}"

    async def close(self):
        """Close HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
