"""LLM provider clients.

Both clients implement the pipeline's ``LLMClient`` contract:
``generate_structured`` for schema-constrained JSON (retried with
exponential backoff) and ``stream_generate`` for incremental text.
Streaming calls are not retried since fragments may already be consumed.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from google import genai
from google.genai import types
from httpx import HTTPStatusError, TimeoutException

from pagegen.core.exceptions import APIClientError, APITimeoutError
from pagegen.schemas.generation import TokenUsage
from pagegen.services.interfaces import LLMCallOptions, StreamFragment, StructuredResult
from pagegen.utils.json_parser import parse_json_safely
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseLLMClient:
    """Base client for HTTP LLM API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def call_api(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST the payload with retry logic.

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        url = self.base_url
        self.logger.debug(f"Calling LLM API: {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(url, headers=self._headers(), json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except Exception as e:
                    await self._handle_generic_error(e, attempt, url)

        raise APIClientError(f"Failed to call API {url} after {self.max_retries} attempts")

    async def stream_lines(
        self, payload: Dict[str, Any], options: LLMCallOptions
    ) -> AsyncIterator[str]:
        """POST the payload and yield response lines as they arrive.

        Stops early when the abort event in ``options`` is set.

        Raises:
            APIClientError: If the request fails or returns an error status
            APITimeoutError: If the request times out
        """
        url = self.base_url
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", url, headers=self._headers(), json=payload
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        raise APIClientError(
                            f"API streaming error {response.status_code}: {body[:500]}"
                        )
                    async for line in response.aiter_lines():
                        if options.aborted:
                            self.logger.info("Stream aborted by caller", extra={"url": url})
                            return
                        yield line
        except TimeoutException as e:
            raise APITimeoutError(f"API stream timed out: {url}", e) from e
        except httpx.HTTPError as e:
            raise APIClientError(f"API stream failed: {e}", e) from e

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        """Handle HTTP status errors."""
        status_code = error.response.status_code

        try:
            error_body = error.response.text
        except Exception:
            error_body = "Could not read response body"

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "status_code": status_code, "error_body": error_body[:500]},
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body}", error) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries", error) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        """Handle timeout errors."""
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})", extra={"url": url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(
                f"API Timeout after {self.max_retries} attempts", error
            ) from error

    async def _handle_generic_error(self, error: Exception, attempt: int, url: str):
        """Handle generic errors."""
        self.logger.warning(
            f"API Generic Error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)},
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}", error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        wait_time = self.retry_delay * (2 ** attempt)
        await asyncio.sleep(wait_time)


class OpenRouterClient:
    """OpenRouter chat-completions client.

    Structured calls use ``response_format`` with a JSON schema; streaming
    calls read the server-sent ``data:`` lines and report usage from the
    final chunk.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "google/gemini-2.0-flash-001",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url

        # Initialize base LLM client for HTTP operations
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )

        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    def _payload(self, prompt: str, options: LLMCallOptions) -> Dict[str, Any]:
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})

        return {
            "model": self.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "usage": {"include": True},
        }

    async def generate_structured(
        self, prompt: str, schema: Dict[str, Any], options: LLMCallOptions
    ) -> StructuredResult:
        """Generate a JSON value that matches ``schema``.

        Raises:
            APIClientError: If the call fails or the response is not JSON
        """
        payload = self._payload(prompt, options)
        payload["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": schema.get("title", "response"), "schema": schema},
        }

        response = await self.client.call_api(payload)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {response}")
            raise APIClientError("Invalid response format from OpenRouter")

        content = choices[0].get("message", {}).get("content") or ""
        data = parse_json_safely(content)
        if data is None:
            raise APIClientError("OpenRouter returned a response that is not valid JSON")

        return StructuredResult(data=data, usage=_openrouter_usage(response.get("usage")))

    async def stream_generate(
        self, prompt: str, options: LLMCallOptions
    ) -> AsyncIterator[StreamFragment]:
        """Stream text fragments; the last fragment carries usage when reported."""
        payload = self._payload(prompt, options)
        payload["stream"] = True

        usage: Optional[TokenUsage] = None
        lines = self.client.stream_lines(payload, options)
        try:
            async for line in lines:
                if not line.startswith("data:"):
                    # Blank separators and ": OPENROUTER PROCESSING" keep-alives
                    continue
                data = line[5:].strip()
                if data == "[DONE]":
                    break

                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    LOGGER.warning("Skipping malformed stream chunk", extra={"chunk": data[:200]})
                    continue

                if "error" in chunk:
                    raise APIClientError(f"OpenRouter stream error: {chunk['error']}")

                if chunk.get("usage"):
                    usage = _openrouter_usage(chunk["usage"])

                for choice in chunk.get("choices") or []:
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        yield StreamFragment(text=text)
        finally:
            await lines.aclose()

        if usage is not None:
            yield StreamFragment(text="", usage=usage)


class GeminiClient:
    """Google Gemini client using the google-genai async API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name to use
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        try:
            self.client = genai.Client(api_key=self.api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise APIClientError(f"Failed to initialize Gemini client: {e}", e) from e

    def _config(self, options: LLMCallOptions) -> types.GenerateContentConfig:
        config = types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens,
        )
        if options.system_prompt:
            config.system_instruction = options.system_prompt
        return config

    async def generate_structured(
        self, prompt: str, schema: Dict[str, Any], options: LLMCallOptions
    ) -> StructuredResult:
        """Generate a JSON value that matches ``schema``.

        Raises:
            APIClientError: If generation fails after retries
        """
        config = self._config(options)
        config.response_mime_type = "application/json"
        config.response_json_schema = schema

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model, contents=prompt, config=config
                )

                data = parse_json_safely(response.text or "")
                if data is None:
                    raise APIClientError("Gemini returned a response that is not valid JSON")

                return StructuredResult(
                    data=data, usage=_gemini_usage(response.usage_metadata)
                )

            except Exception as e:
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                else:
                    LOGGER.error(f"Gemini generation failed after retries: {e}", exc_info=True)
                    raise APIClientError(f"Gemini generation failed: {e}", e) from e

        raise APIClientError("Gemini generation failed")

    async def stream_generate(
        self, prompt: str, options: LLMCallOptions
    ) -> AsyncIterator[StreamFragment]:
        """Stream text fragments; the last fragment carries usage when reported."""
        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=self.model, contents=prompt, config=self._config(options)
            )
        except Exception as e:
            raise APIClientError(f"Gemini stream failed to start: {e}", e) from e

        usage_metadata = None
        async for chunk in stream:
            if chunk.usage_metadata is not None:
                usage_metadata = chunk.usage_metadata
            if chunk.text:
                yield StreamFragment(text=chunk.text)
            if options.aborted:
                LOGGER.info("Gemini stream aborted by caller")
                return

        if usage_metadata is not None:
            yield StreamFragment(text="", usage=_gemini_usage(usage_metadata))


def _openrouter_usage(raw: Optional[Dict[str, Any]]) -> TokenUsage:
    if not raw:
        return TokenUsage()
    prompt_tokens = raw.get("prompt_tokens") or 0
    completion_tokens = raw.get("completion_tokens") or 0
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=raw.get("total_tokens") or prompt_tokens + completion_tokens,
        cost=float(raw.get("cost") or 0.0),
    )


def _gemini_usage(metadata) -> TokenUsage:
    if metadata is None:
        return TokenUsage()
    prompt_tokens = metadata.prompt_token_count or 0
    completion_tokens = metadata.candidates_token_count or 0
    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=metadata.total_token_count or prompt_tokens + completion_tokens,
    )
