import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import httpx
from httpx import TimeoutException, HTTPStatusError
from pydantic import ValidationError

from driver_locator.core.exceptions import APIClientError, APITimeoutError
from driver_locator.schemas.matching import AIParseResult
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


def format_conversation_for_ai(messages: Iterable[Any]) -> str:
    """Render messages as one "[time] Speaker: text" line each.

    Messages may be ORM rows (``created_at``) or transport payloads
    (``timestamp``). Empty messages are dropped.
    """
    lines = []
    for message in messages:
        text = (getattr(message, "text", None) or "").strip()
        if not text:
            continue

        speaker = "Dispatcher" if getattr(message, "direction", None) == "outgoing" else "Driver"
        moment = getattr(message, "created_at", None) or getattr(message, "timestamp", None)
        stamp = moment.strftime(TIMESTAMP_FORMAT) if isinstance(moment, datetime) else "Unknown"
        lines.append(f"[{stamp}] {speaker}: {text}")

    return "\n".join(lines)


class AIFallbackClient:
    """HTTP client for the AI conversation parser.

    Handles retries with exponential backoff, timeout management and
    error logging. The endpoint receives ``{text, phone, timestamp}`` and
    answers ``{loadIds: [...], location: ...}``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: int = 30,
        max_retries: int = 2,
        retry_delay: int = 1,
    ):
        """Initialize the client.

        Args:
            base_url: Parser endpoint URL
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
        """
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(self, payload: Dict[str, Any]) -> Any:
        """POST the payload with retry logic.

        Raises:
            APIClientError: If the call fails after retries
            APITimeoutError: If the call times out after retries
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.base_url, headers=headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt)

                except (httpx.HTTPError, ValueError) as e:
                    await self._handle_generic_error(e, attempt)

        raise APIClientError(f"Failed to call AI parser after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int):
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"AI parser HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"status_code": status_code, "error_body": error_body[:500]}
        )

        # Client errors other than rate limiting are not retried
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"AI parser client error {status_code}", error) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"AI parser HTTP error {status_code} after retries", error) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int):
        self.logger.warning(f"AI parser timeout (Attempt {attempt + 1}/{self.max_retries})")

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(
                f"AI parser timeout after {self.max_retries} attempts", error
            ) from error

    async def _handle_generic_error(self, error: Exception, attempt: int):
        self.logger.warning(
            f"AI parser error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"AI parser error: {str(error)}", error) from error

    async def _wait_before_retry(self, attempt: int):
        await asyncio.sleep(self.retry_delay * (2 ** attempt))

    async def parse_conversation(self, conversation_text: str, phone: str) -> Optional[AIParseResult]:
        """Ask the parser for load ids and a location.

        Returns:
            Parsed result, or None when the response has an unexpected shape
        """
        self.logger.info(
            "Sending conversation to AI parser",
            extra={"phone": phone, "text_length": len(conversation_text)}
        )

        data = await self.call_api({
            "text": conversation_text,
            "phone": phone,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        # Some workflow engines wrap a single result in a list
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            self.logger.warning("AI parser returned an unexpected payload", extra={"phone": phone})
            return None

        try:
            result = AIParseResult.model_validate(data)
        except ValidationError as e:
            self.logger.warning(
                "AI parser response failed validation",
                extra={"phone": phone, "error": str(e)}
            )
            return None

        self.logger.info(
            "Received parsed data from AI parser",
            extra={"phone": phone, "load_ids": result.load_ids, "location": result.location}
        )
        return result
