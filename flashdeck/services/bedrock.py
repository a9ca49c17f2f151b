"""Flashcard generation through Amazon Bedrock."""

import json
import os
import re
import time
from dataclasses import dataclass
from typing import Any, List, Optional

import boto3
from aws_lambda_powertools import Logger
from botocore.config import Config
from botocore.exceptions import ClientError

from .prompts import get_card_generation_prompt, get_system_prompt

logger = Logger()

FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class GenerationError(Exception):
    """Base exception for card generation failures."""

    pass


class GenerationTimeoutError(GenerationError):
    """The model did not answer in time."""

    pass


class GenerationThrottledError(GenerationError):
    """Bedrock refused the call because of request rate."""

    pass


class GenerationUnavailableError(GenerationError):
    """Bedrock reported a server-side failure."""

    pass


class GenerationParseError(GenerationError):
    """The model answer held no usable flashcards."""

    pass


# Bedrock error codes by the exception they surface as
ERROR_CODES = {
    "ModelTimeoutException": GenerationTimeoutError,
    "ReadTimeoutError": GenerationTimeoutError,
    "ConnectTimeoutError": GenerationTimeoutError,
    "ThrottlingException": GenerationThrottledError,
    "TooManyRequestsException": GenerationThrottledError,
    "InternalServerException": GenerationUnavailableError,
    "ServiceException": GenerationUnavailableError,
    "ServiceUnavailableException": GenerationUnavailableError,
}


@dataclass
class GeneratedCard:
    """Front and back text proposed by the model."""

    front: str
    back: str


@dataclass
class GenerationResult:
    cards: List[GeneratedCard]
    input_length: int
    model_used: str
    processing_time_ms: int


class BedrockService:
    """Turns study material into flashcard seeds with a Claude model on Bedrock."""

    DEFAULT_MODEL_ID = "anthropic.claude-3-haiku-20240307-v1:0"
    MAX_TOKENS = 4096
    TEMPERATURE = 0.7
    READ_TIMEOUT = 60
    MAX_RETRIES = 2

    def __init__(self, model_id: Optional[str] = None, bedrock_client=None):
        """Initialize BedrockService.

        Args:
            model_id: Bedrock model ID. Defaults to BEDROCK_MODEL_ID env var.
            bedrock_client: Optional bedrock-runtime client for testing.
        """
        self.model_id = model_id or os.environ.get("BEDROCK_MODEL_ID", self.DEFAULT_MODEL_ID)
        self.client = bedrock_client or self._create_client()

    def _create_client(self):
        # Retries are driven by _invoke_with_retry, not botocore
        config = Config(read_timeout=self.READ_TIMEOUT, connect_timeout=5, retries={"max_attempts": 0})
        client_kwargs = {"config": config}
        endpoint_url = os.environ.get("BEDROCK_ENDPOINT_URL")
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        return boto3.client("bedrock-runtime", **client_kwargs)

    def generate_cards(
        self,
        content: str,
        count: int = 10,
        increase_difficulty: bool = False,
    ) -> GenerationResult:
        """Ask the model for ``count`` flashcards about ``content``.

        The model may return fewer cards than requested; entries without
        both sides are dropped.

        Raises:
            GenerationTimeoutError: If the model call times out.
            GenerationThrottledError: If throttling persists through retries.
            GenerationUnavailableError: If Bedrock keeps failing server-side.
            GenerationParseError: If the answer contains no usable card.
            GenerationError: For any other Bedrock failure.
        """
        started = time.monotonic()

        answer = self._invoke_with_retry(
            self._build_request(get_system_prompt(count, increase_difficulty), get_card_generation_prompt(content, count))
        )
        cards = parse_cards(answer)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Generated {len(cards)}/{count} cards with {self.model_id} in {elapsed_ms}ms")
        return GenerationResult(
            cards=cards,
            input_length=len(content),
            model_used=self.model_id,
            processing_time_ms=elapsed_ms,
        )

    def _build_request(self, system_prompt: str, prompt: str) -> str:
        return json.dumps(
            {
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": self.MAX_TOKENS,
                "temperature": self.TEMPERATURE,
                "system": system_prompt,
                "messages": [{"role": "user", "content": prompt}],
            }
        )

    @staticmethod
    def _retry_delay(error: GenerationError, attempt: int) -> Optional[float]:
        """Seconds to wait before retrying ``error``, or None if it is final."""
        if isinstance(error, GenerationThrottledError):
            return 2 ** attempt
        if isinstance(error, GenerationUnavailableError):
            return 1
        return None

    def _invoke_with_retry(self, body: str) -> str:
        attempt = 0
        while True:
            try:
                return self._invoke_model(body)
            except GenerationError as e:
                delay = self._retry_delay(e, attempt)
                if delay is None or attempt >= self.MAX_RETRIES:
                    raise
                attempt += 1
                logger.warning(f"{type(e).__name__} from Bedrock, retry {attempt}/{self.MAX_RETRIES} in {delay}s")
                time.sleep(delay)

    def _invoke_model(self, body: str) -> str:
        """Call the model once and return the text of its answer."""
        try:
            response = self.client.invoke_model(
                modelId=self.model_id,
                body=body,
                contentType="application/json",
                accept="application/json",
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            raise ERROR_CODES.get(code, GenerationError)(f"Bedrock call failed: {code or e}") from e
        except Exception as e:
            # botocore raises read/connect timeouts outside ClientError
            if "timeout" in str(e).lower():
                raise GenerationTimeoutError("Bedrock call timed out") from e
            raise GenerationError(f"Bedrock call failed: {e}") from e

        payload = json.loads(response["body"].read())
        return "".join(block.get("text", "") for block in payload.get("content", []))


def _extract_json(answer: str) -> Any:
    match = FENCED_JSON.search(answer)
    text = match.group(1) if match else answer.strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationParseError(f"Model answer is not JSON: {e}") from e


def parse_cards(answer: str) -> List[GeneratedCard]:
    """Read flashcards from a model answer.

    Accepts ``{"flashcards": [...]}`` or a bare array, fenced in a
    ```json block or not. Entries missing a side, or with a blank one, are
    skipped.

    Raises:
        GenerationParseError: If no usable card remains.
    """
    data = _extract_json(answer)
    if isinstance(data, dict):
        data = data.get("flashcards")
    if not isinstance(data, list):
        raise GenerationParseError("Model answer has no 'flashcards' array")

    cards = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        front = str(entry.get("front") or "").strip()
        back = str(entry.get("back") or "").strip()
        if front and back:
            cards.append(GeneratedCard(front=front, back=back))

    if not cards:
        raise GenerationParseError("Model answer has no usable flashcards")
    return cards
