import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import EmbeddingProviderConfig
from ..utils.error_handlers import EmptyContent, MalformedResponse, ProviderConfigError, ProviderError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmbeddingMeta:
    model: str
    latency_ms: int
    status_code: int | None
    input_chars: int
    truncated: bool


def _safe_truncate(s: str, n: int = 800) -> str:
    s = s or ""
    if len(s) <= n:
        return s
    return s[:n] + "…"


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


class EmbeddingGateway:
    """
    One outbound call per `embed()` against an OpenAI-compatible embeddings endpoint.

    Endpoint:
      POST {url}  body {"input": text, "model": model}
    Auth:
      Authorization: Bearer {api_key}

    Retries and deadlines are the caller's policy. With `timeout_s=None` the request
    runs until the provider answers or the connection fails.
    """

    def __init__(self, config: EmbeddingProviderConfig, *, client: httpx.Client | None = None):
        if not config.api_key:
            raise ProviderConfigError("Missing EMBEDDINGS_API_KEY")
        if not config.url:
            raise ProviderConfigError("Missing EMBEDDINGS_URL")
        if not config.model:
            raise ProviderConfigError("Missing EMBEDDINGS_MODEL")
        self.config = config
        self._client = client

    @property
    def model(self) -> str:
        return self.config.model

    def _prepare(self, text: str) -> tuple[str, bool]:
        t = (text or "").strip()
        if not t:
            raise EmptyContent()
        max_chars = self.config.max_chars
        if max_chars and len(t) > max_chars:
            return t[:max_chars], True
        return t, False

    def _post(self, body: dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "content-type": "application/json",
        }
        try:
            if self._client is not None:
                return self._client.post(self.config.url, json=body, headers=headers)
            with httpx.Client(timeout=self.config.timeout_s) as client:
                return client.post(self.config.url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(status_code=None, message="Embedding request timed out") from e
        except httpx.RequestError as e:
            raise ProviderError(status_code=None, message=f"Embedding request failed: {type(e).__name__}") from e

    def _extract_vector(self, r: httpx.Response) -> list[float]:
        try:
            data = r.json()
        except ValueError as e:
            raise MalformedResponse("Embedding response is not JSON") from e

        # Typical shape: { data: [ { embedding: [ ... ] } ], model, usage }
        try:
            vec = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            raise MalformedResponse(details={"body": _safe_truncate(r.text, 300)}) from None

        if not isinstance(vec, list) or not vec or not all(_is_number(x) for x in vec):
            raise MalformedResponse("Embedding is not a non-empty numeric array")

        expected = self.config.expected_dim
        if expected and len(vec) != expected:
            raise MalformedResponse(
                f"Embedding has {len(vec)} dimensions, expected {expected}",
                details={"dim": len(vec), "expected_dim": expected},
            )
        return [float(x) for x in vec]

    def embed(self, text: str) -> tuple[list[float], EmbeddingMeta]:
        payload_text, truncated = self._prepare(text)
        body = {"input": payload_text, "model": self.config.model}

        if self.config.log_payloads:
            logger.info(
                "Embedding request model=%s url=%s body=%s",
                self.config.model,
                self.config.url,
                _safe_truncate(json.dumps(body, ensure_ascii=False)),
            )

        start = time.perf_counter()
        r = self._post(body)
        if not r.is_success:
            raise ProviderError(status_code=r.status_code, body=_safe_truncate(r.text, 1000))

        vector = self._extract_vector(r)
        meta = EmbeddingMeta(
            model=self.config.model,
            latency_ms=int((time.perf_counter() - start) * 1000),
            status_code=r.status_code,
            input_chars=len(payload_text),
            truncated=truncated,
        )
        logger.info(
            "Embedding ok model=%s status=%s latency_ms=%s chars=%s truncated=%s",
            meta.model,
            meta.status_code,
            meta.latency_ms,
            meta.input_chars,
            meta.truncated,
        )
        return vector, meta
