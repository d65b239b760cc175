"""Streaming client for OpenAI-compatible chat completion APIs.

Each call is tracked by an ``AnalysisSession`` that moves through
Idle -> Started -> Streaming -> Done | Failed. Upstream problems never
escape ``run()``: they end the session in Failed with a readable message,
which is also delivered to the callback as a status event.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from config.exceptions import ConfigurationError, UpstreamAnalysisError
from config.settings import Settings, get_settings
from models.enums import AnalysisState
from models.events import AnalysisChunk, AnalysisStatusEvent
from models.job import AnalysisRequest
from models.novel import AnalysisResult
from tools.llm_client import extract_analysis_result

logger = logging.getLogger(__name__)

_COMPLETIONS_SUFFIX = "/chat/completions"
_DONE_SENTINEL = "[DONE]"


def chat_completions_url(api_base: str) -> str:
    base = api_base.strip().rstrip("/")
    if base.endswith(_COMPLETIONS_SUFFIX):
        return base
    return base + _COMPLETIONS_SUFFIX


def models_url(api_base: str) -> str:
    base = api_base.strip().rstrip("/")
    if base.endswith(_COMPLETIONS_SUFFIX):
        base = base[: -len(_COMPLETIONS_SUFFIX)]
    return base + "/models"


def build_request_body(request: AnalysisRequest, temperature: float) -> dict:
    body = {
        "model": request.model,
        "messages": [
            {"role": "system", "content": request.prompt},
            {"role": "user", "content": request.content},
        ],
        "stream": True,
        "temperature": temperature,
    }
    if request.wants_json:
        body["response_format"] = {"type": "json_object"}
    return body


def _upstream_error_message(error) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


async def iter_stream_content(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield content fragments from server-sent-event lines.

    Raises:
        UpstreamAnalysisError: A data line carried an ``error`` object.
    """
    async for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == _DONE_SENTINEL:
            break
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream line: %s", data[:100])
            continue
        if not isinstance(payload, dict):
            continue
        if payload.get("error"):
            raise UpstreamAnalysisError(f"API Error: {_upstream_error_message(payload['error'])}")

        choices = payload.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            continue
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        if content:
            yield content


class AnalysisSession:
    """Lifecycle of one streaming request."""

    _TRANSITIONS = {
        AnalysisState.IDLE: {AnalysisState.STARTED},
        AnalysisState.STARTED: {AnalysisState.STREAMING, AnalysisState.DONE, AnalysisState.FAILED},
        AnalysisState.STREAMING: {AnalysisState.STREAMING, AnalysisState.DONE, AnalysisState.FAILED},
        AnalysisState.DONE: set(),
        AnalysisState.FAILED: set(),
    }

    def __init__(self, request: AnalysisRequest):
        self.request = request
        self.state = AnalysisState.IDLE
        self.chunks: list[str] = []
        self.error: str = ""

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    @property
    def finished(self) -> bool:
        return self.state in (AnalysisState.DONE, AnalysisState.FAILED)

    def transition(self, new_state: AnalysisState) -> None:
        if new_state not in self._TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid analysis transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def append(self, chunk: str) -> None:
        self.transition(AnalysisState.STREAMING)
        self.chunks.append(chunk)

    def fail(self, message: str) -> None:
        self.transition(AnalysisState.FAILED)
        self.error = message


class AnalysisEngine:
    """Streams chat completions and re-emits them as typed events.

    Args:
        settings: Supplies temperature and timeout.
        http_client: Optional shared client. When omitted a client is opened
            per call and closed afterwards.
    """

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._http_client = http_client
        self.total_calls = 0

    @asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.ai_timeout) as client:
            yield client

    @staticmethod
    def validate_request(request: AnalysisRequest) -> None:
        """Raise ConfigurationError when the endpoint cannot be addressed."""
        missing = [
            name for name, value in (
                ("api_base", request.api_base),
                ("api_key", request.api_key),
                ("model", request.model),
            )
            if not value.strip()
        ]
        if missing:
            raise ConfigurationError("请先在设置中配置 AI 接口", {"missing": ", ".join(missing)})

    async def run(self, request: AnalysisRequest, callback=None) -> AnalysisSession:
        """Execute one streaming request.

        Args:
            request: Endpoint, credentials, prompt and content.
            callback: Optional object with ``on_chunk(AnalysisChunk)`` and
                ``on_status(AnalysisStatusEvent)``.

        Returns:
            The finished session (Done or Failed).

        Raises:
            ConfigurationError: Missing api_base, api_key or model. Raised
                before the session is started.
        """
        self.validate_request(request)
        session = AnalysisSession(request)
        self.total_calls += 1

        session.transition(AnalysisState.STARTED)
        logger.info("Analysis started: model=%s, %d chars of content", request.model, len(request.content))
        self._emit_status(callback, "开始分析...", AnalysisState.STARTED)

        try:
            await self._stream(session, callback)
        except UpstreamAnalysisError as e:
            self._finish_failed(session, callback, e.message)
            return session
        except httpx.HTTPError as e:
            self._finish_failed(session, callback, f"Request failed: {e}")
            return session

        session.transition(AnalysisState.DONE)
        logger.info("Analysis done: %d chunks, %d chars", len(session.chunks), len(session.text))
        self._emit_status(callback, "分析完成", AnalysisState.DONE)
        return session

    async def _stream(self, session: AnalysisSession, callback) -> None:
        request = session.request
        url = chat_completions_url(request.api_base)
        headers = {
            "Authorization": f"Bearer {request.api_key.strip()}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        body = build_request_body(request, self.settings.ai_temperature)

        async with self._client() as client:
            async with client.stream("POST", url, headers=headers, json=body) as response:
                if response.status_code >= 400:
                    error_body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamAnalysisError(
                        f"API Error {response.status_code}: {error_body}",
                        status_code=response.status_code,
                    )
                async for content in iter_stream_content(response.aiter_lines()):
                    session.append(content)
                    if callback is not None:
                        callback.on_chunk(AnalysisChunk(chunk=content))

    def _finish_failed(self, session: AnalysisSession, callback, message: str) -> None:
        session.fail(message)
        logger.error("Analysis failed: %s", message)
        self._emit_status(callback, message, AnalysisState.FAILED)

    @staticmethod
    def _emit_status(callback, message: str, state: AnalysisState) -> None:
        if callback is not None:
            callback.on_status(AnalysisStatusEvent(message=message, status=state))

    async def analyze_json(self, request: AnalysisRequest, callback=None) -> AnalysisResult:
        """Run a JSON-mode request and extract an AnalysisResult.

        Raises:
            ConfigurationError: Endpoint not configured.
            UpstreamAnalysisError: The session ended in Failed.
            ExtractionError: No complete AnalysisResult in the response.
        """
        if not request.wants_json:
            request = AnalysisRequest(
                api_base=request.api_base,
                api_key=request.api_key,
                model=request.model,
                prompt=request.prompt,
                content=request.content,
                wants_json=True,
            )
        session = await self.run(request, callback)
        if session.state is AnalysisState.FAILED:
            raise UpstreamAnalysisError(session.error)
        return extract_analysis_result(session.text)

    async def fetch_models(self, api_base: str, api_key: str) -> list[str]:
        """List model ids offered by the endpoint.

        Raises:
            ConfigurationError: Missing api_base or api_key.
            UpstreamAnalysisError: Transport failure, non-2xx status, or a
                response without an OpenAI-style ``data`` array.
        """
        if not api_base.strip() or not api_key.strip():
            raise ConfigurationError("请先填写 API 地址和密钥")
        url = models_url(api_base)
        headers = {"Authorization": f"Bearer {api_key.strip()}"}

        async with self._client() as client:
            try:
                response = await client.get(url, headers=headers)
            except httpx.HTTPError as e:
                raise UpstreamAnalysisError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise UpstreamAnalysisError(
                f"API Error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamAnalysisError(f"Invalid models response: {response.text[:200]}") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise UpstreamAnalysisError("Invalid response format: missing 'data' array")

        model_ids = [item["id"] for item in data if isinstance(item, dict) and isinstance(item.get("id"), str)]
        logger.info("Fetched %d models from %s", len(model_ids), url)
        return model_ids

    def get_usage_summary(self) -> dict:
        """Return call count statistics."""
        return {"total_calls": self.total_calls}
