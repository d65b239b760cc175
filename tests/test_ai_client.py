"""Tests for the streaming completion client, against a mocked HTTP transport."""

import json

import httpx
import pytest

from conftest import sse_body


def _request(**overrides):
    from models.job import AnalysisRequest
    values = dict(
        api_base="https://api.example.com/v1",
        api_key="sk-test",
        model="test-model",
        prompt="系统提示",
        content="章节正文",
    )
    values.update(overrides)
    return AnalysisRequest(**values)


def _engine(settings, handler):
    from tools.ai_client import AnalysisEngine
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnalysisEngine(settings, http_client=client), client


class BrokenStream(httpx.AsyncByteStream):
    """Delivers one event, then the connection drops."""

    async def __aiter__(self):
        yield sse_body("半句", done=False)
        raise httpx.ReadError("connection reset")


class TestUrlHelpers:
    def test_chat_completions_url(self):
        from tools.ai_client import chat_completions_url
        assert chat_completions_url("https://api.example.com/v1/") == "https://api.example.com/v1/chat/completions"
        assert chat_completions_url("https://x/v1/chat/completions") == "https://x/v1/chat/completions"

    def test_models_url(self):
        from tools.ai_client import models_url
        assert models_url("https://api.example.com/v1") == "https://api.example.com/v1/models"
        assert models_url("https://x/v1/chat/completions") == "https://x/v1/models"

    def test_request_body_json_mode(self):
        from tools.ai_client import build_request_body
        body = build_request_body(_request(wants_json=True), 0.7)
        assert body["stream"] is True
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0] == {"role": "system", "content": "系统提示"}
        assert "response_format" not in build_request_body(_request(), 0.7)


class TestSession:
    def test_lifecycle(self):
        from models.enums import AnalysisState
        from tools.ai_client import AnalysisSession
        session = AnalysisSession(_request())
        assert session.state is AnalysisState.IDLE
        session.transition(AnalysisState.STARTED)
        session.append("a")
        session.append("b")
        session.transition(AnalysisState.DONE)
        assert session.text == "ab"
        assert session.finished

    def test_cannot_skip_started(self):
        from tools.ai_client import AnalysisSession
        with pytest.raises(RuntimeError, match="idle -> streaming"):
            AnalysisSession(_request()).append("x")

    def test_terminal_states_are_final(self):
        from models.enums import AnalysisState
        from tools.ai_client import AnalysisSession
        session = AnalysisSession(_request())
        session.transition(AnalysisState.STARTED)
        session.fail("boom")
        with pytest.raises(RuntimeError):
            session.transition(AnalysisState.DONE)
        assert session.error == "boom"


class TestRun:
    @pytest.mark.asyncio
    async def test_streams_chunks_in_order(self, settings):
        from models.enums import AnalysisState
        from workflow.callbacks import CollectingCallback
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse_body("第一", "第二", "第三"))

        engine, client = _engine(settings, handler)
        cb = CollectingCallback()
        async with client:
            session = await engine.run(_request(), cb)

        assert session.state is AnalysisState.DONE
        assert [c.chunk for c in cb.chunks] == ["第一", "第二", "第三"]
        assert [s.status for s in cb.statuses] == [AnalysisState.STARTED, AnalysisState.DONE]
        assert session.text == cb.text == "第一第二第三"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["url"] == "https://api.example.com/v1/chat/completions"
        assert seen["body"]["model"] == "test-model"

    @pytest.mark.asyncio
    async def test_ignores_comments_and_malformed_lines(self, settings):
        body = b": keep-alive\n\ndata: {not json}\n\n" + sse_body("ok")
        engine, client = _engine(settings, lambda request: httpx.Response(200, content=body))
        async with client:
            session = await engine.run(_request())
        assert session.text == "ok"

    @pytest.mark.asyncio
    async def test_lines_after_done_are_ignored(self, settings):
        body = sse_body("前") + sse_body("后", done=False)
        engine, client = _engine(settings, lambda request: httpx.Response(200, content=body))
        async with client:
            session = await engine.run(_request())
        assert session.text == "前"
        assert engine.get_usage_summary() == {"total_calls": 1}

    @pytest.mark.asyncio
    async def test_error_object_fails_session(self, settings):
        from models.enums import AnalysisState
        from workflow.callbacks import CollectingCallback
        body = b'data: {"error": {"message": "quota exceeded"}}\n\n'
        engine, client = _engine(settings, lambda request: httpx.Response(200, content=body))
        cb = CollectingCallback()
        async with client:
            session = await engine.run(_request(), cb)
        assert session.state is AnalysisState.FAILED
        assert session.error == "API Error: quota exceeded"
        assert cb.statuses[-1].status is AnalysisState.FAILED
        assert cb.chunks == []

    @pytest.mark.asyncio
    async def test_http_error_status(self, settings):
        from models.enums import AnalysisState
        engine, client = _engine(
            settings, lambda request: httpx.Response(401, json={"error": {"message": "invalid key"}}),
        )
        async with client:
            session = await engine.run(_request())
        assert session.state is AnalysisState.FAILED
        assert session.error.startswith("API Error 401: ")
        assert "invalid key" in session.error

    @pytest.mark.asyncio
    async def test_connection_drop_mid_stream(self, settings):
        from models.enums import AnalysisState
        from workflow.callbacks import CollectingCallback
        engine, client = _engine(settings, lambda request: httpx.Response(200, stream=BrokenStream()))
        cb = CollectingCallback()
        async with client:
            session = await engine.run(_request(), cb)
        assert session.state is AnalysisState.FAILED
        assert cb.text == "半句"
        assert [s.status for s in cb.statuses] == [AnalysisState.STARTED, AnalysisState.FAILED]

    @pytest.mark.asyncio
    async def test_missing_configuration_raises_before_started(self, settings):
        from config.exceptions import ConfigurationError
        from workflow.callbacks import CollectingCallback
        engine, client = _engine(settings, lambda request: httpx.Response(200, content=sse_body("x")))
        cb = CollectingCallback()
        async with client:
            with pytest.raises(ConfigurationError, match="api_key"):
                await engine.run(_request(api_key=" "), cb)
        assert cb.statuses == []
        assert engine.get_usage_summary() == {"total_calls": 0}


class TestAnalyzeJson:
    @pytest.mark.asyncio
    async def test_returns_result_and_forces_json_mode(self, settings):
        seen = {}
        payload = (
            '{"genre": "玄幻", "style": "热血", "goldfinger": "系统", '
            '"opening": "少年觉醒", "highlights": "升级"}'
        )

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=sse_body(payload[:20], payload[20:]))

        engine, client = _engine(settings, handler)
        async with client:
            result = await engine.analyze_json(_request())
        assert result.genre == "玄幻"
        assert seen["body"]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_refusal_raises_extraction_error(self, settings):
        from config.exceptions import ExtractionError
        engine, client = _engine(settings, lambda request: httpx.Response(200, content=sse_body("I cannot analyze this.")))
        async with client:
            with pytest.raises(ExtractionError):
                await engine.analyze_json(_request())

    @pytest.mark.asyncio
    async def test_failed_session_raises_upstream_error(self, settings):
        from config.exceptions import UpstreamAnalysisError
        engine, client = _engine(settings, lambda request: httpx.Response(500, text="upstream down"))
        async with client:
            with pytest.raises(UpstreamAnalysisError, match="API Error 500"):
                await engine.analyze_json(_request())


class TestFetchModels:
    @pytest.mark.asyncio
    async def test_lists_model_ids(self, settings):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"data": [{"id": "gpt-4o"}, {"id": "deepseek-chat"}, {"name": "x"}]})

        engine, client = _engine(settings, handler)
        async with client:
            ids = await engine.fetch_models("https://api.example.com/v1", "sk-test")
        assert ids == ["gpt-4o", "deepseek-chat"]
        assert seen["url"] == "https://api.example.com/v1/models"

    @pytest.mark.asyncio
    async def test_missing_data_array(self, settings):
        from config.exceptions import UpstreamAnalysisError
        engine, client = _engine(settings, lambda request: httpx.Response(200, json={"models": []}))
        async with client:
            with pytest.raises(UpstreamAnalysisError, match="missing 'data' array"):
                await engine.fetch_models("https://api.example.com/v1", "sk-test")

    @pytest.mark.asyncio
    async def test_http_error(self, settings):
        from config.exceptions import UpstreamAnalysisError
        engine, client = _engine(settings, lambda request: httpx.Response(403, text="forbidden"))
        async with client:
            with pytest.raises(UpstreamAnalysisError) as exc_info:
                await engine.fetch_models("https://api.example.com/v1", "sk-test")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_requires_base_and_key(self, settings):
        from config.exceptions import ConfigurationError
        from tools.ai_client import AnalysisEngine
        with pytest.raises(ConfigurationError):
            await AnalysisEngine(settings).fetch_models("", "sk-test")
