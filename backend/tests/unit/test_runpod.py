"""Unit tests for RunPodBackend and RunPod output extraction."""

import json

import httpx
import pytest

from src.services.llm import ChatMessage, GenerationTimeout, LLMError, TransientLLMError
from src.services.runpod import DEFAULT_MODEL, RunPodBackend, extract_output


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


def _backend(handler: object, clock: FakeClock | None = None) -> RunPodBackend:
    clock = clock or FakeClock()
    client = httpx.Client(transport=httpx.MockTransport(handler))  # type: ignore[arg-type]
    return RunPodBackend(
        api_key="rp-key",
        endpoint_id="ep1",
        client=client,
        sleep=clock.sleep,
        clock=clock,
    )


class TestExtractOutput:
    def test_plain_string(self) -> None:
        assert extract_output("hello") == "hello"

    def test_openai_choices(self) -> None:
        assert extract_output({"choices": [{"message": {"content": "doc"}}]}) == "doc"

    def test_choice_tokens(self) -> None:
        output = {"choices": [{"tokens": ["Hel", {"text": "lo"}, {"content": "!"}]}]}
        assert extract_output(output) == "Hello!"

    def test_top_level_tokens(self) -> None:
        assert extract_output({"tokens": ["a", "b"]}) == "ab"

    def test_content_and_message_shapes(self) -> None:
        assert extract_output({"content": "x"}) == "x"
        assert extract_output({"message": {"content": "y"}}) == "y"

    def test_list_of_outputs(self) -> None:
        assert extract_output([{"choices": [{"tokens": ["a"]}]}, {"choices": [{"tokens": ["b"]}]}]) == "ab"

    def test_unknown_shape_raises(self) -> None:
        with pytest.raises(LLMError):
            extract_output({"unexpected": 1})


class TestRunPodBackend:
    def test_missing_credentials_raise_value_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("RUNPOD_API_KEY", raising=False)
        monkeypatch.delenv("RUNPOD_ENDPOINT_ID", raising=False)

        with pytest.raises(ValueError, match="RUNPOD_API_KEY"):
            RunPodBackend()

    def test_submits_and_polls_until_completed(self) -> None:
        requests: list[httpx.Request] = []
        statuses = iter(["IN_PROGRESS", "COMPLETED"])

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path.endswith("/run"):
                return httpx.Response(200, json={"id": "job-1", "status": "IN_QUEUE"})
            status = next(statuses)
            output = [{"choices": [{"tokens": ["# Doc"]}]}] if status == "COMPLETED" else None
            return httpx.Response(200, json={"id": "job-1", "status": status, "output": output})

        handles: list[str] = []
        text = _backend(handler).generate(
            [ChatMessage("user", "earlier"), ChatMessage("assistant", "reply")],
            "Write it",
            60,
            instructions="system rules",
            on_submit=handles.append,
        )

        assert text == "# Doc"
        assert handles == ["job-1"]
        assert requests[0].url == "https://api.runpod.ai/v2/ep1/run"
        assert requests[0].headers["Authorization"] == "Bearer rp-key"
        payload = json.loads(requests[0].content)["input"]
        assert payload["model"] == DEFAULT_MODEL
        assert [m["role"] for m in payload["messages"]] == ["system", "user", "assistant", "user"]
        assert payload["messages"][0]["content"] == "system rules"
        assert payload["messages"][-1]["content"] == "Write it"
        assert [r.url.path for r in requests[1:]] == ["/v2/ep1/status/job-1"] * 2

    def test_times_out_and_cancels_upstream_job(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/run"):
                return httpx.Response(200, json={"id": "job-2", "status": "IN_QUEUE"})
            if "/cancel/" in request.url.path:
                return httpx.Response(200, json={"status": "CANCELLED"})
            return httpx.Response(200, json={"id": "job-2", "status": "IN_QUEUE"})

        with pytest.raises(GenerationTimeout):
            _backend(handler).generate([], "Write it", 10)

        assert paths[-1] == "/v2/ep1/cancel/job-2"
        assert paths.count("/v2/ep1/status/job-2") == 5

    def test_failed_job_raises_llm_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "job-3", "status": "FAILED", "error": "CUDA OOM"})

        with pytest.raises(LLMError, match="CUDA OOM") as excinfo:
            _backend(handler).generate([], "Write it", 10)
        assert not isinstance(excinfo.value, TransientLLMError)

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_rate_limit_and_server_errors_are_transient(self, status_code: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, text="busy")

        with pytest.raises(TransientLLMError):
            _backend(handler).generate([], "Write it", 10)

    def test_client_errors_are_not_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="unauthorized")

        with pytest.raises(LLMError) as excinfo:
            _backend(handler).generate([], "Write it", 10)
        assert not isinstance(excinfo.value, TransientLLMError)

    def test_transport_errors_are_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientLLMError):
            _backend(handler).generate([], "Write it", 10)

    def test_completed_with_empty_output_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"id": "job-4", "status": "COMPLETED", "output": "  "})

        with pytest.raises(LLMError, match="empty"):
            _backend(handler).generate([], "Write it", 10)
