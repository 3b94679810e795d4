"""
Ollama backend (local inference runtime, plain HTTP via httpx).

Two request styles are supported:

- ``/api/generate`` (default): the role/content messages are flattened into
  a single ``System:`` / ``Human:`` / ``Assistant:`` transcript ending with
  ``"Assistant: "`` so the model continues as the assistant
- ``/api/chat`` (``OLLAMA_CHAT_API=true``): messages are sent as-is

Both stream newline-delimited JSON objects; text is in ``response``
(generate) or ``message.content`` (chat), and the last object has
``done: true``. The runtime reports failures either as an HTTP status with a
JSON ``error`` body or as an ``error`` field inside the stream, so both paths
go through the same message classifier.

Also exposes model lifecycle helpers used by ``POST /models/local``.
"""
import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from hypo.llm.backends.base import ChatBackend, GenerationOptions, PromptMessages
from hypo.llm.errors import BackendError, ErrorKind

DEFAULT_OLLAMA_URL = "http://localhost:11434"
BENCHMARK_PROMPT = "Explain in two sentences what a kanban board is."

ROLE_LABELS = {"system": "System", "user": "Human", "assistant": "Assistant"}

OOM_MARKERS = ("out of memory", "insufficient memory", "requires more system memory", "oom-kill")
NOT_LOADED_MARKERS = ("loading model", "model is loading", "not loaded", "still loading")
CONTEXT_MARKERS = ("context length", "context window", "context size", "too long", "exceeds the context")


def build_prompt(messages: PromptMessages) -> str:
    """
    Flatten role/content messages into one transcript.

    Example:
        >>> build_prompt([{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hi"}])
        'System: Be brief.\\n\\nHuman: Hi\\n\\nAssistant: '
    """
    lines = []
    for message in messages:
        label = ROLE_LABELS.get(message.get("role", "user"), "Human")
        lines.append(f"{label}: {message.get('content', '')}")
    lines.append("Assistant: ")
    return "\n\n".join(lines)


class OllamaBackend(ChatBackend):
    """
    Chat against a local Ollama server.

    Args:
        base_url: server root, e.g. http://localhost:11434
        model: default model tag
        timeout: per-request timeout in seconds
        use_chat_api: use /api/chat instead of /api/generate
        client: pre-built httpx.AsyncClient (tests use MockTransport)
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = "llama3.2",
        timeout: float = 30.0,
        use_chat_api: bool = False,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.use_chat_api = use_chat_api
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @property
    def default_model(self) -> str:
        return self.model

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=httpx.Timeout(self.timeout))
        return self._client

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    def _classify_message(self, text: str, model: str, status: Optional[int] = None) -> BackendError:
        lowered = text.lower()
        if any(marker in lowered for marker in OOM_MARKERS):
            kind = ErrorKind.OUT_OF_MEMORY
        elif "not found" in lowered or "try pulling" in lowered or status == 404:
            return BackendError(
                ErrorKind.MODEL_NOT_FOUND,
                f"Model '{model}' is not installed on the local runtime.",
                suggestion=f"Run 'ollama pull {model}' or pick another model.",
                service=self.name,
                original_error=text,
            )
        elif any(marker in lowered for marker in NOT_LOADED_MARKERS):
            kind = ErrorKind.MODEL_NOT_LOADED
        elif any(marker in lowered for marker in CONTEXT_MARKERS):
            kind = ErrorKind.CONTEXT_TOO_LONG
        elif status in (408, 504):
            kind = ErrorKind.TIMEOUT
        elif status == 503:
            kind = ErrorKind.MODEL_NOT_LOADED
        else:
            kind = ErrorKind.GENERAL_ERROR
        return BackendError(kind, service=self.name, original_error=text)

    def _classify_transport(self, exc: Exception) -> BackendError:
        if isinstance(exc, httpx.TimeoutException):
            kind = ErrorKind.TIMEOUT
        elif isinstance(exc, httpx.ConnectError):
            return BackendError(
                ErrorKind.BACKEND_UNREACHABLE,
                f"Could not connect to the local runtime at {self.base_url}.",
                suggestion="Start it with 'ollama serve' and check OLLAMA_URL.",
                service=self.name,
                original_error=str(exc),
            )
        elif isinstance(exc, httpx.HTTPError):
            kind = ErrorKind.NETWORK_ERROR
        else:
            kind = ErrorKind.GENERAL_ERROR
        return BackendError(kind, service=self.name, original_error=str(exc) or type(exc).__name__)

    @staticmethod
    def _error_text(body: bytes) -> str:
        text = body.decode("utf-8", errors="replace")
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return text

    def _json_body(self, response: httpx.Response) -> Dict[str, Any]:
        """Decoded JSON object of a successful response."""
        try:
            data = response.json()
        except ValueError as exc:
            data = None
            detail = str(exc)
        else:
            detail = f"expected a JSON object, got {type(data).__name__}"
        if not isinstance(data, dict):
            raise BackendError(
                ErrorKind.GENERAL_ERROR,
                "Ollama returned a response that could not be read.",
                service=self.name,
                original_error=f"{detail}: {response.text[:200]}",
            )
        return data

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _payload(self, messages: PromptMessages, options: GenerationOptions, model: str, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "stream": stream,
            "options": {"temperature": options.temperature, "num_predict": options.max_tokens},
        }
        if self.use_chat_api:
            payload["messages"] = messages
        else:
            payload["prompt"] = build_prompt(messages)
        return payload

    @property
    def _endpoint(self) -> str:
        return "/api/chat" if self.use_chat_api else "/api/generate"

    def _chunk_text(self, data: Dict[str, Any]) -> str:
        if self.use_chat_api:
            return (data.get("message") or {}).get("content") or ""
        return data.get("response") or ""

    async def _stream_objects(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Yield the decoded NDJSON objects of one streamed request."""
        model = payload["model"]
        try:
            async with self.client.stream("POST", self._endpoint, json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise self._classify_message(self._error_text(body), model, response.status_code)
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        data = None
                    if not isinstance(data, dict):
                        self.logger.debug(f"Skipping malformed line from Ollama: {line[:80]}")
                        continue
                    if data.get("error"):
                        raise self._classify_message(str(data["error"]), model)
                    yield data
                    if data.get("done"):
                        return
        except BackendError as exc:
            self.logger.error(f"Ollama request failed: {exc.kind.value}: {exc.original_error}")
            raise
        except Exception as exc:
            error = self._classify_transport(exc)
            self.logger.error(f"Ollama request failed: {error.kind.value}: {error.original_error}")
            raise error from exc

    async def generate_stream(
        self,
        messages: PromptMessages,
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[str]:
        options = options or GenerationOptions(temperature=self.temperature, max_tokens=self.max_tokens)
        model = options.model or self.model
        objects = self._stream_objects(self._payload(messages, options, model, stream=True))
        try:
            async for data in objects:
                text = self._chunk_text(data)
                if text:
                    yield text
        finally:
            await objects.aclose()

    async def generate(self, messages: PromptMessages, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions(temperature=self.temperature, max_tokens=self.max_tokens)
        model = options.model or self.model
        payload = self._payload(messages, options, model, stream=False)
        try:
            response = await self.client.post(self._endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise self._classify_transport(exc) from exc
        if response.status_code >= 400:
            raise self._classify_message(self._error_text(response.content), model, response.status_code)
        data = self._json_body(response)
        if data.get("error"):
            raise self._classify_message(str(data["error"]), model)
        return self._chunk_text(data)

    # ------------------------------------------------------------------
    # Health and model lifecycle
    # ------------------------------------------------------------------

    async def check_connection(self) -> bool:
        try:
            response = await self.client.get("/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError as exc:
            self.logger.warning(f"Ollama connection check failed: {exc}")
            return False

    async def list_models(self) -> List[Dict[str, Any]]:
        """Installed models as reported by /api/tags."""
        try:
            response = await self.client.get("/api/tags")
        except httpx.HTTPError as exc:
            raise self._classify_transport(exc) from exc
        if response.status_code >= 400:
            raise self._classify_message(self._error_text(response.content), self.model, response.status_code)
        models = self._json_body(response).get("models") or []
        return [
            {
                "name": item.get("name"),
                "size": item.get("size"),
                "modified_at": item.get("modified_at"),
                "family": (item.get("details") or {}).get("family"),
            }
            for item in models
        ]

    async def is_model_available(self, model: Optional[str] = None) -> bool:
        model = model or self.model
        names = [item["name"] for item in await self.list_models()]
        # "llama3.2" matches the implicit "llama3.2:latest" tag
        return model in names or f"{model}:latest" in names

    async def pull_model(self, model: str) -> Dict[str, Any]:
        """Download a model; blocks until the runtime reports completion."""
        self.logger.info(f"Pulling Ollama model {model}")
        try:
            response = await self.client.post("/api/pull", json={"name": model, "stream": False}, timeout=None)
        except httpx.HTTPError as exc:
            raise self._classify_transport(exc) from exc
        if response.status_code >= 400:
            raise self._classify_message(self._error_text(response.content), model, response.status_code)
        return {"model": model, "status": self._json_body(response).get("status", "success")}

    async def delete_model(self, model: str) -> bool:
        """Remove a model. Returns False when it was not installed."""
        self.logger.info(f"Deleting Ollama model {model}")
        try:
            response = await self.client.request("DELETE", "/api/delete", json={"name": model})
        except httpx.HTTPError as exc:
            raise self._classify_transport(exc) from exc
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            raise self._classify_message(self._error_text(response.content), model, response.status_code)
        return True

    async def benchmark(self, model: Optional[str] = None, prompt: str = BENCHMARK_PROMPT) -> Dict[str, Any]:
        """
        Time one streamed generation.

        Returns:
            Dict with first-token latency, total time, characters generated and
            tokens per second (from the runtime's eval counters when reported).
        """
        model = model or self.model
        options = GenerationOptions(model=model, temperature=self.temperature, max_tokens=self.max_tokens)
        payload = self._payload([{"role": "user", "content": prompt}], options, model, stream=True)

        started = time.perf_counter()
        first_token: Optional[float] = None
        characters = 0
        final: Dict[str, Any] = {}

        objects = self._stream_objects(payload)
        try:
            async for data in objects:
                text = self._chunk_text(data)
                if text:
                    if first_token is None:
                        first_token = time.perf_counter() - started
                    characters += len(text)
                if data.get("done"):
                    final = data
        finally:
            await objects.aclose()

        total = time.perf_counter() - started
        eval_count = final.get("eval_count")
        eval_duration = final.get("eval_duration")
        tokens_per_second = None
        if eval_count and eval_duration:
            tokens_per_second = round(eval_count / (eval_duration / 1e9), 2)

        return {
            "model": model,
            "first_token_seconds": round(first_token, 3) if first_token is not None else None,
            "total_seconds": round(total, 3),
            "characters": characters,
            "tokens": eval_count,
            "tokens_per_second": tokens_per_second,
        }

    async def validate_setup(self) -> Dict[str, Any]:
        """Server reachable and default model installed."""
        connected = await self.check_connection()
        model_available = False
        if connected:
            try:
                model_available = await self.is_model_available()
            except BackendError as exc:
                self.logger.warning(f"Could not list Ollama models: {exc.message}")
        return {
            "service": self.name,
            "url": self.base_url,
            "connected": connected,
            "model": self.model,
            "model_available": model_available,
        }

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
