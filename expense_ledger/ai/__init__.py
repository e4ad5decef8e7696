import json
import os
import re
import urllib.request
import logging
from dataclasses import dataclass
from typing import Iterable, List, Protocol

import anyio
from huggingface_hub import InferenceClient

from expense_ledger.errors import CategorizationError, ConfigError

logger = logging.getLogger(__name__)

_DEEPSEEK_URL = "https://api.deepseek.com/chat/completions"
_OPENAI_URL = "https://api.openai.com/v1/chat/completions"
_OLLAMA_URL = "http://localhost:11434/api/chat"

DEFAULT_TIMEOUT = 15.0

_FENCE_RX = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)
_MAX_LABEL_LEN = 64


class LLMProvider(Protocol):
    """A minimal protocol all concrete providers must implement."""

    def generate(self, messages: List[dict]) -> str:  # noqa: D401 – keep simple signature
        """Return the model reply given a list-of-dicts chat history."""


# -----------------------------------------------------------------------------
# OpenAI-compatible Chat Completions provider (OpenAI, DeepSeek)
# -----------------------------------------------------------------------------

@dataclass
class ChatCompletionsProvider:
    model: str
    api_key: str
    url: str = _OPENAI_URL
    timeout: float = DEFAULT_TIMEOUT

    def generate(self, messages: List[dict]) -> str:
        payload = {"model": self.model, "messages": messages, "temperature": 0}
        data = json.dumps(payload).encode()
        logger.debug("LLM ▶ POST %s – payload: %s", self.url, payload)
        req = urllib.request.Request(self.url, data=data, method="POST")
        req.add_header("Content-Type", "application/json")
        req.add_header("Authorization", f"Bearer {self.api_key}")
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            resp_data = json.load(resp)
        logger.debug("LLM ◀ %s", resp_data)
        return resp_data["choices"][0]["message"]["content"].strip()


# -----------------------------------------------------------------------------
# Hugging Face Inference API provider
# -----------------------------------------------------------------------------

@dataclass
class HuggingFaceProvider:
    model: str
    token: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        self._client = InferenceClient(
            provider="cerebras", api_key=self.token, timeout=self.timeout
        )

    def generate(self, messages: List[dict]) -> str:
        out = self._client.chat_completion(messages=messages, model=self.model)
        return out.choices[0].message.content.strip()


# -----------------------------------------------------------------------------
# Ollama provider
# -----------------------------------------------------------------------------

@dataclass
class OllamaProvider:
    model: str
    url: str = _OLLAMA_URL
    timeout: float = DEFAULT_TIMEOUT

    def _post(self, payload: dict) -> dict:
        data = json.dumps(payload).encode()
        logger.debug("Ollama ▶ POST %s – payload: %s", self.url, payload)
        req = urllib.request.Request(self.url, data=data, method="POST")
        req.add_header("Content-Type", "application/json")

        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            raw = resp.read().decode()
            logger.debug("Ollama ◀ %s", raw)
            return json.loads(raw)

    def generate(self, messages: List[dict]) -> str:
        payload = {"model": self.model, "messages": messages, "stream": False}
        resp_data = self._post(payload)

        # /api/chat returns either {'message': str, 'done': bool}
        # or {'message': {'role': 'assistant', 'content': str, ...}, 'done': bool}
        msg = resp_data.get("message", "")
        if isinstance(msg, dict):
            msg = msg.get("content", "")
        if not isinstance(msg, str):
            raise RuntimeError(f"Unexpected Ollama response format: {resp_data}")
        return msg.strip()


# -----------------------------------------------------------------------------
# Categorization
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class CategorizationResult:
    """Raw label returned by the model and whether it is in the vocabulary."""

    label: str
    valid: bool


def build_categorization_messages(description: str, allowed: Iterable[str]) -> List[dict]:
    labels = ", ".join(allowed)
    return [
        {
            "role": "system",
            "content": (
                "You categorize personal expense transactions. "
                'Reply only with JSON of the form {"category": "<label>"} '
                f"where <label> is exactly one of: {labels}."
            ),
        },
        {"role": "user", "content": f"Transaction description: {description}"},
    ]


def parse_category_label(reply) -> str:
    """Extract the category label from a model reply.

    Accepts ``{"category": "Food"}``, a JSON string, either of those wrapped
    in a code fence, or a bare single-line label.
    """
    if not isinstance(reply, str) or not reply.strip():
        raise CategorizationError("AI returned an empty reply")
    text = _FENCE_RX.sub("", reply.strip()).strip()
    if text.startswith(("{", "[", '"')):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CategorizationError(f"AI returned malformed JSON: {text[:80]!r}") from exc
        if isinstance(data, dict):
            data = data.get("category")
        if not isinstance(data, str) or not data.strip():
            raise CategorizationError(f"AI reply has no category label: {text[:80]!r}")
        return data.strip()
    if "\n" in text or len(text) > _MAX_LABEL_LEN:
        raise CategorizationError(f"AI returned an unrecognized reply: {text[:80]!r}")
    return text.rstrip(".").strip()


@dataclass
class CategorizationClient:
    """Async boundary to the external categorization model.

    The blocking provider call runs in a worker thread under ``timeout``
    seconds. Only one attempt is made per call.
    """

    provider: LLMProvider
    timeout: float = DEFAULT_TIMEOUT

    async def categorize(self, description: str, allowed: Iterable[str]) -> CategorizationResult:
        allowed = list(allowed)
        messages = build_categorization_messages(description, allowed)
        try:
            # An abandoned thread keeps running until the provider's own socket
            # timeout (set to the same value by get_provider) expires, so after a
            # timeout the real request count can briefly exceed the worker count.
            with anyio.fail_after(self.timeout):
                reply = await anyio.to_thread.run_sync(
                    self.provider.generate, messages, abandon_on_cancel=True
                )
        except TimeoutError as exc:
            raise CategorizationError(
                f"AI categorization timed out after {self.timeout:g}s"
            ) from exc
        except Exception as exc:
            raise CategorizationError(f"Error contacting LLM: {exc}") from exc

        label = parse_category_label(reply)
        wanted = label.lower()
        valid = any(wanted == a.strip().lower() for a in allowed)
        logger.debug("AI categorized %r as %r (valid=%s)", description, label, valid)
        return CategorizationResult(label=label, valid=valid)


# -----------------------------------------------------------------------------
# Helper utilities
# -----------------------------------------------------------------------------

def get_provider(settings: dict | None = None) -> LLMProvider:
    """Build a provider from the ``ai`` config section.

    ``TALLYUP_LLM_PROVIDER`` and ``TALLYUP_LLM_MODEL`` override the file;
    API keys are always read from the environment.
    """
    settings = settings or {}
    provider = os.environ.get("TALLYUP_LLM_PROVIDER") or settings.get("provider", "deepseek")
    provider = provider.lower()
    model = os.environ.get("TALLYUP_LLM_MODEL") or settings.get("model")
    timeout = float(settings.get("timeout", DEFAULT_TIMEOUT))
    url = settings.get("url")

    if provider in ("deepseek", "openai"):
        default_env = "DEEPSEEK_API_KEY" if provider == "deepseek" else "OPENAI_API_KEY"
        key_env = settings.get("api_key_env") or default_env
        api_key = os.environ.get(key_env)
        if not api_key:
            raise ConfigError(f"{key_env} not set")
        if provider == "deepseek":
            model, url = model or "deepseek-chat", url or _DEEPSEEK_URL
        else:
            model, url = model or "gpt-4o-mini", url or _OPENAI_URL
        return ChatCompletionsProvider(model=model, api_key=api_key, url=url, timeout=timeout)

    if provider == "ollama":
        return OllamaProvider(model=model or "phi3:mini", url=url or _OLLAMA_URL, timeout=timeout)

    if provider == "huggingface":
        token = os.environ.get(settings.get("api_key_env") or "HF_API_TOKEN")
        return HuggingFaceProvider(model=model or "Qwen/Qwen3-32B", token=token, timeout=timeout)

    raise ConfigError(f"Unknown AI provider '{provider}'")


def client_from_config(settings: dict | None = None) -> CategorizationClient:
    settings = settings or {}
    return CategorizationClient(
        provider=get_provider(settings),
        timeout=float(settings.get("timeout", DEFAULT_TIMEOUT)),
    )
