"""Chat-completions client for OpenAI-compatible endpoints (OpenRouter by default)."""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib import error as urllib_error
from urllib import request as urllib_request

from . import config
from .config import AppConfig
from .prompts import (
    EDIT_SYSTEM_PROMPT,
    EDIT_TOOLS_JSON,
    PLAN_SYSTEM_PROMPT,
    PLAN_TOOLS_JSON,
    edit_messages,
    plan_messages,
)
from .utils import dbg, dbg_dump


class TransportError(RuntimeError):
    """Model endpoint unreachable, non-2xx, or returned an undecodable body."""
    pass


@dataclass
class Usage:
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class ModelResponse:
    content: Optional[str] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    usage: Optional[Usage] = None

    def payload(self) -> Any:
        """What the parsers should see: structured tool calls win over text."""
        if self.tool_calls:
            return self.tool_calls
        return self.content or ""


CompleteFn = Callable[..., ModelResponse]


def _int_or_none(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _parse_response(obj: Any) -> ModelResponse:
    if not isinstance(obj, dict):
        raise TransportError("model response is not a JSON object")
    if isinstance(obj.get("error"), dict):
        msg = obj["error"].get("message") or json.dumps(obj["error"])
        raise TransportError(f"model error: {msg}")
    choices = obj.get("choices")
    if not isinstance(choices, list) or not choices:
        raise TransportError("model response has no choices")
    msg = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(msg, dict):
        raise TransportError("model response missing message")

    content = msg.get("content")
    tool_calls = msg.get("tool_calls")
    usage = None
    raw_usage = obj.get("usage")
    if isinstance(raw_usage, dict):
        usage = Usage(
            prompt_tokens=_int_or_none(raw_usage.get("prompt_tokens")),
            completion_tokens=_int_or_none(raw_usage.get("completion_tokens")),
            total_tokens=_int_or_none(raw_usage.get("total_tokens")),
        )
    return ModelResponse(
        content=content if isinstance(content, str) else None,
        tool_calls=[c for c in tool_calls if isinstance(c, dict)] if isinstance(tool_calls, list) else [],
        usage=usage,
    )


def _headers(cfg: AppConfig) -> Dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "HTTP-Referer": config.HTTP_REFERER,
        "X-Title": config.APP_TITLE,
    }
    if cfg.api_key:
        headers["Authorization"] = f"Bearer {cfg.api_key}"
    return headers


def _read_json(req: urllib_request.Request, timeout: int, label: str) -> Any:
    try:
        with urllib_request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib_error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace") if hasattr(exc, "read") else str(exc)
        raise TransportError(f"{label} HTTP {getattr(exc, 'code', '?')}: {detail[:500]}") from exc
    except (urllib_error.URLError, OSError) as exc:
        raise TransportError(f"{label} request failed: {exc}") from exc

    dbg_dump(f"{label}_response", raw)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TransportError(f"{label} returned invalid JSON: {exc}") from exc


def complete(
    cfg: AppConfig,
    system_prompt: str,
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    timeout_s: Optional[int] = None,
) -> ModelResponse:
    """POST {base_url}/chat/completions. Raises TransportError on any failure."""
    payload: Dict[str, Any] = {
        "model": cfg.model,
        "messages": [{"role": "system", "content": system_prompt}] + list(messages),
        "temperature": float(cfg.temperature),
    }
    if tools:
        payload["tools"] = tools

    url = cfg.base_url.rstrip("/") + "/chat/completions"
    body = json.dumps(payload).encode("utf-8")
    req = urllib_request.Request(url, data=body, headers=_headers(cfg), method="POST")
    dbg(f"model request: {url} model={cfg.model} messages={len(payload['messages'])} tools={bool(tools)}")
    timeout = max(1, int(timeout_s or config.GEN_TIMEOUT))
    return _parse_response(_read_json(req, timeout, "model"))


def generate_plan(cfg: AppConfig, user_prompt: str, complete: CompleteFn = complete) -> ModelResponse:
    tools = PLAN_TOOLS_JSON if config.USE_CHAT_TOOLS else None
    return complete(cfg, PLAN_SYSTEM_PROMPT, plan_messages(user_prompt), tools)


def propose_edits(
    cfg: AppConfig,
    user_prompt: str,
    context: str,
    complete: CompleteFn = complete,
) -> ModelResponse:
    tools = EDIT_TOOLS_JSON if config.USE_CHAT_TOOLS else None
    return complete(cfg, EDIT_SYSTEM_PROMPT, edit_messages(user_prompt, context), tools)


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    # USD per token, as the provider reports it
    prompt_cost: Optional[float] = None
    completion_cost: Optional[float] = None
    context_length: Optional[int] = None


def _cost(value: Any) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _model_info(item: Any) -> Optional[ModelInfo]:
    if not isinstance(item, dict) or not isinstance(item.get("id"), str) or not item["id"]:
        return None
    pricing = item.get("pricing") if isinstance(item.get("pricing"), dict) else {}
    name = item.get("name")
    return ModelInfo(
        id=item["id"],
        name=name if isinstance(name, str) and name else item["id"],
        prompt_cost=_cost(pricing.get("prompt")),
        completion_cost=_cost(pricing.get("completion")),
        context_length=_int_or_none(item.get("context_length")),
    )


def list_models(cfg: AppConfig, timeout_s: Optional[int] = None) -> List[ModelInfo]:
    """GET {base_url}/models. Raises TransportError on any failure."""
    url = cfg.base_url.rstrip("/") + "/models"
    req = urllib_request.Request(url, headers=_headers(cfg), method="GET")
    dbg(f"models request: {url}")
    timeout = max(1, int(timeout_s or config.MODELS_TIMEOUT))
    obj = _read_json(req, timeout, "models")
    data = obj.get("data") if isinstance(obj, dict) else None
    if not isinstance(data, list):
        raise TransportError("models response has no data list")
    return [m for m in (_model_info(item) for item in data) if m is not None]
