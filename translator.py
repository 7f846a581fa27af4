"""
Translation between OpenAI chat completion payloads and the chatjimmy chat API.

Everything here is pure: no network, no environment access. The proxy core
feeds it parsed JSON and Settings and gets back pydantic models.
"""

import json
import logging
import math
import re
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from config import DEFAULT_MODEL, DEFAULT_TOP_K, Settings
from errors import ProxyError
from models import (
    ChatMessage,
    ChunkChoice,
    CompletionChoice,
    CompletionMessage,
    CompletionUsage,
    OpenAIChatCompletionChunk,
    OpenAIChatCompletionResponse,
    UpstreamChatOptions,
    UpstreamRequest,
)

logger = logging.getLogger(__name__)

# <|stats|> is checked first, only the first matching block is removed
STATS_PATTERNS = (
    re.compile(r"<\|stats\|>(.*?)<\|/stats\|>", re.DOTALL),
    re.compile(r"<stats>(.*?)</stats>", re.DOTALL),
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def to_json_text(value: Any) -> str:
    """Compact JSON rendering used for bodies, SSE frames and flattened content."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not valid JSON")


def _finite_float(token: str) -> float:
    value = float(token)
    if not math.isfinite(value):
        raise ValueError(f"{token} is out of range")
    return value


def loads_json(text: Any) -> Any:
    """
    Strict JSON parsing: NaN, Infinity and overflowing numbers are rejected.
    Raises ValueError (JSONDecodeError and UnicodeDecodeError included).
    """
    return json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)


def parse_int(value: Any) -> Optional[int]:
    """Parses the leading integer of a value ("12abc" -> 12, 3.7 -> 3), None if there is none."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def safe_int(value: Any, fallback: int = 0) -> int:
    parsed = parse_int(value)
    return fallback if parsed is None else parsed


def parse_top_k(value: Any) -> int:
    parsed = parse_int(value)
    if parsed is not None and parsed > 0:
        return parsed
    return DEFAULT_TOP_K


def flatten_content(content: Any) -> str:
    """
    Flattens an OpenAI message `content` field into plain text.

    Strings pass through. Lists are joined with newlines, taking each part's
    `text` when present. Objects yield their `text` or `content` string.
    Anything unrecognised is rendered as JSON.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and isinstance(item.get("text"), str):
                parts.append(item["text"])
            elif isinstance(item, str):
                parts.append(item)
            else:
                parts.append(to_json_text(item))
        return "\n".join(parts)
    if isinstance(content, dict):
        if isinstance(content.get("text"), str):
            return content["text"]
        if isinstance(content.get("content"), str):
            return content["content"]
    return to_json_text(content)


def resolve_model(payload: Dict[str, Any], chat_options: Dict[str, Any], settings: Settings) -> str:
    candidates = (
        payload.get("model"),
        chat_options.get("selectedModel"),
        settings.CHATJIMMY_MODEL,
        DEFAULT_MODEL,
    )
    for candidate in candidates:
        if not candidate:
            continue
        model = candidate if isinstance(candidate, str) else to_json_text(candidate)
        model = model.strip()
        if model:
            return model
    return DEFAULT_MODEL


def resolve_top_k(payload: Dict[str, Any], chat_options: Dict[str, Any], settings: Settings) -> int:
    for candidate in (
        payload.get("top_k"),
        payload.get("topK"),
        chat_options.get("topK"),
        settings.CHATJIMMY_TOP_K,
    ):
        if candidate is not None:
            return parse_top_k(candidate)
    return DEFAULT_TOP_K


def convert_messages(raw_messages: List[Any]) -> Tuple[List[str], List[ChatMessage]]:
    """Splits inbound messages into system prompt parts and forwarded messages."""
    system_parts: List[str] = []
    converted: List[ChatMessage] = []
    for msg in raw_messages:
        if not isinstance(msg, dict):
            continue
        role = str(msg.get("role") or "user")
        content = flatten_content(msg.get("content"))
        if role == "system":
            if content:
                system_parts.append(content)
            continue
        converted.append(ChatMessage(role=role, content=content))
    return system_parts, converted


def build_upstream_request(payload: Any, settings: Settings) -> UpstreamRequest:
    """Maps a parsed OpenAI chat completion body onto a chatjimmy request."""
    raw_messages = payload.get("messages") if isinstance(payload, dict) else None
    if not isinstance(raw_messages, list) or not raw_messages:
        raise ProxyError("messages must be a non-empty array", 400)

    chat_options = payload.get("chatOptions")
    if not isinstance(chat_options, dict):
        chat_options = {}

    model = resolve_model(payload, chat_options, settings)
    top_k = resolve_top_k(payload, chat_options, settings)

    system_parts, messages = convert_messages(raw_messages)
    if not messages:
        raise ProxyError("no valid non-system messages found", 400)

    system_prompt = "\n".join(system_parts).strip()
    if not system_prompt:
        fallback = chat_options.get("systemPrompt")
        system_prompt = str(fallback) if fallback else ""

    logger.debug(
        f"Mapped {len(raw_messages)} inbound messages to {len(messages)} upstream messages "
        f"(model={model}, topK={top_k}, system prompt length={len(system_prompt)})"
    )
    return UpstreamRequest(
        messages=messages,
        chatOptions=UpstreamChatOptions(selectedModel=model, systemPrompt=system_prompt, topK=top_k),
    )


def extract_text_and_stats(raw_text: str) -> Tuple[str, Any]:
    """Separates the answer text from an embedded stats block."""
    stats_raw = ""
    text = raw_text
    for pattern in STATS_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        stats_raw = (match.group(1) or "").strip()
        text = pattern.sub("", text, count=1).strip()
        break

    if not stats_raw:
        return text.strip(), {}

    try:
        stats = loads_json(stats_raw)
    except ValueError:
        logger.warning(f"Upstream stats block is not valid JSON, passing it through raw: {stats_raw[:100]}")
        stats = {"raw": stats_raw}
    return text.strip(), stats


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def build_completion(model: str, text: str, stats: Any) -> OpenAIChatCompletionResponse:
    """Builds an OpenAI chat completion from the upstream answer and its stats."""
    counters = stats if isinstance(stats, dict) else {}
    prompt_tokens = safe_int(counters.get("prefill_tokens"))
    completion_tokens = safe_int(counters.get("decode_tokens"))
    total_tokens = safe_int(counters.get("total_tokens"), prompt_tokens + completion_tokens)
    return OpenAIChatCompletionResponse(
        id=new_completion_id(),
        created=int(time.time()),
        model=model,
        choices=[CompletionChoice(message=CompletionMessage(content=text))],
        usage=CompletionUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        ),
        chatjimmy_stats=stats,
    )


def build_stream_events(completion: OpenAIChatCompletionResponse) -> List[str]:
    """
    Renders a finished completion as OpenAI SSE frames: one content chunk,
    one empty stop chunk, then the [DONE] sentinel.
    """
    content = completion.choices[0].message.content if completion.choices else ""
    first = OpenAIChatCompletionChunk(
        id=completion.id,
        created=completion.created,
        model=completion.model,
        choices=[ChunkChoice(delta={"role": "assistant", "content": content or ""}, finish_reason=None)],
    )
    last = OpenAIChatCompletionChunk(
        id=completion.id,
        created=completion.created,
        model=completion.model,
        choices=[ChunkChoice(delta={}, finish_reason="stop")],
    )
    return [
        f"data: {to_json_text(first.model_dump())}\n\n",
        f"data: {to_json_text(last.model_dump())}\n\n",
        "data: [DONE]\n\n",
    ]
