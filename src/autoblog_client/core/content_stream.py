"""Text extraction and accumulation for content-chunk streams."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_KEY_LABEL = re.compile(r"^(?:title|subtitle|content)\s*:?\s*$", re.IGNORECASE)
_BODY_FIELDS = re.compile(r"^(?:content|text|body)$", re.IGNORECASE)
_JSON_STRUCTURE_ONLY = re.compile(r'^[\s\[\]{}:,"\\`]+$')
_CONTENT_KEY_VALUE = re.compile(r'"content"\s*:\s*"((?:[^"\\]|\\.)*)"')
_FENCE = "```"


def _first_string(data: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str):
            return value
    return None


def strip_code_fences(text: str) -> str:
    """Unwrap a payload wrapped in markdown code fences (```json ... ```)."""
    trimmed = text.strip()
    if not trimmed.startswith(_FENCE):
        return text
    body = trimmed[len(_FENCE) :]
    newline = body.find("\n")
    body = body if newline == -1 else body[newline + 1 :]
    close = body.find(_FENCE)
    return (body if close == -1 else body[:close]).strip()


def _content_from_json_text(text: str) -> str | None:
    """Pull displayable text out of a JSON-looking string; None when it is not JSON."""
    unfenced = strip_code_fences(text).strip()
    if not unfenced.startswith(("{", "[")):
        return None
    try:
        parsed = json.loads(unfenced)
    except json.JSONDecodeError:
        match = _CONTENT_KEY_VALUE.search(unfenced)
        return match.group(1).replace('\\"', '"') if match else ""
    if isinstance(parsed, dict):
        found = _first_string(parsed, "content", "text", "delta", "message")
        return found if found is not None else ""
    return ""


def _is_appendable(chunk: str) -> bool:
    if not chunk:
        return False
    if not chunk.strip():
        return True
    return not _JSON_STRUCTURE_ONLY.match(chunk.strip())


def extract_chunk_text(data: Any) -> str:
    """Return the text a content-chunk event contributes, or an empty string."""
    if data is None:
        return ""
    if isinstance(data, str):
        if _KEY_LABEL.match(data.strip()):
            return ""
        from_json = _content_from_json_text(data)
        return data if from_json is None else from_json
    if not isinstance(data, dict):
        return ""
    field_name = data.get("field")
    if isinstance(field_name, str) and field_name.strip():
        if not _BODY_FIELDS.match(field_name.strip()):
            return ""
    content = _first_string(data, "content", "text", "delta")
    if content is None and isinstance(data.get("blogPost"), dict):
        content = _first_string(data["blogPost"], "content")
    if content:
        if _KEY_LABEL.match(content.strip()):
            return ""
        from_json = _content_from_json_text(content)
        out = content if from_json is None else from_json
        return out if _is_appendable(out) else ""
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("content"), str):
            return str(delta["content"])
    return ""


def extract_complete_text(data: Any) -> str | None:
    """Return the final text carried by a complete event, or None when it has none."""
    if data is None:
        return None
    if isinstance(data, str):
        content: str | None = data
    elif isinstance(data, dict):
        content = _first_string(data, "content", "text", "overview")
        for nested_key in ("blogPost", "result", "data"):
            if content is not None:
                break
            nested = data.get(nested_key)
            if isinstance(nested, str) and nested_key != "data":
                content = nested
            elif isinstance(nested, dict):
                content = _first_string(nested, "content")
    else:
        return None
    if content is None:
        return None
    from_json = _content_from_json_text(content)
    if from_json is not None:
        return from_json
    if content.strip().startswith(_FENCE):
        return strip_code_fences(content)
    return content


@dataclass
class ContentAccumulator:
    """Builds the displayed text of one content stream."""

    content: str = ""

    def append_chunk(self, data: Any) -> str:
        chunk = extract_chunk_text(data)
        if chunk:
            self.content += chunk
        return chunk

    def complete(self, data: Any) -> str:
        final = extract_complete_text(data)
        if final is not None:
            self.content = final
        return self.content
