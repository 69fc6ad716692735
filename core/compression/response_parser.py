"""
Tolerant parsing of LLM compression responses.

Model output is untyped text. Parsing happens in two stages:

1. sanitize: drop ``<think>`` blocks, unwrap fenced code blocks and locate the
   first well-formed JSON object in whatever text remains;
2. validate: check the object carries the required fields and a known
   file type.

Neither stage raises; both report through a ``ParseResult``.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dao.models.file import FileType

REQUIRED_FIELDS = ("filename", "file_type", "description")
VALID_FILE_TYPES = {file_type.value for file_type in FileType}

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_UNCLOSED_THINK = re.compile(r"^.*?</think>", re.DOTALL | re.IGNORECASE)
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass
class ParseResult:
    """Outcome of parsing one response: a payload or an error code with reason."""

    ok: bool
    payload: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, payload: Dict[str, Any]) -> "ParseResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, error_code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "ParseResult":
        return cls(ok=False, error_code=error_code, reason=reason, details=details)


def _strip_reasoning(text: str) -> str:
    text = _THINK_BLOCK.sub("", text)
    # A reply can start mid-reasoning with only the closing tag present
    if "</think>" in text.lower():
        text = _UNCLOSED_THINK.sub("", text, count=1)
    return text.strip()


def _find_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first JSON object that decodes cleanly from any '{' in text."""
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    return None


def sanitize_response(raw_text: str) -> ParseResult:
    """Extract the first JSON object from raw model output."""
    text = _strip_reasoning(raw_text or "")

    candidates = [block.strip() for block in _FENCED_BLOCK.findall(text)]
    candidates.append(text)

    for candidate in candidates:
        payload = _find_json_object(candidate)
        if payload is not None:
            return ParseResult.success(payload)

    return ParseResult.failure(
        "JSON_PARSE_ERROR",
        "Failed to parse JSON from model response",
        details={
            "raw_text": raw_text,
            "attempted_json": text[:500],
        },
    )


def validate_compression_payload(payload: Dict[str, Any]) -> ParseResult:
    """Check required fields and the file type value."""
    missing = [
        name
        for name in REQUIRED_FIELDS
        if not isinstance(payload.get(name), str) or not payload[name].strip()
    ]
    if missing:
        return ParseResult.failure(
            "VALIDATION_ERROR",
            f"Missing required fields in model response: {', '.join(missing)}",
            details={"missing_fields": missing, "payload": payload},
        )

    if payload["file_type"] not in VALID_FILE_TYPES:
        return ParseResult.failure(
            "VALIDATION_ERROR",
            f"Invalid file_type in model response: {payload['file_type']}",
            details={"file_type": payload["file_type"], "valid_types": sorted(VALID_FILE_TYPES)},
        )

    return ParseResult.success(
        {name: payload[name] for name in REQUIRED_FIELDS}
    )


def parse_compression_response(raw_text: str) -> ParseResult:
    """Sanitize then validate a compression response."""
    sanitized = sanitize_response(raw_text)
    if not sanitized.ok:
        return sanitized
    return validate_compression_payload(sanitized.payload)
