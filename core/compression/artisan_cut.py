"""
Artisan Cut compression of extracted file text.

Two sequential LLM calls: the first proposes a compressed description, the
second reviews and refines it. Both must answer with
``{"filename", "file_type", "description"}``.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import openai

from config import settings
from core.compression.response_parser import VALID_FILE_TYPES, parse_compression_response
from core.fireworks.fireworks_client import get_fireworks_client
from dao.models.file import FileType

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 100_000

PROPOSE_PROMPT = """ARTISAN CUT FOR FILES

You will receive an uploaded file (PDF, image, text, code, spreadsheet, etc.).
Describe it in the fewest words possible such that you:

- keep everything that could not be inferred back easily from fewer words;
- tightly condense everything that could be inferred back easily;
- remove everything that is noise.

Behavioral directives (HOW to act) are never inferable from role descriptions
(WHAT something is). Keep them.

Keep verbatim or near-verbatim:
- business matters: decisions, negotiations, agreements, risks, timelines
- specific data: exact numbers, percentages, amounts, dates, targets, metrics
- key entities: people, companies, products, technologies
- strategic content: thesis, insights, competitive analysis, action items
- critical decisions: what was chosen, what was rejected and why
- terminology: exact phrasing of important statements, defined terms
- tone and interaction structure: "3-expert panel debates" is not "consultation"
- emotional weight: fear, urgency, self-doubt

Condense to labels: generic descriptions, background knowledge, step-by-step
explanations not tied to decisions, verbose prose.

Drop: qualifiers ("approximately", "seems like"), grammatical filler,
meta-commentary ("This document contains..."), repetition.

Use punctuation (. , ; : -) heavily. Preserve causal chains
("log exceptions->risk score->dashboard->moat").

Per file type:
- PDF: doc type, page count, structure, thesis, critical data, decisions,
  risks, financials, action items, exact quotes. If the filename starts with
  "Google Docs-", "Google Sheets-" or "Google Slides-", open with that source.
- Text (TXT, MD, JSON, ...): purpose, concepts, procedures, config values
  (obfuscate secrets), limits, warnings, structure, terminology.
- Code: language, purpose, main components, key logic, dependencies, entry points.
- Spreadsheet: dimensions, headers, column types, notable values, purpose.
- Image: visual elements, exact text, layout, style.

Output ONLY this JSON object, nothing else:

{
  "filename": "[exact filename including extension]",
  "file_type": "[image|pdf|text|code|spreadsheet|other]",
  "description": "[artisan cut compressed description]"
}"""

REFINE_PROMPT = """Review the previous JSON output for accuracy and quality:

- filename is exact and matches the input
- file_type is one of: image|pdf|text|code|spreadsheet|other
- description preserves all non-inferable information (numbers, dates, entities, decisions)
- description applies artisan cut compression (no verbose prose, noise or qualifiers)
- description does not over-compress critical information

Refine where needed. Return ONLY the improved JSON object with this exact structure:

{
  "filename": "[exact filename including extension]",
  "file_type": "[image|pdf|text|code|spreadsheet|other]",
  "description": "[refined artisan cut compressed description]"
}"""


class FileCompressionError(Exception):
    """
    Raised when a file cannot be compressed.

    Codes: EMPTY_CONTENT, INVALID_FILE_TYPE, API_ERROR, JSON_PARSE_ERROR,
    VALIDATION_ERROR, RATE_LIMIT, UNKNOWN_ERROR.
    """

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


@dataclass
class CompressionResult:
    """Refined description plus both raw model replies."""

    filename: str
    file_type: FileType
    description: str
    propose_response: str
    refine_response: str


def _validate_input(extracted_text: str, file_type: str) -> None:
    if not extracted_text or not extracted_text.strip():
        raise FileCompressionError("Extracted text cannot be empty", "EMPTY_CONTENT")

    if len(extracted_text) > MAX_CONTENT_LENGTH:
        raise FileCompressionError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters",
            "VALIDATION_ERROR",
            {"actual_length": len(extracted_text)},
        )

    if file_type not in VALID_FILE_TYPES:
        raise FileCompressionError(
            f"Invalid file type: {file_type}",
            "INVALID_FILE_TYPE",
            {"valid_types": sorted(VALID_FILE_TYPES)},
        )


async def _call_model(system_prompt: str, user_content: str) -> str:
    """Run one completion, translating SDK failures into FileCompressionError."""
    try:
        content = await get_fireworks_client().chat_completion(system_prompt, user_content)
    except openai.RateLimitError as e:
        raise FileCompressionError(
            "Fireworks API rate limit exceeded. Please try again later.",
            "RATE_LIMIT",
            {"original_error": str(e)},
        ) from e
    except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
        raise FileCompressionError(
            "Fireworks API authentication failed",
            "API_ERROR",
            {"status": e.status_code},
        ) from e
    except openai.APIStatusError as e:
        raise FileCompressionError(
            f"Fireworks API error: {e.message}",
            "API_ERROR",
            {"status": e.status_code},
        ) from e
    except openai.APIError as e:
        raise FileCompressionError(f"Fireworks API error: {e}", "API_ERROR") from e

    if not content:
        raise FileCompressionError("Empty response from Fireworks API", "API_ERROR")
    return content


def _parse_or_raise(raw_text: str) -> Dict[str, str]:
    result = parse_compression_response(raw_text)
    if not result.ok:
        raise FileCompressionError(result.reason, result.error_code, result.details)
    return result.payload


async def compress_file(
    extracted_text: str, filename: str, file_type: Union[FileType, str]
) -> CompressionResult:
    """
    Compress extracted text into an Artisan Cut description.

    Args:
        extracted_text: Text produced by the extractor
        filename: Original filename
        file_type: One of the six file types

    Returns:
        CompressionResult with the refined description

    Raises:
        FileCompressionError: On invalid input (before any network call),
            API failures or unusable model output
    """
    file_type_value = file_type.value if isinstance(file_type, FileType) else file_type
    _validate_input(extracted_text, file_type_value)

    if not settings.FIREWORKS_API_KEY:
        raise FileCompressionError(
            "FIREWORKS_API_KEY environment variable is not set", "API_ERROR"
        )

    try:
        user_content = f"File: {filename}\nFile Type: {file_type_value}\n\n{extracted_text}"
        propose_raw = await _call_model(PROPOSE_PROMPT, user_content)
        proposal = _parse_or_raise(propose_raw)
        logger.info(f"Proposed description for {filename} ({len(proposal['description'])} chars)")

        refine_raw = await _call_model(REFINE_PROMPT, json.dumps(proposal))
        refined = _parse_or_raise(refine_raw)
        logger.info(f"Refined description for {filename} ({len(refined['description'])} chars)")
    except FileCompressionError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error compressing {filename}: {e}", exc_info=True)
        raise FileCompressionError(
            f"Unexpected error during compression: {e}", "UNKNOWN_ERROR"
        ) from e

    return CompressionResult(
        filename=refined["filename"],
        file_type=FileType(refined["file_type"]),
        description=refined["description"],
        propose_response=propose_raw,
        refine_response=refine_raw,
    )
