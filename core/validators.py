"""
Input validators shared by the API and the processing pipeline.
"""
import re

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)

# File ids are always generated with uuid4
FILE_ID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def is_valid_uuid(value: str) -> bool:
    """Check for a canonical RFC 4122 UUID string (case-insensitive)."""
    return isinstance(value, str) and UUID_PATTERN.fullmatch(value) is not None


def is_valid_file_id(value: str) -> bool:
    """Check for a canonical UUID v4 string, the only form file ids take."""
    return isinstance(value, str) and FILE_ID_PATTERN.fullmatch(value) is not None
