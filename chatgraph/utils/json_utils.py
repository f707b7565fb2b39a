"""
JSON and text utilities for LLM responses and JSON-lines records.
"""

import json
from typing import Any, Dict


def clean_code_fences(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Response text without surrounding ``` markers
    """
    response = response.strip()

    if response.startswith('```'):
        # Drop the fence together with an optional language tag
        newline = response.find('\n')
        response = response[newline + 1:] if newline != -1 else response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def to_json_line(record: Dict[str, Any]) -> str:
    """Serialize a record as a single JSON line, keeping non-ASCII text readable."""
    return json.dumps(record, ensure_ascii=False, separators=(',', ':')) + '\n'
