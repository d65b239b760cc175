"""LLM response parsing utilities.

Best-effort recovery of a JSON object from free-form model output. All
heuristics stay behind ``extract_analysis_result``, which either returns a
complete ``AnalysisResult`` or raises ``ExtractionError``.
"""

import json
import re
from typing import Optional

from config.exceptions import ExtractionError
from models.novel import AnalysisResult

# Fenced block, with or without a language tag
_JSON_FENCE_RE = re.compile(r"```[\w-]*[ \t]*\n?(.*?)\n?\s*```", re.DOTALL)

# Allows raw control characters inside JSON strings; models often emit
# literal newlines instead of \n escapes.
_LENIENT_DECODER = json.JSONDecoder(strict=False)


def _try_loads(text: str):
    """Try parsing JSON, first strictly then leniently."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    return _LENIENT_DECODER.decode(text)


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first top-level ``{...}`` span, honoring JSON strings.

    Braces inside string literals (and escaped quotes) do not count. Returns
    None when no opening brace is ever closed.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unclosed from this brace; try the next opening one
        start = text.find("{", start + 1)
    return None


def parse_json_response(text: str) -> dict:
    """Extract and parse a JSON object from LLM response text.

    Attempts, in order: the whole text; the interior of the first fenced
    block; the first balanced top-level ``{...}`` span.

    Raises:
        ValueError: No attempt produced a JSON object.
    """
    text = text.strip()

    candidates = [text]
    match = _JSON_FENCE_RE.search(text)
    if match:
        candidates.append(match.group(1).strip())
    span = find_balanced_object(text)
    if span:
        candidates.append(span)

    for candidate in candidates:
        try:
            result = _try_loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result

    raise ValueError(f"Failed to parse JSON from LLM response: {text[:200]}...")


def extract_analysis_result(text: str) -> AnalysisResult:
    """Recover a complete AnalysisResult from a model response.

    Raises:
        ExtractionError: No JSON object found, or required fields missing.
    """
    try:
        data = parse_json_response(text)
    except ValueError as e:
        raise ExtractionError(str(e), raw_response=text) from e
    try:
        return AnalysisResult.from_dict(data)
    except ValueError as e:
        raise ExtractionError(str(e), raw_response=text) from e
