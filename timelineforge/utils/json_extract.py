import json
import re
from typing import Optional

_FENCED_JSON = re.compile(r"```json\n?([\s\S]*?)\n?```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: Optional[str]) -> Optional[dict]:
    """
    Pull a JSON object out of an LLM reply.

    Models often wrap JSON in a ```json fence or surround it with prose;
    the fenced block wins, otherwise the outermost {...} span is tried.
    Returns None when nothing parses to a dict.
    """
    if not text:
        return None

    match = _FENCED_JSON.search(text)
    candidate = match.group(1) if match else None
    if candidate is None:
        match = _BARE_OBJECT.search(text)
        candidate = match.group(0) if match else None
    if candidate is None:
        return None

    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None

    return parsed if isinstance(parsed, dict) else None
