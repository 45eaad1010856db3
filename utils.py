import abc
import json
import re
from typing import Any, Dict, Mapping, Optional, Union

import marko
import marko.block
import yaml

# Seat numbers are short; longer digit runs are noise and never converted
_INT_PATTERN = re.compile(r"(?<!\d)\d{1,6}(?!\d)")
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


# Base class for objects that can be rebuilt from their JSON dict form
class Deserializable(abc.ABC):

    @classmethod
    @abc.abstractmethod
    def from_json(cls, data: Dict[Any, Any]):
        pass


# Returns the body of the first fenced code block, or the stripped text if there is none
def strip_code_fences(text) -> str:
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    try:
        document = marko.parse(text)
    except RecursionError:
        return text.strip()
    for element in document.children:
        if isinstance(element, marko.block.FencedCode):
            return "".join(
                child.children for child in element.children
                if isinstance(child.children, str)
            ).strip()
    return text.strip()


def parse_json(text: Union[str, Mapping, None]) -> Optional[Dict[str, Any]]:
    """Best-effort parse of a model response into a dict.

    A mapping is taken as is. Text is tried as JSON (fenced block or
    whole text), then the outermost {...} span embedded in prose, then
    YAML, which tolerates single quotes and unquoted keys.
    """
    if not text:
        return None
    if isinstance(text, Mapping):
        return dict(text)
    candidate = strip_code_fences(text)
    match = _OBJECT_PATTERN.search(candidate)
    attempts = [(json.loads, candidate)]
    if match:
        attempts.append((json.loads, match.group(0)))
    attempts.append((yaml.safe_load, candidate))
    for loader, source in attempts:
        try:
            result = loader(source)
        except (ValueError, RecursionError, yaml.YAMLError):
            continue
        if isinstance(result, dict):
            return result
    return None


def _coerce_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        match = _INT_PATTERN.search(value)
        if match:
            return int(match.group(0))
    return None


def extract_seat(text: Union[str, Mapping, None], keys=("seat", "target")) -> Optional[int]:
    """Extracts a 0-indexed seat from a response that names a 1-indexed seat.

    Structured responses (or a mapping returned by the source) are read
    field by field in `keys` order; anything else falls back to the first
    short integer in the text. The result is not range-checked: "0" comes
    back as -1 and is rejected by validation.
    """
    if not text:
        return None
    result = parse_json(text)
    if result:
        for key in keys:
            seat = _coerce_int(result.get(key))
            if seat is not None:
                return seat - 1
    match = _INT_PATTERN.search(strip_code_fences(text))
    if match:
        return int(match.group(0)) - 1
    return None
