"""Best-effort recovery of a JSON array from raw model output.

The model regularly wraps its answer in code fences or prose and emits math
notation such as ``\\(x^2\\)`` with single backslashes, which is not valid
JSON. Recovery runs an ordered list of repair steps over the sliced array
text, trying a strict parse after each one:

1. ``as_is``: no change.
2. ``escape_invalid_backslashes``: double any backslash that does not start
   a legal JSON escape, or that starts a LaTeX command such as ``\\frac``,
   ``\\beta`` or ``\\theta`` whose first letter JSON would read as an escape.
3. ``escape_all_backslashes``: double every backslash except the ones
   escaping a double quote or already doubled.

A parse is not accepted while another step remains if it decoded such a
command into a control character.

If all three fail, ``SanitizerError`` is raised with the failing offset.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^```[\w-]*\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")

# LaTeX commands whose first letter would otherwise read as a JSON escape.
_LATEX_NT_COMMANDS = (
    "nabla", "ne", "neg", "neq", "ngeq", "ni", "nleq", "not", "notin", "nu",
    "tan", "tanh", "tau", "text", "textbf", "textit", "tfrac", "theta", "therefore",
    "tilde", "times", "to", "top", "triangle",
)
_LATEX_LOOKALIKE = r"[bfr](?=[A-Za-z])|(?:" + "|".join(_LATEX_NT_COMMANDS) + r")(?![A-Za-z])"

# A doubled backslash, a LaTeX command, a legal escape, or a lone backslash.
_INVALID_ESCAPE_RE = re.compile(
    r"\\\\|\\(?=" + _LATEX_LOOKALIKE + r')|\\(["\\/bfnrt]|u[0-9a-fA-F]{4})|\\'
)
# Control characters other than tab and newline.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0b-\x1f]")
_ANY_BACKSLASH_RE = re.compile(r'\\\\|\\"|\\')


class SanitizerError(ValueError):
    """Raised when no repair step yields a parseable JSON array."""

    def __init__(self, message: str, offset: int = 0):
        super().__init__(f"{message} (offset {offset})")
        self.offset = offset


def strip_code_fence(raw: str) -> str:
    s = raw.strip()
    if s.startswith("```"):
        s = _FENCE_OPEN_RE.sub("", s)
        s = _FENCE_CLOSE_RE.sub("", s)
    return s.strip()


def slice_array(text: str) -> str:
    """Cut text down to the span between the first '[' and the last ']'."""
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise SanitizerError("No JSON array found in model output", offset=max(start, 0))
    return text[start : end + 1]


def escape_invalid_backslashes(text: str) -> str:
    def _fix(match: re.Match) -> str:
        token = match.group(0)
        if token == "\\\\" or match.group(1):
            return token
        return "\\\\"

    return _INVALID_ESCAPE_RE.sub(_fix, text)


def escape_all_backslashes(text: str) -> str:
    def _fix(match: re.Match) -> str:
        token = match.group(0)
        if token in ("\\\\", '\\"'):
            return token
        return "\\\\"

    return _ANY_BACKSLASH_RE.sub(_fix, text)


def _has_control_chars(value: Any) -> bool:
    if isinstance(value, str):
        return _CONTROL_CHAR_RE.search(value) is not None
    if isinstance(value, list):
        return any(_has_control_chars(v) for v in value)
    if isinstance(value, dict):
        return any(_has_control_chars(v) for v in value.values())
    return False


def _decoded_suspect(name: str, text: str, parsed: Any) -> bool:
    """A parse that decoded LaTeX such as \\frac or \\theta into control characters."""
    if name == "as_is" and escape_invalid_backslashes(text) != text:
        return True
    return _has_control_chars(parsed)


RepairStep = tuple[str, Callable[[str], str]]

REPAIR_STEPS: list[RepairStep] = [
    ("as_is", lambda text: text),
    ("escape_invalid_backslashes", escape_invalid_backslashes),
    ("escape_all_backslashes", escape_all_backslashes),
]


def sanitize_json_array(raw: str, steps: list[RepairStep] | None = None) -> list[Any]:
    """Return the parsed array from raw model output, or raise SanitizerError."""
    text = slice_array(strip_code_fence(raw or ""))
    last_error: json.JSONDecodeError | None = None
    ordered = steps or REPAIR_STEPS
    fallback: list[Any] | None = None
    for index, (name, repair) in enumerate(ordered):
        candidate = repair(text)
        try:
            # strict=False tolerates raw newlines/tabs inside strings
            parsed = json.loads(candidate, strict=False)
        except json.JSONDecodeError as e:
            last_error = e
            logger.debug("Repair step %s failed at offset %d: %s", name, e.pos, e.msg)
            continue
        if not isinstance(parsed, list):
            raise SanitizerError("Model output is not a JSON array", offset=0)
        if index < len(ordered) - 1 and _decoded_suspect(name, candidate, parsed):
            logger.debug("Repair step %s parsed but left escape residue, trying next step", name)
            if fallback is None:
                fallback = parsed
            continue
        if name != "as_is":
            logger.info("Recovered model output with repair step %s", name)
        return parsed
    if fallback is not None:
        return fallback
    offset = last_error.pos if last_error else 0
    msg = last_error.msg if last_error else "Unparseable output"
    raise SanitizerError(f"Could not parse model output after repairs: {msg}", offset=offset)
