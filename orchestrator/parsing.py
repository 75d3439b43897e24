"""
Response Grammar - Strict parsing of model output

Every place the orchestrator asks a model for a decision (routing, intent,
ReAct) goes through this module. A response is accepted when it is:

1. a bare JSON value, or
2. a JSON value inside a single Markdown code fence, or
3. text containing one outermost ``{...}`` / ``[...]`` slice that is valid JSON.

Anything else raises ResponseParseError. The router additionally accepts
plain identifier text, handled in ``parse_route_choice`` and
``parse_route_choices``.
"""

import json
import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from agents.shared.errors import ResponseParseError

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n(.*?)\n?```$", re.DOTALL)
_IDENTIFIER_SPLIT = re.compile(r"[,\n]")
_STRIP_CHARS = " \t\r\n\"'`.*-:;"


def extract_json(text: str, expect: str = "object") -> Any:
    """
    Extract a JSON value from model output.

    Args:
        text: Raw model output
        expect: "object" or "array", selects which brackets to slice on

    Returns:
        Decoded JSON value

    Raises:
        ResponseParseError: If no JSON value can be decoded
    """
    if text is None:
        raise ResponseParseError("Empty model response", raw=text)

    stripped = text.strip()
    if not stripped:
        raise ResponseParseError("Empty model response", raw=text)

    fence = _FENCE_PATTERN.match(stripped)
    if fence:
        stripped = fence.group(1).strip()

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    open_char, close_char = ("{", "}") if expect == "object" else ("[", "]")
    start = stripped.find(open_char)
    end = stripped.rfind(close_char)
    if start < 0 or end <= start:
        raise ResponseParseError(f"No JSON {expect} found in model response", raw=text)

    try:
        return json.loads(stripped[start:end + 1])
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Invalid JSON in model response: {e}", raw=text) from e


def normalize_identifier(value: str) -> str:
    """Casefold, collapse whitespace and strip quotes/punctuation"""
    return " ".join(value.strip(_STRIP_CHARS).split()).casefold()


# ============================================
# Router Grammar
# ============================================

class RouteChoice(BaseModel):
    """One routing choice as written by the model"""
    target: str
    reason: str = ""
    confidence: float = 0.0
    task: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0.0
        return value


def parse_route_choice(text: str) -> RouteChoice:
    """
    Parse a single-agent routing answer.

    Accepts ``{"target": ..., "reason": ..., "confidence": ...}`` or a bare
    identifier on its own (confidence 1.0). A JSON object without a
    confidence counts as 0.0.
    """
    if text is None or not text.strip():
        raise ResponseParseError("Empty routing response", raw=text)

    if "{" not in text:
        lines = [line for line in text.strip().splitlines() if line.strip()]
        if len(lines) != 1:
            raise ResponseParseError("Routing response must name exactly one agent", raw=text)
        return RouteChoice(target=lines[0].strip(_STRIP_CHARS), reason="llm", confidence=1.0)

    data = extract_json(text, expect="object")
    if not isinstance(data, dict):
        raise ResponseParseError("Routing response must be a JSON object", raw=text)
    try:
        return RouteChoice.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Invalid routing response: {e}", raw=text) from e


def parse_route_choices(text: str) -> List[RouteChoice]:
    """
    Parse a multi-agent routing answer.

    Accepts a JSON array of routing objects or strings, or plain identifiers
    separated by commas or newlines. Plain names count as fully confident,
    objects without a confidence as 0.0. Order is preserved; validation
    against candidates happens in the router.
    """
    if text is None or not text.strip():
        raise ResponseParseError("Empty routing response", raw=text)

    if "[" not in text and "{" not in text:
        names = [part.strip(_STRIP_CHARS) for part in _IDENTIFIER_SPLIT.split(text)]
        choices = [RouteChoice(target=name, reason="llm", confidence=1.0) for name in names if name]
        if not choices:
            raise ResponseParseError("Routing response names no agents", raw=text)
        return choices

    data = extract_json(text, expect="array")
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ResponseParseError("Multi-agent routing response must be a JSON array", raw=text)

    choices = []
    for item in data:
        try:
            if isinstance(item, str):
                choices.append(RouteChoice(target=item, reason="llm", confidence=1.0))
            else:
                choices.append(RouteChoice.model_validate(item))
        except ValidationError as e:
            raise ResponseParseError(f"Invalid routing entry {item!r}: {e}", raw=text) from e
    return choices


# ============================================
# Intent Grammar
# ============================================

class IntentDecision(BaseModel):
    use_tools: bool
    reason: str = ""


def parse_intent(text: str) -> IntentDecision:
    data = extract_json(text, expect="object")
    try:
        return IntentDecision.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Invalid intent response: {e}", raw=text) from e


# ============================================
# ReAct Grammar
# ============================================

class ActionInput(BaseModel):
    tool_name: Optional[str] = None
    parameters: Dict[str, Any] = {}


class ReActDecision(BaseModel):
    """A single THINKING-state decision"""
    thought: str = ""
    action: Literal["tool_call", "final_answer"]
    action_input: Optional[ActionInput] = None
    answer: Optional[str] = None

    @model_validator(mode="after")
    def _check_action(self):
        if self.action == "tool_call":
            if self.action_input is None or not (self.action_input.tool_name or "").strip():
                raise ValueError("tool_call requires action_input.tool_name")
        elif not (self.answer or "").strip():
            raise ValueError("final_answer requires a non-empty answer")
        return self


def parse_react_decision(text: str) -> ReActDecision:
    """
    Parse one ReAct decision.

    Raises:
        ResponseParseError: On malformed JSON or a decision that breaks the grammar
    """
    data = extract_json(text, expect="object")
    if not isinstance(data, dict):
        raise ResponseParseError("ReAct decision must be a JSON object", raw=text)
    try:
        return ReActDecision.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Invalid ReAct decision: {e}", raw=text) from e
