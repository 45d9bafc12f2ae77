"""
Turn raw model text into a validated ``NutritionAnalysisResult``.

This is the only place raw provider output is interpreted. Models wrap JSON
in prose or markdown fences, return numbers as strings with units, and
sometimes report negative or non-finite values; all of that is absorbed here.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from snapmeal_api.models.nutrition import FoodItemBreakdown, NutritionAnalysisResult

logger = logging.getLogger(__name__)

MACRO_FIELDS = ("calories", "protein", "carbs", "fat", "fiber")
FOOD_NAME_KEYS = ("foodName", "food_name")
ITEM_NAME_KEYS = ("foodName", "food_name", "name")
ITEM_LIST_KEYS = ("items", "foods")

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)")


@dataclass(frozen=True)
class ParsedOk:
    result: NutritionAnalysisResult


@dataclass(frozen=True)
class ParsedError:
    reason: str


ParseOutcome = ParsedOk | ParsedError


def extract_json_object(text: str) -> dict[str, Any] | None:
    """First well-formed JSON object in ``text``, ignoring surrounding prose."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def coerce_number(value: Any) -> float:
    """
    Best-effort non-negative float.

    Numbers and numeric strings (``"12 g"``) are accepted; booleans, NaN,
    infinities, negatives and anything unparseable become 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            match = _LEADING_NUMBER.match(value)
            if match is None:
                return 0.0
            number = float(match.group(1))
        else:
            return 0.0
    except (OverflowError, ValueError):
        return 0.0

    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def sanitize_confidence(value: Any) -> float | None:
    """Clamp to [0, 1] and round to 2 decimals; None if absent or not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match is None:
            return None
        value = match.group(1)
    try:
        number = float(value)
    except (OverflowError, TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return round(min(max(number, 0.0), 1.0), 2)


def _first_name(data: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _macros(data: dict[str, Any]) -> dict[str, int]:
    return {field: round_half_up(coerce_number(data.get(field))) for field in MACRO_FIELDS}


def _item_list(data: dict[str, Any]) -> list[Any] | None:
    for key in ITEM_LIST_KEYS:
        value = data.get(key)
        if isinstance(value, list) and value:
            return value
    return None


def normalize_response(raw_text: str) -> ParseOutcome:
    """
    Parse and normalize a model's raw answer.

    Returns:
        ParsedOk with the result, or ParsedError with a short reason
    """
    if not raw_text or not raw_text.strip():
        return ParsedError("empty response")

    data = extract_json_object(raw_text)
    if data is None:
        return ParsedError("no JSON object found in response")

    confidence = sanitize_confidence(data.get("confidence"))
    raw_items = _item_list(data)

    if raw_items is not None:
        items: list[FoodItemBreakdown] = []
        for index, raw_item in enumerate(raw_items):
            if not isinstance(raw_item, dict):
                return ParsedError(f"item {index} is not an object")
            name = _first_name(raw_item, ITEM_NAME_KEYS)
            if name is None:
                return ParsedError(f"item {index} is missing foodName")
            items.append(FoodItemBreakdown(food_name=name, **_macros(raw_item)))

        # Totals come from the rounded items, never from the model's own sums
        totals = {field: sum(getattr(item, field) for item in items) for field in MACRO_FIELDS}
        food_name = _first_name(data, FOOD_NAME_KEYS) or ", ".join(i.food_name for i in items)
        result = NutritionAnalysisResult(
            food_name=food_name,
            items=tuple(items),
            confidence=confidence,
            **totals,
        )
        logger.debug(f"Normalized multi-food result with {len(items)} items")
        return ParsedOk(result)

    food_name = _first_name(data, FOOD_NAME_KEYS)
    if food_name is None:
        return ParsedError("missing foodName")

    return ParsedOk(
        NutritionAnalysisResult(
            food_name=food_name,
            confidence=confidence,
            **_macros(data),
        )
    )
