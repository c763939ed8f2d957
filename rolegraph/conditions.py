# -*- coding: utf-8 -*-
"""
Permission Conditions

A closed tagged union of the condition operators a permission (and the
matrix entry derived from it) may carry, evaluated against the typed
context map a caller passes to ``has_permission``:

    - Equals{value}         context[attr] == value
    - InSet{values}         context[attr] in values
    - Range{min?, max?}     min <= context[attr] <= max (inclusive bounds)

Raw inputs are coerced on the way in so hosts can keep writing the
familiar ``{"dept": "ops"}`` shape: scalars become ``Equals`` and
lists/sets/tuples become ``InSet``.

Example:
    >>> conds = coerce_conditions({"dept": "ops", "shift": [1, 2]})
    >>> evaluate_conditions(conds, {"dept": "ops", "shift": 2})
    True
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    model_validator,
)

logger = logging.getLogger(__name__)

Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]
Bound = Union[StrictInt, StrictFloat, StrictStr]


# =============================================================================
# Operators
# =============================================================================


class Equals(BaseModel):
    """Attribute must equal ``value``."""
    op: Literal["equals"] = "equals"
    value: Scalar


class InSet(BaseModel):
    """Attribute must be one of ``values``."""
    op: Literal["in"] = "in"
    values: List[Scalar] = Field(default_factory=list)


class Range(BaseModel):
    """Attribute must lie within the inclusive ``[min, max]`` interval."""
    op: Literal["range"] = "range"
    min: Optional[Bound] = None
    max: Optional[Bound] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "Range":
        if self.min is None and self.max is None:
            raise ValueError("range condition needs at least one bound")
        if self.min is not None and self.max is not None:
            try:
                if self.min > self.max:  # type: ignore[operator]
                    raise ValueError("range min must not exceed max")
            except TypeError:
                raise ValueError("range bounds must be comparable")
        return self


Condition = Annotated[Union[Equals, InSet, Range], Field(discriminator="op")]
ConditionMap = Dict[str, Condition]

_condition_map_adapter: TypeAdapter[Dict[str, Any]] = TypeAdapter(ConditionMap)


# =============================================================================
# Coercion
# =============================================================================


def _coerce_one(raw: Any) -> Any:
    if isinstance(raw, (Equals, InSet, Range)):
        return raw.model_dump()
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, (list, tuple, set, frozenset)):
        return {"op": "in", "values": list(raw)}
    return {"op": "equals", "value": raw}


def normalize_conditions(raw: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Rewrite raw condition values into their tagged-dict form (unvalidated)."""
    if not raw:
        return {}
    return {str(key): _coerce_one(value) for key, value in raw.items()}


def coerce_conditions(raw: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Normalize a raw condition mapping into typed condition models.

    Args:
        raw: Mapping of attribute name to a condition model, a tagged dict
            (``{"op": "range", "min": 1}``), a list of allowed values, or a
            scalar.

    Returns:
        Dict of attribute name to Equals/InSet/Range.

    Raises:
        pydantic.ValidationError: If a value cannot be coerced.
    """
    return _condition_map_adapter.validate_python(normalize_conditions(raw))


# =============================================================================
# Evaluation
# =============================================================================


def evaluate(condition: Any, actual: Any) -> bool:
    """Evaluate one condition against the context value for its attribute.

    Unknown condition types and incomparable values evaluate to False.
    """
    try:
        if isinstance(condition, Equals):
            return actual == condition.value
        if isinstance(condition, InSet):
            return actual in condition.values
        if isinstance(condition, Range):
            if condition.min is not None and actual < condition.min:
                return False
            if condition.max is not None and actual > condition.max:
                return False
            return True
    except TypeError as exc:
        logger.warning("Error evaluating condition %r: %s", condition, exc)
        return False

    logger.warning("Unsupported condition type: %s", type(condition).__name__)
    return False


def evaluate_conditions(
    conditions: Optional[Mapping[str, Any]],
    context: Optional[Mapping[str, Any]],
) -> bool:
    """Check that every condition holds for ``context``.

    An attribute missing from the context fails its condition, so a
    conditional grant checked without context is denied.

    Args:
        conditions: Attribute name to condition model.
        context: Caller supplied attribute values.

    Returns:
        True if there are no conditions or all of them hold.
    """
    if not conditions:
        return True
    context = context or {}
    for attribute, condition in conditions.items():
        if attribute not in context:
            return False
        if not evaluate(condition, context[attribute]):
            return False
    return True


__all__ = [
    "Equals",
    "InSet",
    "Range",
    "Condition",
    "ConditionMap",
    "normalize_conditions",
    "coerce_conditions",
    "evaluate",
    "evaluate_conditions",
]
