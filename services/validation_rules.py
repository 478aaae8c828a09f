"""
Declarative field validation rules.
Each rule is evaluated against a single value plus the full value map,
and yields either None (pass) or the message to show next to the field.
"""

import inspect
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Pattern, Sequence, Tuple, Union

from core.utils_datetime import parse_date_value
from domain.enums import RuleType


# ============================================================================
# Default Messages & Patterns
# ============================================================================

DEFAULT_MESSAGES: Dict[RuleType, Union[str, Callable[[Any], str]]] = {
    RuleType.REQUIRED: "This field is required",
    RuleType.EMAIL: "Enter a valid email address",
    RuleType.MIN_LENGTH: lambda n: f"Must be at least {n} characters",
    RuleType.MAX_LENGTH: lambda n: f"Must be at most {n} characters",
    RuleType.PATTERN: "Invalid format",
    RuleType.NUMBER: "Must be a valid number",
    RuleType.PHONE: "Enter a valid phone number",
    RuleType.URL: "Enter a valid URL",
    RuleType.DATE: "Enter a valid date",
    RuleType.MATCHES: lambda other: f"Must match {other}",
    RuleType.CUSTOM: "Invalid value",
}

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')
URL_PATTERN = re.compile(
    r'^https?://[-\w.]+(?::\d+)?(?:/[\w/_.\-]*(?:\?[\w&=%.\-]*)?(?:#[\w.\-]*)?)?$'
)
WHITESPACE = re.compile(r'\s')

Predicate = Callable[..., Union[bool, str, None]]


@dataclass(frozen=True)
class ValidationRule:
    """One atomic constraint attached to a field."""
    type: RuleType
    value: Any = None  # length bound or compiled pattern
    field: Optional[str] = None  # other field for MATCHES
    validate: Optional[Predicate] = None  # predicate for CUSTOM
    message: Optional[str] = None

    def default_message(self) -> str:
        template = DEFAULT_MESSAGES[self.type]
        if callable(template):
            argument = self.field if self.type == RuleType.MATCHES else self.value
            return template(argument)
        return template

    def fail(self) -> str:
        """Message reported when this rule fails."""
        return self.message or self.default_message()


@dataclass(frozen=True)
class FieldConfig:
    """A named, validated input within a form."""
    name: str
    rules: Tuple[ValidationRule, ...] = ()
    label: Optional[str] = None
    dependencies: Tuple[str, ...] = ()

    def __post_init__(self):
        # Accept lists from callers, store tuples so configs stay immutable
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "dependencies", tuple(self.dependencies))

    def matched_fields(self) -> Tuple[str, ...]:
        """Names of other fields this field's MATCHES rules compare against."""
        return tuple(r.field for r in self.rules if r.type == RuleType.MATCHES)


# ============================================================================
# Rule Factories
# ============================================================================

def required(message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.REQUIRED, message=message)


def email(message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.EMAIL, message=message)


def min_length(n: int, message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.MIN_LENGTH, value=n, message=message)


def max_length(n: int, message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.MAX_LENGTH, value=n, message=message)


def pattern(regex: Union[str, Pattern], message: Optional[str] = None) -> ValidationRule:
    compiled = re.compile(regex) if isinstance(regex, str) else regex
    return ValidationRule(RuleType.PATTERN, value=compiled, message=message)


def number(message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.NUMBER, message=message)


def phone(message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.PHONE, message=message)


def url(message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.URL, message=message)


def date(message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.DATE, message=message)


def matches(other_field: str, message: Optional[str] = None) -> ValidationRule:
    return ValidationRule(RuleType.MATCHES, field=other_field, message=message)


def custom(predicate: Predicate, message: Optional[str] = None) -> ValidationRule:
    """
    Build a rule around a predicate.

    The predicate gets ``(value)`` or ``(value, all_values)`` depending on how
    many positional parameters it takes, and returns True to pass, False to
    fail with the rule message, or a string to fail with that string.
    """
    return ValidationRule(RuleType.CUSTOM, validate=predicate, message=message)


# ============================================================================
# Evaluation
# ============================================================================

def is_empty(value: Any) -> bool:
    """Empty for the purposes of REQUIRED: None, "" or an empty collection."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return not math.isnan(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            # Blank strings count as zero
            return True
        try:
            return not math.isnan(float(text))
        except ValueError:
            return False
    try:
        return not math.isnan(float(value))
    except (TypeError, ValueError):
        return False


def _call_predicate(predicate: Predicate, value: Any, all_values: Mapping[str, Any]):
    try:
        signature = inspect.signature(predicate)
    except (TypeError, ValueError):
        return predicate(value)

    positional = [
        p for p in signature.parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    takes_varargs = any(p.kind == p.VAR_POSITIONAL for p in signature.parameters.values())
    if takes_varargs or len(positional) >= 2:
        return predicate(value, all_values)
    return predicate(value)


def evaluate_rule(value: Any, rule: ValidationRule, all_values: Mapping[str, Any]) -> Optional[str]:
    """
    Evaluate one rule.

    Args:
        value: Current value of the field under validation
        rule: Rule to apply
        all_values: Every field's current value (for MATCHES and CUSTOM)

    Returns:
        None when the rule passes, otherwise the failure message
    """
    rule_type = rule.type

    if rule_type == RuleType.REQUIRED:
        return rule.fail() if is_empty(value) else None

    if rule_type == RuleType.CUSTOM:
        result = _call_predicate(rule.validate, value, all_values)
        if isinstance(result, str):
            return result
        return None if result else rule.fail()

    # Every remaining rule only inspects non-empty values
    if not value:
        return None

    if rule_type == RuleType.EMAIL:
        ok = isinstance(value, str) and EMAIL_PATTERN.match(value) is not None
    elif rule_type == RuleType.PHONE:
        ok = isinstance(value, str) and PHONE_PATTERN.match(WHITESPACE.sub('', value)) is not None
    elif rule_type == RuleType.URL:
        ok = isinstance(value, str) and URL_PATTERN.match(value) is not None
    elif rule_type == RuleType.MIN_LENGTH:
        # Values without a length (numbers, dates) are not length-checked
        ok = not hasattr(value, "__len__") or len(value) >= rule.value
    elif rule_type == RuleType.MAX_LENGTH:
        ok = not hasattr(value, "__len__") or len(value) <= rule.value
    elif rule_type == RuleType.PATTERN:
        ok = rule.value.search(str(value)) is not None
    elif rule_type == RuleType.NUMBER:
        ok = _is_number(value)
    elif rule_type == RuleType.DATE:
        ok = parse_date_value(value) is not None
    elif rule_type == RuleType.MATCHES:
        ok = value == all_values.get(rule.field)
    else:
        raise ValueError(f"Unknown rule type: {rule_type}")

    return None if ok else rule.fail()


def first_failure(
    value: Any,
    rules: Sequence[ValidationRule],
    all_values: Mapping[str, Any]
) -> Optional[Tuple[ValidationRule, str]]:
    """Evaluate rules in order and stop at the first one that fails."""
    for rule in rules:
        message = evaluate_rule(value, rule, all_values)
        if message is not None:
            return rule, message
    return None
