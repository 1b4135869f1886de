"""
Declarative validation rules and the interpreter that evaluates them.

Rule Kinds (evaluated in this phase order, whatever the declaration order):
==========================================================================

0. SHAPE: value matches its declared field type and options (implicit)
1. Required: field must be non-blank, optionally only when a Condition holds
2. Format: named format check (ssn, ein, phone, email, date, currency, ...)
   Pattern: value must fully match a character-class regex
3. Length: string length bounds
   Range: numeric bounds, optionally integer-only
   SingleChoice: list-valued field holds at most one entry
4. AllOrNone: a set of related fields is either all blank or all filled;
   every blank member of a partially filled set gets the message
5. Custom: predicate over (value, snapshot)

Only the first message per field is kept. Format, pattern, length, range and
custom rules skip blank values; presence is the Required rule's concern.

Conditions are {field, operator, value} triples; operators live in the
OPERATORS table so new ones are added without touching the rules that use them.

- equals: strict equality (no bool/int or int/str coercion)
- includes: list value contains the comparison value (or any of a list of them)
- checked: with no comparison value, true for `True` or "Yes". With a
  comparison value, true only for exactly that value, so
  Condition('mailing_same_as_legal', 'checked', False) holds for False alone
  and a checked box never matches it.
- filled: value is non-blank
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from investor_forms.formats import FORMAT_CHECKS
from investor_forms.schema import FieldType, FormSchema
from investor_forms.utils import is_blank, parse_date, parse_percentage


INVALID_VALUE = 'Invalid value'
INVALID_OPTION = 'Select a valid option'
REQUIRED_MESSAGE = 'This field is required'
SINGLE_CHOICE_MESSAGE = 'Select only one option'

PO_BOX_VARIANTS = ('p.o. box', 'po box', 'p.o box', 'post office box')

# Phases
SHAPE, PRESENCE, FORMAT, BOUNDS, SET, CUSTOM = range(6)


def _strict_equals(actual: Any, expected: Any) -> bool:
    """Equality without bool/int or int/str coercion."""
    return type(actual) is type(expected) and actual == expected


def _equals(actual: Any, expected: Any) -> bool:
    return _strict_equals(actual, expected)


def _includes(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, (list, tuple)):
        return False
    if isinstance(expected, (list, tuple, set, frozenset)):
        return any(item in actual for item in expected)
    return expected in actual


def _checked(actual: Any, expected: Any) -> bool:
    if expected is None:
        return actual is True or _strict_equals(actual, 'Yes')
    return _strict_equals(actual, expected)


def _filled(actual: Any, expected: Any) -> bool:
    return not is_blank(actual)


# Operator tag -> predicate(actual, expected)
OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    'equals': _equals,
    'includes': _includes,
    'checked': _checked,
    'filled': _filled,
}


@dataclass(frozen=True)
class Condition:
    """A {field, operator, value} triple evaluated against a snapshot."""
    field: str
    operator: str
    value: Any = None

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise ValueError(f'Unknown condition operator: {self.operator}')

    def holds(self, snapshot: Mapping[str, Any]) -> bool:
        return OPERATORS[self.operator](snapshot.get(self.field), self.value)


# Rule kinds

@dataclass(frozen=True)
class Required:
    field: str
    message: str = REQUIRED_MESSAGE
    when: Optional[Condition] = None
    phase = PRESENCE

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class Format:
    field: str
    format: str
    message: Optional[str] = None
    phase = FORMAT

    def __post_init__(self):
        if self.format not in FORMAT_CHECKS:
            raise ValueError(f'Unknown format: {self.format}')

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class Pattern:
    field: str
    pattern: str
    message: str
    phase = FORMAT

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class Length:
    field: str
    min: Optional[int] = None
    max: Optional[int] = None
    label: str = 'This field'
    phase = BOUNDS

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class Range:
    field: str
    min: Optional[float] = None
    max: Optional[float] = None
    message: Optional[str] = None
    integer: bool = False
    phase = BOUNDS

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class SingleChoice:
    field: str
    message: str = SINGLE_CHOICE_MESSAGE
    phase = BOUNDS

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


@dataclass(frozen=True)
class AllOrNone:
    fields: Tuple[str, ...]
    message: str
    phase = SET

    @property
    def targets(self) -> Tuple[str, ...]:
        return self.fields


@dataclass(frozen=True)
class Custom:
    field: str
    predicate: Callable[[Any, Mapping[str, Any]], bool]
    message: str
    phase = CUSTOM

    @property
    def targets(self) -> Tuple[str, ...]:
        return (self.field,)


# Custom predicates

def date_in_past(value: Any, snapshot: Mapping[str, Any]) -> bool:
    """Date strictly before today."""
    parsed = parse_date(value)
    return parsed is not None and parsed < date.today()


def date_not_future(value: Any, snapshot: Mapping[str, Any]) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed <= date.today()


def date_not_past(value: Any, snapshot: Mapping[str, Any]) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed >= date.today()


def not_po_box(value: Any, snapshot: Mapping[str, Any]) -> bool:
    """Address line does not contain a P.O. Box variant (case-insensitive)."""
    lowered = value.lower()
    return not any(variant in lowered for variant in PO_BOX_VARIANTS)


@dataclass(frozen=True)
class DateAfter:
    """Predicate: date strictly after the date held in another field."""
    other_field: str

    def __call__(self, value: Any, snapshot: Mapping[str, Any]) -> bool:
        other = parse_date(snapshot.get(self.other_field))
        if other is None:
            return True
        parsed = parse_date(value)
        return parsed is not None and parsed > other


# Interpreter

@dataclass(frozen=True)
class RuleContext:
    snapshot: Mapping[str, Any]
    is_visible: Callable[[str], bool]
    validate_hidden_required: bool = False

    def value(self, field_id: str) -> Any:
        return self.snapshot.get(field_id)


Issue = Tuple[str, str]


def _eval_required(rule: Required, ctx: RuleContext) -> Iterable[Issue]:
    if rule.when is not None and not rule.when.holds(ctx.snapshot):
        return
    if not ctx.validate_hidden_required and not ctx.is_visible(rule.field):
        return
    if is_blank(ctx.value(rule.field)):
        yield rule.field, rule.message


def _eval_format(rule: Format, ctx: RuleContext) -> Iterable[Issue]:
    value = ctx.value(rule.field)
    if is_blank(value):
        return
    message = FORMAT_CHECKS[rule.format](value)
    if message:
        yield rule.field, rule.message or message


def _eval_pattern(rule: Pattern, ctx: RuleContext) -> Iterable[Issue]:
    value = ctx.value(rule.field)
    if is_blank(value):
        return
    if not re.fullmatch(rule.pattern, value.strip()):
        yield rule.field, rule.message


def _eval_length(rule: Length, ctx: RuleContext) -> Iterable[Issue]:
    value = ctx.value(rule.field)
    if is_blank(value):
        return
    length = len(value.strip())
    if rule.min is not None and length < rule.min:
        yield rule.field, f'{rule.label} must be at least {rule.min} characters'
    elif rule.max is not None and length > rule.max:
        yield rule.field, f'{rule.label} must be no more than {rule.max} characters'


def _eval_range(rule: Range, ctx: RuleContext) -> Iterable[Issue]:
    value = ctx.value(rule.field)
    if is_blank(value):
        return
    message = rule.message or f'Must be between {rule.min} and {rule.max}'
    number = parse_percentage(value)
    if number is None or (rule.integer and not number.is_integer()):
        yield rule.field, message
    elif rule.min is not None and number < rule.min:
        yield rule.field, message
    elif rule.max is not None and number > rule.max:
        yield rule.field, message


def _eval_single_choice(rule: SingleChoice, ctx: RuleContext) -> Iterable[Issue]:
    value = ctx.value(rule.field)
    if isinstance(value, (list, tuple)) and len(value) > 1:
        yield rule.field, rule.message


def _eval_all_or_none(rule: AllOrNone, ctx: RuleContext) -> Iterable[Issue]:
    blanks = [field_id for field_id in rule.fields if is_blank(ctx.value(field_id))]
    if blanks and len(blanks) < len(rule.fields):
        for field_id in blanks:
            yield field_id, rule.message


def _eval_custom(rule: Custom, ctx: RuleContext) -> Iterable[Issue]:
    value = ctx.value(rule.field)
    if is_blank(value):
        return
    if not rule.predicate(value, ctx.snapshot):
        yield rule.field, rule.message


# Rule kind -> handler
RULE_HANDLERS: Dict[type, Callable[[Any, RuleContext], Iterable[Issue]]] = {
    Required: _eval_required,
    Format: _eval_format,
    Pattern: _eval_pattern,
    Length: _eval_length,
    Range: _eval_range,
    SingleChoice: _eval_single_choice,
    AllOrNone: _eval_all_or_none,
    Custom: _eval_custom,
}

# Errors a handler may hit on a wrongly typed value
EVALUATION_ERRORS = (TypeError, ValueError, AttributeError, KeyError, IndexError, ArithmeticError)


def check_shape(field_type: FieldType, options: Tuple[str, ...], value: Any) -> Optional[str]:
    """
    Check a value against its declared field type.

    Returns:
        An error message, or None if the value has the right shape (or is absent)
    """
    if value is None:
        return None

    if field_type in (FieldType.TEXT, FieldType.DATE, FieldType.SIGNATURE):
        return None if isinstance(value, str) else INVALID_VALUE

    if field_type in (FieldType.SELECT, FieldType.CONDITIONAL_YES_NO):
        if not isinstance(value, str):
            return INVALID_VALUE
        if value and options and value not in options:
            return INVALID_OPTION
        return None

    if field_type == FieldType.CURRENCY:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return INVALID_VALUE
        return None

    if field_type == FieldType.MULTICHECK:
        if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
            return INVALID_VALUE
        if options and any(item not in options for item in value):
            return INVALID_OPTION
        return None

    if field_type == FieldType.RANGE_CURRENCY:
        if not isinstance(value, dict) or set(value) - {'from', 'to'}:
            return INVALID_VALUE
        for end in value.values():
            if end is not None and (isinstance(end, bool) or not isinstance(end, (str, int, float))):
                return INVALID_VALUE
        return None

    if field_type == FieldType.CHECKBOX:
        return None if isinstance(value, bool) else INVALID_VALUE

    return None


def run_rules(
    rules: Iterable[Any],
    snapshot: Mapping[str, Any],
    schema: Optional[FormSchema] = None,
    is_visible: Optional[Callable[[str], bool]] = None,
    validate_hidden_required: bool = False,
) -> Dict[str, str]:
    """
    Evaluate a rule list against a snapshot.

    Args:
        rules: Rule instances of any registered kind
        snapshot: Field id -> value mapping
        schema: Form schema used for shape checks of targeted fields
        is_visible: Visibility resolver bound to the snapshot
        validate_hidden_required: Apply presence rules to hidden fields too

    Returns:
        Mapping of field id -> first error message
    """
    ctx = RuleContext(
        snapshot=snapshot,
        is_visible=is_visible or (lambda field_id: True),
        validate_hidden_required=validate_hidden_required,
    )
    ordered = sorted(rules, key=lambda rule: rule.phase)
    errors: Dict[str, str] = {}

    if schema is not None:
        for rule in ordered:
            for field_id in rule.targets:
                descriptor = schema.descriptor(field_id)
                if descriptor is None or field_id in errors:
                    continue
                message = check_shape(descriptor.type, descriptor.options, snapshot.get(field_id))
                if message:
                    errors[field_id] = message

    for rule in ordered:
        handler = RULE_HANDLERS[type(rule)]
        try:
            issues: List[Issue] = list(handler(rule, ctx))
        except EVALUATION_ERRORS:
            issues = [(field_id, INVALID_VALUE) for field_id in rule.targets]
        for field_id, message in issues:
            errors.setdefault(field_id, message)

    return errors
