"""
Field dependency tables: which fields are shown and which are required.

Visibility and requiredness are declared in two separate tables per form
and resolved by two separate pure functions. A table is an ordered list of
FieldDependency entries; the first entry that applies to a field decides,
and a field no entry applies to is visible and not conditionally required.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from investor_forms.rules import Condition
from investor_forms.schema import FormSchema


@dataclass(frozen=True)
class FieldDependency:
    """A condition governing an explicit set of fields and/or id prefixes."""
    condition: Condition
    fields: FrozenSet[str] = frozenset()
    prefixes: Tuple[str, ...] = ()
    exclude: FrozenSet[str] = frozenset()
    message: Optional[str] = None

    def applies_to(self, field_id: str) -> bool:
        if field_id in self.exclude:
            return False
        return field_id in self.fields or any(field_id.startswith(prefix) for prefix in self.prefixes)


@dataclass(frozen=True)
class Requirement:
    """Whether a field is required right now, and the message to show if it is missing."""
    required: bool
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'required': self.required}
        if self.message:
            data['message'] = self.message
        return data


NOT_REQUIRED = Requirement(False)

VisibilityResolver = Callable[[str, Mapping[str, Any]], bool]
RequirementResolver = Callable[[str, Mapping[str, Any]], Requirement]


def dependency(
    condition: Condition,
    fields: Iterable[str] = (),
    prefixes: Iterable[str] = (),
    exclude: Iterable[str] = (),
    message: Optional[str] = None,
) -> FieldDependency:
    return FieldDependency(
        condition=condition,
        fields=frozenset(fields),
        prefixes=tuple(prefixes),
        exclude=frozenset(exclude),
        message=message,
    )


def find_dependency(table: Sequence[FieldDependency], field_id: str) -> Optional[FieldDependency]:
    """First entry in the table that applies to the field."""
    for entry in table:
        if entry.applies_to(field_id):
            return entry
    return None


def follow_up_dependencies(
    schema: FormSchema,
    messages: Optional[Mapping[str, str]] = None,
) -> Tuple[FieldDependency, ...]:
    """
    One entry per follow-up field: applies when its Yes/No parent equals 'Yes'.

    Args:
        schema: Form schema declaring conditional-yes-no fields
        messages: Optional follow-up field id -> required message

    Returns:
        Tuple of dependencies in schema declaration order
    """
    messages = messages or {}
    return tuple(
        dependency(Condition(parent, 'equals', 'Yes'), fields=[child], message=messages.get(child))
        for child, parent in schema.follow_up_parents().items()
    )


def visibility_resolver(table: Sequence[FieldDependency]) -> VisibilityResolver:
    """Build is_visible(field_id, snapshot) from a visibility table."""
    table = tuple(table)

    def is_visible(field_id: str, snapshot: Mapping[str, Any]) -> bool:
        entry = find_dependency(table, field_id)
        if entry is None:
            return True
        return entry.condition.holds(snapshot)

    return is_visible


def requirement_resolver(
    table: Sequence[FieldDependency],
    always_required: Optional[Mapping[str, str]] = None,
) -> RequirementResolver:
    """
    Build get_requirement(field_id, snapshot) from a requirement table.

    Args:
        table: Conditional requirements, first match wins
        always_required: Unconditionally required field id -> message

    Returns:
        Resolver returning a Requirement
    """
    table = tuple(table)
    always_required = dict(always_required or {})

    def get_requirement(field_id: str, snapshot: Mapping[str, Any]) -> Requirement:
        entry = find_dependency(table, field_id)
        if entry is not None:
            if entry.condition.holds(snapshot):
                return Requirement(True, entry.message or 'This field is required')
            return NOT_REQUIRED
        if field_id in always_required:
            return Requirement(True, always_required[field_id])
        return NOT_REQUIRED

    return get_requirement


def detect_joint_owner(customer_names: Any) -> bool:
    """Customer names like 'Jane and John Doe' or 'J. Doe &' imply a joint owner."""
    if not isinstance(customer_names, str):
        return False
    lowered = customer_names.strip().lower()
    if ' and ' in lowered or ' & ' in lowered:
        return True
    return lowered.endswith(' and') or lowered.endswith(' &')
