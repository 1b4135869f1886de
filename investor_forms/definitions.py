"""
FormDefinition: everything the engine needs to know about one form type.

Also holds the signature-block rules and transforms shared by the
accreditation and alt order forms.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from investor_forms.dependencies import RequirementResolver, VisibilityResolver, detect_joint_owner
from investor_forms.rules import AllOrNone, Condition, Custom, Format, Length, Required, date_not_future
from investor_forms.schema import FormSchema
from investor_forms.utils import to_camel_case, to_display_date, to_iso_timestamp
from investor_forms.validation import RuleSet, ValidationResult


Snapshot = Dict[str, Any]


@dataclass(frozen=True)
class FormDefinition:
    """
    Static bundle of schema, rules, resolvers and transforms for a form type.

    page_keys maps each page to the backend keys that page persists. Forms
    without page_keys persist the whole backend shape on every save.
    derive recomputes derived fields (e.g. has_joint_owner) after each edit.
    """
    form_type: str
    schema: FormSchema
    rule_set: RuleSet
    is_visible: VisibilityResolver
    get_requirement: RequirementResolver
    to_backend: Callable[[Mapping[str, Any]], Dict[str, Any]]
    from_backend: Callable[[Mapping[str, Any]], Snapshot]
    page_keys: Optional[Mapping[int, Tuple[str, ...]]] = None
    derive: Optional[Callable[[Mapping[str, Any]], Snapshot]] = None

    @property
    def title(self) -> str:
        return self.schema.title

    @property
    def pages(self) -> Tuple[int, ...]:
        return self.schema.pages

    @property
    def total_pages(self) -> int:
        return self.schema.total_pages

    @property
    def is_multi_page(self) -> bool:
        return self.schema.is_multi_page

    def has_page(self, page: int) -> bool:
        return page in self.schema.pages

    def validate(self, snapshot: Mapping[str, Any], page: Optional[int] = None) -> ValidationResult:
        return self.rule_set.validate(snapshot, page=page)

    def apply_derived(self, snapshot: Mapping[str, Any]) -> Snapshot:
        """Return a new snapshot with derived fields recomputed."""
        if self.derive is None:
            return dict(snapshot)
        return self.derive(snapshot)

    def page_payload(self, snapshot: Mapping[str, Any], page: int) -> Dict[str, Any]:
        """Backend payload for one page's save."""
        payload = self.to_backend(snapshot)
        if not self.page_keys:
            return payload
        keys = self.page_keys.get(page, ())
        return {key: payload[key] for key in keys if key in payload}


# Shared signature handling

SIGNATURE_PARTS = ('signature', 'printed_name', 'date')
JOINT_OWNER_PREFIX = 'joint_account_owner'
HAS_JOINT_OWNER = Condition('has_joint_owner', 'checked')


def signature_rules(prefix: str, role: str) -> Tuple[Any, ...]:
    """
    Rules for one signature block: length/date checks plus completeness.

    The joint account owner block is required whenever the form has a joint
    owner; every other block is all-or-nothing.
    """
    fields = tuple(f'{prefix}_{part}' for part in SIGNATURE_PARTS)
    rules: List[Any] = [
        Length(f'{prefix}_signature', 10, 500, 'Signature'),
        Length(f'{prefix}_printed_name', 1, 120, 'Printed name'),
        Format(f'{prefix}_date', 'date'),
        Custom(f'{prefix}_date', date_not_future, 'Date cannot be in the future'),
    ]
    if prefix == JOINT_OWNER_PREFIX:
        message = f'All {role} signature fields must be completed'
        rules.extend(Required(field_id, message, when=HAS_JOINT_OWNER) for field_id in fields)
    else:
        rules.append(AllOrNone(fields, f'All {role} signature fields must be completed together'))
    return tuple(rules)


def derive_joint_owner(snapshot: Mapping[str, Any]) -> Snapshot:
    """Recompute has_joint_owner from customer_names."""
    derived = dict(snapshot)
    derived['has_joint_owner'] = detect_joint_owner(snapshot.get('customer_names'))
    return derived


def signatures_to_backend(snapshot: Mapping[str, Any], prefixes: Iterable[str]) -> Dict[str, Any]:
    payload = {}
    for prefix in prefixes:
        payload[to_camel_case(f'{prefix}_signature')] = snapshot.get(f'{prefix}_signature')
        payload[to_camel_case(f'{prefix}_printed_name')] = snapshot.get(f'{prefix}_printed_name')
        payload[to_camel_case(f'{prefix}_date')] = to_iso_timestamp(snapshot.get(f'{prefix}_date'))
    return payload


def signatures_from_backend(record: Mapping[str, Any], prefixes: Iterable[str]) -> Snapshot:
    snapshot = {}
    for prefix in prefixes:
        snapshot[f'{prefix}_signature'] = record.get(to_camel_case(f'{prefix}_signature'))
        snapshot[f'{prefix}_printed_name'] = record.get(to_camel_case(f'{prefix}_printed_name'))
        snapshot[f'{prefix}_date'] = to_display_date(record.get(to_camel_case(f'{prefix}_date')))
    return snapshot
