"""
Rule-set validation for form snapshots.

A form declares one or more named RuleSchemas (e.g. client info, signatures).
Each schema is evaluated independently by the rule interpreter; the per-field
results are merged last-write-wins in declared schema order.

Validation Policy:
==================
- Validation never raises for a wrongly typed value; the field gets a
  generic "Invalid value" message instead.
- One message per field per schema (the first failing rule).
- Multi-page forms validate a page by keeping only the rules that target a
  field on that page. Rules whose targets are not on any page always apply.
- Every declared field present in the snapshot is shape checked (type and
  options), whether or not a rule targets it.
- Hidden fields are exempt from presence rules. Non-blank hidden values are
  still format/bound checked. Set validate_hidden_required=True to make
  presence rules ignore visibility.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from investor_forms.rules import check_shape, run_rules
from investor_forms.schema import FormSchema


@dataclass
class ValidationResult:
    """Container for validation results: field id -> first error message."""
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field_id: str, message: str):
        """Add a validation error unless the field already has one."""
        self.errors.setdefault(field_id, message)

    def get_error(self, field_id: str) -> Optional[str]:
        return self.errors.get(field_id)

    def errors_for(self, field_ids: Iterable[str]) -> Dict[str, str]:
        """Errors restricted to the given fields."""
        wanted = set(field_ids)
        return {field_id: message for field_id, message in self.errors.items() if field_id in wanted}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        return {
            'ok': self.is_valid,
            'errors': dict(self.errors),
        }


@dataclass(frozen=True)
class RuleSchema:
    """A named block of rules validated as a unit."""
    name: str
    rules: Tuple[Any, ...]


class RuleSet:
    """The complete validation rules of one form type."""

    def __init__(
        self,
        schemas: Iterable[RuleSchema],
        form_schema: FormSchema,
        visibility: Optional[Callable[[str, Mapping[str, Any]], bool]] = None,
        validate_hidden_required: bool = False,
    ):
        self.schemas = tuple(schemas)
        self.form_schema = form_schema
        self.visibility = visibility
        self.validate_hidden_required = validate_hidden_required

    def _in_scope(self, rule: Any, page: Optional[int]) -> bool:
        if page is None:
            return True
        pages = {self.form_schema.page_of(field_id) for field_id in rule.targets}
        pages.discard(None)
        return not pages or page in pages

    def rules_for(self, rule_schema: RuleSchema, page: Optional[int] = None) -> List[Any]:
        return [rule for rule in rule_schema.rules if self._in_scope(rule, page)]

    def shape_errors(self, snapshot: Mapping[str, Any], page: Optional[int] = None) -> Dict[str, str]:
        """Type and option errors of the declared fields present in the snapshot."""
        errors = {}
        for field_id in self.form_schema.field_ids(page):
            descriptor = self.form_schema.descriptor(field_id)
            message = check_shape(descriptor.type, descriptor.options, snapshot.get(field_id))
            if message:
                errors[field_id] = message
        return errors

    def validate(self, snapshot: Mapping[str, Any], page: Optional[int] = None) -> ValidationResult:
        """
        Validate a snapshot against every rule schema.

        Args:
            snapshot: Field id -> value mapping
            page: Restrict to the rules of one page; None validates the whole form

        Returns:
            ValidationResult with at most one message per field
        """
        is_visible = None
        if self.visibility is not None:
            def is_visible(field_id: str) -> bool:
                return self.visibility(field_id, snapshot)

        errors = self.shape_errors(snapshot, page)
        for rule_schema in self.schemas:
            rules = self.rules_for(rule_schema, page)
            if not rules:
                continue
            errors.update(run_rules(
                rules,
                snapshot,
                schema=self.form_schema,
                is_visible=is_visible,
                validate_hidden_required=self.validate_hidden_required,
            ))
        return ValidationResult(errors)
