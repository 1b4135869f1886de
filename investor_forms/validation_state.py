"""
Per-form-instance validation state: errors, touched fields and status.

States:
    idle -> validating -> settled

validate_field commits only the error of the field it was called for.
validate_page and validate_all replace the whole errors mapping.
set_touched and the clear_* helpers do not depend on the status.
"""

from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Set

from investor_forms.definitions import FormDefinition
from investor_forms.validation import ValidationResult


class ValidationStatus(str, Enum):
    IDLE = 'idle'
    VALIDATING = 'validating'
    SETTLED = 'settled'


class ValidationState:
    """Holds the validation errors of one form instance."""

    def __init__(self, form: FormDefinition, snapshot_provider: Callable[[], Mapping[str, Any]]):
        self.form = form
        self._snapshot_provider = snapshot_provider
        self._errors: Dict[str, str] = {}
        self._touched: Set[str] = set()
        self.status = ValidationStatus.IDLE

    @property
    def errors(self) -> Dict[str, str]:
        return dict(self._errors)

    @property
    def touched(self) -> Set[str]:
        return set(self._touched)

    @property
    def is_valid(self) -> bool:
        return not self._errors

    def get_field_error(self, field_id: str) -> Optional[str]:
        return self._errors.get(field_id)

    def has_field_error(self, field_id: str) -> bool:
        return field_id in self._errors

    def _run(self, snapshot: Mapping[str, Any], page: Optional[int] = None) -> ValidationResult:
        self.status = ValidationStatus.VALIDATING
        try:
            return self.form.validate(snapshot, page=page)
        finally:
            self.status = ValidationStatus.SETTLED

    def validate_field(self, field_id: str, value: Any) -> Optional[str]:
        """
        Validate the form with one field overridden and commit that field's error only.

        Args:
            field_id: Field being validated
            value: Value to validate it with

        Returns:
            The field's error message, or None
        """
        snapshot = dict(self._snapshot_provider())
        snapshot[field_id] = value
        result = self._run(snapshot)
        message = result.get_error(field_id)
        if message:
            self._errors[field_id] = message
        else:
            self._errors.pop(field_id, None)
        return message

    def validate_page(self, page: int) -> ValidationResult:
        result = self._run(self._snapshot_provider(), page=page)
        self._errors = dict(result.errors)
        return result

    def validate_all(self) -> ValidationResult:
        result = self._run(self._snapshot_provider())
        self._errors = dict(result.errors)
        return result

    def set_touched(self, field_id: str, touched: bool = True):
        if touched:
            self._touched.add(field_id)
        else:
            self._touched.discard(field_id)

    def is_touched(self, field_id: str) -> bool:
        return field_id in self._touched

    def clear_field_error(self, field_id: str):
        self._errors.pop(field_id, None)

    def clear_errors(self):
        self._errors = {}
        self.status = ValidationStatus.IDLE
