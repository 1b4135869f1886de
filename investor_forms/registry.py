"""
Form type registry.
"""

from typing import Any, Dict, Mapping, Optional

from investor_forms import accreditation_form, additional_holder_form, alt_order_form
from investor_forms.definitions import FormDefinition
from investor_forms.validation import ValidationResult


FORMS: Dict[str, FormDefinition] = {
    definition.form_type: definition
    for definition in (
        accreditation_form.DEFINITION,
        additional_holder_form.DEFINITION,
        alt_order_form.DEFINITION,
    )
}

FORM_TYPES = tuple(sorted(FORMS))


def get_form_definition(form_type: str) -> FormDefinition:
    """
    Look up a form definition by its form type slug.

    Raises:
        ValueError: If the form type is not registered
    """
    definition = FORMS.get(form_type)
    if definition is None:
        raise ValueError(f'Unknown form type: {form_type}')
    return definition


def validate_form(form_type: str, snapshot: Mapping[str, Any], page: Optional[int] = None) -> ValidationResult:
    """Validate a snapshot of the given form type, optionally one page only."""
    definition = get_form_definition(form_type)
    return definition.validate(definition.apply_derived(snapshot), page=page)
