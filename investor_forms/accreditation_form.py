"""
Accredited Investor Certification form (one page).
"""

from typing import Any, Dict, Mapping

from investor_forms.definitions import (
    HAS_JOINT_OWNER, JOINT_OWNER_PREFIX, FormDefinition, derive_joint_owner,
    signature_rules, signatures_from_backend, signatures_to_backend,
)
from investor_forms.dependencies import dependency, requirement_resolver, visibility_resolver
from investor_forms.rules import Length, Pattern, Required
from investor_forms.schema import FormSchema, Section, content, signature_block, text
from investor_forms.utils import compact
from investor_forms.validation import RuleSchema, RuleSet


FORM_TYPE = 'accreditation'

SIGNERS = {
    'account_owner': 'Account Owner',
    JOINT_OWNER_PREFIX: 'Joint Account Owner',
    'financial_professional': 'Financial Professional',
    'registered_principal': 'Registered Principal',
}

CATEGORIES = (
    ('natural_person_income',
     'A natural person with individual income exceeding $200,000 in each of the two most recent years, '
     'or joint income with a spouse or spousal equivalent exceeding $300,000 in each of those years, '
     'with a reasonable expectation of reaching the same income level in the current year.'),
    ('natural_person_net_worth',
     'A natural person whose individual net worth, or joint net worth with a spouse or spousal '
     'equivalent, exceeds $1,000,000, excluding the value of the primary residence.'),
    ('licensed_professional',
     'A natural person holding in good standing a Series 7, Series 65 or Series 82 license.'),
    ('entity_assets',
     'A trust, corporation, partnership or LLC with total assets in excess of $5,000,000 not formed '
     'for the specific purpose of acquiring the securities offered.'),
    ('entity_owners',
     'An entity in which all of the equity owners are accredited investors.'),
)

SCHEMA = FormSchema(
    form_id=FORM_TYPE,
    title='Accredited Investor Certification',
    sections=(
        Section('client_information', 'Client Information', 1, (
            text('rr_name', 'RR Name'),
            text('rr_no', 'RR No.'),
            text('customer_names', 'Customer Name(s)'),
        )),
        Section('accreditation_categories', 'Accredited Investor Categories', 1, tuple(
            content(f'category_{category_id}', body) for category_id, body in CATEGORIES
        )),
        Section('signatures', 'Signatures', 1, tuple(
            signature_block(prefix, role) for prefix, role in SIGNERS.items()
        )),
    ),
)

VISIBILITY = (
    dependency(HAS_JOINT_OWNER, prefixes=[f'{JOINT_OWNER_PREFIX}_']),
)

is_visible = visibility_resolver(VISIBILITY)

REQUIREMENTS = (
    dependency(
        HAS_JOINT_OWNER, prefixes=[f'{JOINT_OWNER_PREFIX}_'],
        exclude=[f'{JOINT_OWNER_PREFIX}_signature_block'],
        message='All Joint Account Owner signature fields must be completed',
    ),
)

get_requirement = requirement_resolver(REQUIREMENTS, {
    'rr_name': 'RR Name is required',
    'rr_no': 'RR No. is required',
    'customer_names': 'Customer Name(s) is required',
})

CLIENT_INFO_RULES = RuleSchema('client_info', (
    Required('rr_name', 'RR Name is required'),
    Length('rr_name', 2, 100, 'Name'),
    Pattern('rr_name', r"[a-zA-Z\s\-']+", 'Name can only contain letters, spaces, hyphens, and apostrophes'),
    Required('rr_no', 'RR No. is required'),
    Length('rr_no', 1, 50, 'RR No.'),
    Required('customer_names', 'Customer Name(s) is required'),
    Length('customer_names', 1, 200, 'Customer name(s)'),
))

SIGNATURE_RULES = RuleSchema('signatures', tuple(
    rule for prefix, role in SIGNERS.items() for rule in signature_rules(prefix, role)
))

RULE_SET = RuleSet((CLIENT_INFO_RULES, SIGNATURE_RULES), SCHEMA, visibility=is_visible)


def to_backend(snapshot: Mapping[str, Any]) -> Dict[str, Any]:
    payload = {
        'rrName': snapshot.get('rr_name'),
        'rrNo': snapshot.get('rr_no'),
        'customerNames': snapshot.get('customer_names'),
        **signatures_to_backend(snapshot, SIGNERS),
    }
    payload = compact(payload)
    payload['hasJointOwner'] = bool(snapshot.get('has_joint_owner'))
    return payload


def from_backend(record: Mapping[str, Any]) -> Dict[str, Any]:
    snapshot = {
        'rr_name': record.get('rrName'),
        'rr_no': record.get('rrNo'),
        'customer_names': record.get('customerNames'),
        **signatures_from_backend(record, SIGNERS),
    }
    snapshot = {key: value for key, value in snapshot.items() if value is not None}
    snapshot['has_joint_owner'] = bool(record.get('hasJointOwner'))
    return snapshot


DEFINITION = FormDefinition(
    form_type=FORM_TYPE,
    schema=SCHEMA,
    rule_set=RULE_SET,
    is_visible=is_visible,
    get_requirement=get_requirement,
    to_backend=to_backend,
    from_backend=from_backend,
    derive=derive_joint_owner,
)
