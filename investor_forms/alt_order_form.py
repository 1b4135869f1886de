"""
Alternative Investment Order form (one page).

Sections:
   - Customer/Account Information
   - Customer Order Information (product, PPM dates, existing positions)
   - Signatures (account owner, joint account owner, financial professional)
   - Internal Use Only (registered principal, notes, review checkboxes)
"""

from typing import Any, Dict, Mapping

from investor_forms.definitions import (
    HAS_JOINT_OWNER, JOINT_OWNER_PREFIX, FormDefinition, derive_joint_owner,
    signature_rules, signatures_from_backend, signatures_to_backend,
)
from investor_forms.dependencies import dependency, requirement_resolver, visibility_resolver
from investor_forms.rules import Condition, Custom, Format, Length, Pattern, Range, Required, date_not_future
from investor_forms.schema import (
    FormSchema, Section, checkbox, currency, date_field, group, select, signature_block, text, yes_no,
)
from investor_forms.utils import (
    compact, format_currency, format_number, parse_currency, parse_percentage,
    to_camel_case, to_display_date, to_iso_timestamp,
)
from investor_forms.validation import RuleSchema, RuleSet


FORM_TYPE = 'alt_order'

CUSTODIANS = ('First Clearing', 'Direct', 'MainStar', 'CNB', 'Kingdom Trust', 'Other')

CUSTOMER_SIGNERS = {
    'account_owner': 'Account Owner',
    JOINT_OWNER_PREFIX: 'Joint Account Owner',
    'financial_professional': 'Financial Professional',
}
INTERNAL_SIGNERS = {
    'registered_principal': 'Registered Principal',
}
SIGNERS = {**CUSTOMER_SIGNERS, **INTERNAL_SIGNERS}

TEXT_FIELDS = (
    'rr_name', 'rr_no', 'customer_names', 'qualified_account', 'qualified_account_certification_text',
    'solicited_trade', 'tax_advantage_purchase', 'custodian', 'name_of_product', 'sponsor_issuer', 'notes',
)
DATE_FIELDS = ('date_of_ppm', 'date_ppm_sent')
CURRENCY_FIELDS = (
    'proposed_principal_amount',
    'existing_illiquid_alt_positions',
    'existing_semi_liquid_alt_positions',
    'existing_tax_advantage_alt_positions',
    'total_net_worth',
    'liquid_net_worth',
)
PERCENT_FIELDS = (
    'existing_illiquid_alt_concentration',
    'existing_semi_liquid_alt_concentration',
    'existing_tax_advantage_alt_concentration',
    'total_concentration',
)
REVIEW_CHECKBOXES = (
    'reg_bi_delivery',
    'state_registration',
    'ai_insight',
    'statement_of_financial_condition',
    'suitability_received',
)

QUALIFIED_ACCOUNT = Condition('qualified_account', 'equals', 'Yes')


SCHEMA = FormSchema(
    form_id=FORM_TYPE,
    title='Alternative Investment Order',
    sections=(
        Section('customer_account_information', 'Customer/Account Information', 1, (
            text('rr_name', 'RR Name'),
            text('rr_no', 'RR No.'),
            text('customer_names', 'Customer Name(s)'),
            currency('proposed_principal_amount', 'Proposed Principal Amount'),
            yes_no(
                'qualified_account', 'Qualified Account?',
                text('qualified_account_certification_text', 'Qualified Account Certification'),
            ),
            yes_no('solicited_trade', 'Solicited Trade?'),
            yes_no('tax_advantage_purchase', 'Tax Advantage Purchase?'),
        )),
        Section('customer_order_information', 'Customer Order Information', 1, (
            select('custodian', 'Custodian', CUSTODIANS),
            text('name_of_product', 'Name of Product'),
            text('sponsor_issuer', 'Sponsor/Issuer'),
            date_field('date_of_ppm', 'Date of PPM'),
            date_field('date_ppm_sent', 'Date PPM Sent'),
            currency('existing_illiquid_alt_positions', 'Existing Illiquid Alt Positions'),
            text('existing_illiquid_alt_concentration', 'Existing Illiquid Alt Concentration (%)'),
            currency('existing_semi_liquid_alt_positions', 'Existing Semi-Liquid Alt Positions'),
            text('existing_semi_liquid_alt_concentration', 'Existing Semi-Liquid Alt Concentration (%)'),
            currency('existing_tax_advantage_alt_positions', 'Existing Tax Advantage Alt Positions'),
            text('existing_tax_advantage_alt_concentration', 'Existing Tax Advantage Alt Concentration (%)'),
            currency('total_net_worth', 'Total Net Worth'),
            currency('liquid_net_worth', 'Liquid Net Worth'),
            text('total_concentration', 'Total Concentration (%)'),
        )),
        Section('signatures', 'Signatures', 1, tuple(
            signature_block(prefix, role) for prefix, role in CUSTOMER_SIGNERS.items()
        )),
        Section('internal_use', 'Internal Use Only', 1, (
            signature_block('registered_principal', 'Registered Principal'),
            text('notes', 'Notes'),
            group('review_checklist', 'Review', *(
                checkbox(field_id, field_id.replace('_', ' ').title()) for field_id in REVIEW_CHECKBOXES
            )),
        )),
    ),
)

VISIBILITY = (
    dependency(QUALIFIED_ACCOUNT, fields=['qualified_account_certification_text']),
    dependency(HAS_JOINT_OWNER, prefixes=[f'{JOINT_OWNER_PREFIX}_']),
)

is_visible = visibility_resolver(VISIBILITY)

REQUIREMENTS = (
    dependency(
        QUALIFIED_ACCOUNT, fields=['qualified_account_certification_text'],
        message='Qualified account certification is required',
    ),
    dependency(
        HAS_JOINT_OWNER, prefixes=[f'{JOINT_OWNER_PREFIX}_'],
        exclude=[f'{JOINT_OWNER_PREFIX}_signature_block'],
        message='All Joint Account Owner signature fields must be completed',
    ),
)

ALWAYS_REQUIRED = {
    'rr_name': 'RR Name is required',
    'rr_no': 'RR No. is required',
    'customer_names': 'Customer Names(s) is required',
    'proposed_principal_amount': 'Proposed Principal Amount is required',
    'name_of_product': 'Name of Product is required',
    'sponsor_issuer': 'Sponsor/Issuer is required',
    'date_of_ppm': 'Date of PPM is required',
    'date_ppm_sent': 'Date PPM Sent is required',
}

get_requirement = requirement_resolver(REQUIREMENTS, ALWAYS_REQUIRED)


def _required(*field_ids: str) -> tuple:
    return tuple(Required(field_id, ALWAYS_REQUIRED[field_id]) for field_id in field_ids)


CUSTOMER_ACCOUNT_RULES = RuleSchema('customer_account_info', (
    *_required('rr_name', 'rr_no', 'customer_names', 'proposed_principal_amount'),
    Length('rr_name', 2, 100, 'Name'),
    Pattern('rr_name', r"[a-zA-Z\s\-']+", 'Name can only contain letters, spaces, hyphens, and apostrophes'),
    Length('rr_no', 1, 50, 'RR No.'),
    Length('customer_names', 1, 200, 'Customer name(s)'),
    Format('proposed_principal_amount', 'currency'),
    Required(
        'qualified_account_certification_text', 'Qualified account certification is required',
        when=QUALIFIED_ACCOUNT,
    ),
    Length('qualified_account_certification_text', 1, 1000, 'Certification'),
))

CUSTOMER_ORDER_RULES = RuleSchema('customer_order_info', (
    *_required('name_of_product', 'sponsor_issuer', 'date_of_ppm', 'date_ppm_sent'),
    Length('name_of_product', 1, 200, 'Name of product'),
    Length('sponsor_issuer', 1, 200, 'Sponsor/Issuer'),
    *(Format(field_id, 'date') for field_id in DATE_FIELDS),
    *(Custom(field_id, date_not_future, 'Date cannot be in the future') for field_id in DATE_FIELDS),
    *(Format(field_id, 'currency') for field_id in CURRENCY_FIELDS if field_id != 'proposed_principal_amount'),
    *(Range(field_id, 0, 100, 'Concentration must be between 0% and 100%') for field_id in PERCENT_FIELDS),
))

SIGNATURE_RULES = RuleSchema('signatures', tuple(
    rule for prefix, role in CUSTOMER_SIGNERS.items() for rule in signature_rules(prefix, role)
))

INTERNAL_USE_RULES = RuleSchema('internal_use', (
    *signature_rules('registered_principal', 'Registered Principal'),
    Length('notes', max=1000, label='Notes'),
))

RULE_SET = RuleSet(
    (CUSTOMER_ACCOUNT_RULES, CUSTOMER_ORDER_RULES, SIGNATURE_RULES, INTERNAL_USE_RULES),
    SCHEMA,
    visibility=is_visible,
)


def to_backend(snapshot: Mapping[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    for field_id in TEXT_FIELDS:
        payload[to_camel_case(field_id)] = snapshot.get(field_id)
    for field_id in DATE_FIELDS:
        payload[to_camel_case(field_id)] = to_iso_timestamp(snapshot.get(field_id))
    for field_id in CURRENCY_FIELDS:
        payload[to_camel_case(field_id)] = parse_currency(snapshot.get(field_id))
    for field_id in PERCENT_FIELDS:
        payload[to_camel_case(field_id)] = parse_percentage(snapshot.get(field_id))
    payload.update(signatures_to_backend(snapshot, SIGNERS))
    payload = compact(payload)

    payload['hasJointOwner'] = bool(snapshot.get('has_joint_owner'))
    for field_id in REVIEW_CHECKBOXES:
        payload[to_camel_case(field_id)] = snapshot.get(field_id) is True
    return payload


def from_backend(record: Mapping[str, Any]) -> Dict[str, Any]:
    snapshot: Dict[str, Any] = {}
    for field_id in TEXT_FIELDS:
        snapshot[field_id] = record.get(to_camel_case(field_id))
    for field_id in DATE_FIELDS:
        snapshot[field_id] = to_display_date(record.get(to_camel_case(field_id)))
    for field_id in CURRENCY_FIELDS:
        amount = record.get(to_camel_case(field_id))
        snapshot[field_id] = format_currency(amount) if amount is not None else None
    for field_id in PERCENT_FIELDS:
        percentage = record.get(to_camel_case(field_id))
        snapshot[field_id] = format_number(percentage) if percentage is not None else None
    snapshot.update(signatures_from_backend(record, SIGNERS))
    snapshot = {key: value for key, value in snapshot.items() if value is not None}

    snapshot['has_joint_owner'] = bool(record.get('hasJointOwner'))
    for field_id in REVIEW_CHECKBOXES:
        snapshot[field_id] = record.get(to_camel_case(field_id)) is True
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
