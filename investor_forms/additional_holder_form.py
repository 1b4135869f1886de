"""
Additional Account Holder form (two pages).

Page 1 - Additional Holder Information
   - Identity: name required; SSN required and shown for a Person, EIN for an Entity
   - Date of birth strictly in the past
   - Legal address (no P.O. Box), mailing address when different from legal
   - Employment details shown and partly required when Employed/Self-Employed
   - Investment knowledge, first six investment types

Page 2 - Continuation and Signature
   - Remaining investment knowledge, "other" label when an other level is chosen
   - Income / net worth ranges, tax bracket
   - Up to two government IDs, each all-or-nothing, expiration after issue
   - Affiliation Yes/No questions with follow-ups required on "Yes"
   - Signature, printed name and date required

Backend shape: addresses[] keyed by addressType, phones[] keyed by phoneType,
investmentKnowledge[] keyed by investmentType, governmentIds[] (at most 2).
"""

from typing import Any, Dict, List, Mapping, Optional

from investor_forms.definitions import FormDefinition
from investor_forms.dependencies import (
    dependency, follow_up_dependencies, requirement_resolver, visibility_resolver
)
from investor_forms.formats import normalize_ein, normalize_phone, normalize_ssn
from investor_forms.rules import (
    AllOrNone, Condition, Custom, DateAfter, Format, Length, Pattern, Range,
    Required, SingleChoice, date_in_past, date_not_future, date_not_past, not_po_box,
)
from investor_forms.schema import (
    FieldDescriptor, FieldType, FormSchema, Section,
    address_block, checkbox, date_field, group, multicheck, text, yes_no,
)
from investor_forms.utils import (
    compact, first_item, format_currency, format_number, parse_currency,
    parse_int, to_camel_case, to_display_date, to_iso_timestamp,
)
from investor_forms.validation import RuleSchema, RuleSet


FORM_TYPE = 'additional_holder'

PERSON_ENTITY = ('Person', 'Entity')
GENDERS = ('Male', 'Female')
MARITAL_STATUSES = ('Single', 'Married', 'Divorced', 'Domestic_Partner', 'Widow_er')
EMPLOYMENT_STATUSES = ('Employed', 'Self-Employed', 'Retired', 'Unemployed', 'Student')
EMPLOYED_STATUSES = ['Employed', 'Self-Employed']
KNOWLEDGE_LEVELS = ('Limited', 'Moderate', 'Extensive', 'None')

# Display label -> backend enum
TAX_BRACKETS = {
    '≤15%': 'zero_to_15',
    '15% - 32%': 'fifteen_1_to_32',
    '33% - 50%': 'thirtytwo_1_to_50',
    '> 50% +': 'fifty_1_plus',
}
TAX_BRACKET_LABELS = {value: label for label, value in TAX_BRACKETS.items()}

# Field prefix -> backend investmentType enum, per page
PAGE_1_INVESTMENTS = {
    'commodities_futures': 'commodities_futures',
    'equities': 'equities',
    'exchange_traded_funds': 'etf',
    'fixed_annuities': 'fixed_annuities',
    'fixed_insurance': 'fixed_insurance',
    'mutual_funds': 'mutual_funds',
}
PAGE_2_INVESTMENTS = {
    'options': 'options',
    'precious_metals': 'precious_metals',
    'real_estate': 'real_estate',
    'unit_investment_trusts': 'unit_investment_trusts',
    'variable_annuities': 'variable_annuities',
    'leveraged_inverse_etfs': 'leveraged_inverse_etfs',
    'complex_products': 'complex_products',
    'alternative_investments': 'alternative_investments',
    'other_investments': 'other',
}
INVESTMENT_TYPES = {**PAGE_1_INVESTMENTS, **PAGE_2_INVESTMENTS}

ADDRESS_PARTS = ('address_line', 'city', 'state_province', 'zip_postal_code', 'country')
PHONE_TYPES = {'home_phone': 'home', 'business_phone': 'business', 'mobile_phone': 'mobile'}
GOV_ID_PARTS = ('type', 'number', 'country_of_issue', 'date_of_issue', 'date_of_expiration')
GOV_ID_KEYS = {
    'type': 'type',
    'number': 'idNumber',
    'country_of_issue': 'countryOfIssue',
    'date_of_issue': 'dateOfIssue',
    'date_of_expiration': 'dateOfExpiration',
}
RANGE_FIELDS = ('annual_income', 'net_worth', 'liquid_net_worth')

PAGE_1_TEXT = (
    'account_registration', 'rr_name', 'name', 'holder_participant_role', 'email',
    'position_held', 'primary_citizenship', 'additional_citizenship',
    'occupation', 'type_of_business', 'employer_name',
)
PAGE_1_CHOICES = ('person_entity', 'gender', 'marital_status', 'employment_status', 'overall_level')
PAGE_2_TEXT = (
    'employee_of_this_broker_dealer', 'related_to_employee_at_this_broker_dealer',
    'employee_name', 'relationship', 'employee_of_another_broker_dealer', 'broker_dealer_name',
    'related_to_employee_at_another_broker_dealer', 'broker_dealer_name_2', 'employee_name_2',
    'relationship_2', 'maintaining_other_brokerage_accounts', 'with_what_firms',
    'affiliated_with_exchange_or_finra', 'what_is_the_affiliation',
    'senior_officer_director_shareholder', 'company_names', 'signature', 'printed_name',
)

NAME_PATTERN = r"[a-zA-Z\s\-']+"
PLACE_PATTERN = r"[a-zA-Z\s\-']+"
STATE_PATTERN = r"[a-zA-Z\s\-]+"
OCCUPATION_PATTERN = r"[a-zA-Z0-9\s\-'.,&()]+"
BUSINESS_NAME_PATTERN = r"[a-zA-Z0-9\s\-'.,&()/]+"
ID_NUMBER_PATTERN = r"[a-zA-Z0-9\-\s]+"


def _knowledge_fields(prefix: str, label: str) -> List[FieldDescriptor]:
    return [
        multicheck(f'{prefix}_knowledge', label, KNOWLEDGE_LEVELS),
        text(f'{prefix}_since_year', 'Since Year'),
    ]


def _gov_id(n: int) -> FieldDescriptor:
    return group(
        f'gov_id_{n}', f'Government ID #{n}',
        text(f'gov_id_{n}_type', 'ID Type'),
        text(f'gov_id_{n}_number', 'ID Number'),
        text(f'gov_id_{n}_country_of_issue', 'Country of Issue'),
        date_field(f'gov_id_{n}_date_of_issue', 'Date of Issue'),
        date_field(f'gov_id_{n}_date_of_expiration', 'Date of Expiration'),
    )


def _range(field_id: str, label: str) -> FieldDescriptor:
    return FieldDescriptor(field_id, FieldType.RANGE_CURRENCY, label)


SCHEMA = FormSchema(
    form_id=FORM_TYPE,
    title='Additional Account Holder',
    sections=(
        Section('holder_information', 'Additional Holder Information', 1, (
            text('account_registration', 'Account Registration'),
            text('rr_name', 'RR Name'),
            text('name', 'Name'),
            multicheck('person_entity', 'Person/Entity', PERSON_ENTITY),
            text('ssn', 'SSN'),
            text('ein', 'EIN'),
            text('holder_participant_role', 'Holder/Participant Role'),
            text('email', 'Email'),
            date_field('dob', 'Date of Birth'),
            text('position_held', 'Position Held'),
            text('home_phone', 'Home Phone'),
            text('business_phone', 'Business Phone'),
            text('mobile_phone', 'Mobile Phone'),
        )),
        Section('legal_address', 'Legal Address', 1, (
            address_block('legal', 'Legal Address'),
        )),
        Section('mailing_address', 'Mailing Address', 1, (
            checkbox('mailing_same_as_legal', 'Mailing address same as legal address'),
            address_block('mailing', 'Mailing Address'),
        )),
        Section('personal_information', 'Personal Information', 1, (
            text('primary_citizenship', 'Primary Citizenship'),
            text('additional_citizenship', 'Additional Citizenship'),
            multicheck('gender', 'Gender', GENDERS),
            multicheck('marital_status', 'Marital Status', MARITAL_STATUSES),
        )),
        Section('employment', 'Employment', 1, (
            multicheck('employment_status', 'Employment Status', EMPLOYMENT_STATUSES),
            group(
                'employment_details', 'Employment Details',
                text('occupation', 'Occupation'),
                text('years_employed', 'Years Employed'),
                text('type_of_business', 'Type of Business'),
                text('employer_name', 'Employer Name'),
                address_block('employer', 'Employer Address'),
            ),
        )),
        Section('investment_knowledge', 'Investment Knowledge', 1, tuple(
            [multicheck('overall_level', 'Overall Level', KNOWLEDGE_LEVELS)]
            + _knowledge_fields('commodities_futures', 'Commodities, Futures')
            + _knowledge_fields('equities', 'Equities')
            + _knowledge_fields('exchange_traded_funds', 'Exchange Traded Funds')
            + _knowledge_fields('fixed_annuities', 'Fixed Annuities')
            + _knowledge_fields('fixed_insurance', 'Fixed Insurance')
            + _knowledge_fields('mutual_funds', 'Mutual Funds')
        )),
        Section('investment_knowledge_continued', 'Investment Knowledge (continued)', 2, tuple(
            _knowledge_fields('options', 'Options')
            + _knowledge_fields('precious_metals', 'Precious Metals')
            + _knowledge_fields('real_estate', 'Real Estate')
            + _knowledge_fields('unit_investment_trusts', 'Unit Investment Trusts')
            + _knowledge_fields('variable_annuities', 'Variable Annuities')
            + _knowledge_fields('leveraged_inverse_etfs', 'Leveraged/Inverse ETFs')
            + _knowledge_fields('complex_products', 'Complex Products')
            + _knowledge_fields('alternative_investments', 'Alternative Investments')
            + _knowledge_fields('other_investments', 'Other')
            + [text('other_investments_label', 'Other - specify')]
        )),
        Section('financial_information', 'Financial Information', 2, (
            _range('annual_income', 'Annual Income'),
            _range('net_worth', 'Net Worth (excluding primary residence)'),
            _range('liquid_net_worth', 'Liquid Net Worth'),
            multicheck('tax_bracket', 'Tax Bracket', tuple(TAX_BRACKETS)),
        )),
        Section('government_ids', 'Government Identification', 2, (
            _gov_id(1),
            _gov_id(2),
        )),
        Section('affiliations', 'Employment/Affiliation Questions', 2, (
            yes_no('employee_of_this_broker_dealer', 'Employee of this Broker-Dealer?'),
            yes_no(
                'related_to_employee_at_this_broker_dealer',
                'Related to an employee at this Broker-Dealer?',
                text('employee_name', 'Employee Name'),
                text('relationship', 'Relationship'),
            ),
            yes_no(
                'employee_of_another_broker_dealer',
                'Employee of another Broker-Dealer?',
                text('broker_dealer_name', 'Broker-Dealer Name'),
            ),
            yes_no(
                'related_to_employee_at_another_broker_dealer',
                'Related to an employee at another Broker-Dealer?',
                text('broker_dealer_name_2', 'Broker-Dealer Name'),
                text('employee_name_2', 'Employee Name'),
                text('relationship_2', 'Relationship'),
            ),
            yes_no(
                'maintaining_other_brokerage_accounts',
                'Maintaining other brokerage accounts?',
                text('with_what_firms', 'With what firms?'),
                text('years_of_investment_experience', 'Years of Investment Experience'),
            ),
            yes_no(
                'affiliated_with_exchange_or_finra',
                'Affiliated with an exchange or FINRA?',
                text('what_is_the_affiliation', 'What is the affiliation?'),
            ),
            yes_no(
                'senior_officer_director_shareholder',
                'Senior officer, director or 10% shareholder of a public company?',
                text('company_names', 'Company Name(s)'),
            ),
        )),
        Section('signature', 'Signature', 2, (
            FieldDescriptor('signature', FieldType.SIGNATURE, 'Signature'),
            text('printed_name', 'Printed Name'),
            date_field('date', 'Date'),
        )),
    ),
)


# Visibility

FOLLOW_UP_MESSAGES = {
    'employee_name': 'Employee Name is required',
    'relationship': 'Relationship is required',
    'broker_dealer_name': 'Broker Dealer Name is required',
    'broker_dealer_name_2': 'Broker Dealer Name is required',
    'employee_name_2': 'Employee Name is required',
    'relationship_2': 'Relationship is required',
    'with_what_firms': 'Firm name(s) are required',
    'years_of_investment_experience': 'Years of Investment Experience is required',
    'what_is_the_affiliation': 'Affiliation details are required',
    'company_names': 'Company Name(s) are required',
}

EMPLOYMENT_DETAIL_FIELDS = ('employment_details', 'occupation', 'years_employed', 'type_of_business', 'employer_name')

VISIBILITY = (
    dependency(Condition('person_entity', 'includes', 'Person'), fields=['ssn']),
    dependency(Condition('person_entity', 'includes', 'Entity'), fields=['ein']),
    dependency(
        Condition('mailing_same_as_legal', 'checked', False),
        prefixes=['mailing_'], exclude=['mailing_same_as_legal'],
    ),
    dependency(
        Condition('employment_status', 'includes', EMPLOYED_STATUSES),
        fields=EMPLOYMENT_DETAIL_FIELDS, prefixes=['employer_'],
    ),
) + follow_up_dependencies(SCHEMA) + (
    dependency(Condition('other_investments_knowledge', 'filled'), fields=['other_investments_label']),
)

is_visible = visibility_resolver(VISIBILITY)


# Requirement

REQUIREMENTS = (
    dependency(
        Condition('person_entity', 'includes', 'Person'), fields=['ssn'],
        message='SSN is required when Person is selected',
    ),
    dependency(
        Condition('person_entity', 'includes', 'Entity'), fields=['ein'],
        message='EIN is required when Entity is selected',
    ),
    dependency(
        Condition('mailing_same_as_legal', 'checked', False), fields=['mailing_address_line'],
        message='Mailing address is required when different from legal address',
    ),
    dependency(
        Condition('employment_status', 'includes', EMPLOYED_STATUSES), fields=['occupation'],
        message='Occupation is required when Employed or Self-Employed is selected',
    ),
    dependency(
        Condition('employment_status', 'includes', EMPLOYED_STATUSES), fields=['employer_name'],
        message='Employer Name is required when Employed or Self-Employed is selected',
    ),
) + follow_up_dependencies(SCHEMA, FOLLOW_UP_MESSAGES) + (
    dependency(
        Condition('other_investments_knowledge', 'filled'), fields=['other_investments_label'],
        message='Please specify the other investment type',
    ),
)

ALWAYS_REQUIRED = {
    'name': 'This field is required',
    'signature': 'Signature is required',
    'printed_name': 'This field is required',
    'date': 'This field is required',
}

get_requirement = requirement_resolver(REQUIREMENTS, ALWAYS_REQUIRED)


# Validation rules

def _text_rules(field_id: str, label: str, min_length: int = 2, max_length: int = 200,
                pattern: Optional[str] = None, pattern_message: str = '') -> tuple:
    rules = [Length(field_id, min_length, max_length, label)]
    if pattern:
        rules.append(Pattern(field_id, pattern, pattern_message))
    return tuple(rules)


def _address_rules(prefix: str, no_po_box: bool = False) -> tuple:
    rules = (
        _text_rules(f'{prefix}_address_line', 'Address')
        + _text_rules(f'{prefix}_city', 'City', max_length=100, pattern=PLACE_PATTERN,
                      pattern_message='City can only contain letters, spaces, hyphens, and apostrophes')
        + _text_rules(f'{prefix}_state_province', 'State/Province', max_length=50, pattern=STATE_PATTERN,
                      pattern_message='State/Province must be a valid US state abbreviation or international format')
        + (Format(f'{prefix}_zip_postal_code', 'zip'),)
        + _text_rules(f'{prefix}_country', 'Country', max_length=100, pattern=PLACE_PATTERN,
                      pattern_message='Country can only contain letters, spaces, hyphens, and apostrophes')
    )
    if no_po_box:
        rules += (Custom(f'{prefix}_address_line', not_po_box, 'Legal address cannot be a P.O. Box'),)
    return rules


def _knowledge_rules(prefixes) -> tuple:
    rules = ()
    for prefix in prefixes:
        rules += (
            SingleChoice(f'{prefix}_knowledge', 'Choose a single knowledge level'),
            Format(f'{prefix}_since_year', 'year'),
        )
    return rules


def _gov_id_rules(n: int) -> tuple:
    prefix = f'gov_id_{n}'
    return (
        _text_rules(f'{prefix}_type', 'ID type', max_length=50)
        + (
            Length(f'{prefix}_number', 1, 50, 'ID number'),
            Pattern(f'{prefix}_number', ID_NUMBER_PATTERN, 'ID number must be alphanumeric'),
        )
        + _text_rules(f'{prefix}_country_of_issue', 'Country', max_length=100, pattern=PLACE_PATTERN,
                      pattern_message='Country can only contain letters, spaces, hyphens, and apostrophes')
        + (
            Format(f'{prefix}_date_of_issue', 'date'),
            Format(f'{prefix}_date_of_expiration', 'date'),
            AllOrNone(
                tuple(f'{prefix}_{part}' for part in GOV_ID_PARTS),
                'All government ID fields must be completed together',
            ),
            Custom(f'{prefix}_date_of_issue', date_not_future, 'Date cannot be in the future'),
            Custom(f'{prefix}_date_of_expiration', DateAfter(f'{prefix}_date_of_issue'),
                   'Expiration date must be after issue date'),
            Custom(f'{prefix}_date_of_expiration', date_not_past, 'Date cannot be in the past'),
        )
    )


def _required_rules(page: int) -> tuple:
    """Required rules for one page, taken from the requirement tables."""
    rules = [
        Required(field_id, entry.message, when=entry.condition)
        for entry in REQUIREMENTS
        for field_id in sorted(entry.fields)
        if SCHEMA.page_of(field_id) == page
    ]
    rules += [
        Required(field_id, message)
        for field_id, message in ALWAYS_REQUIRED.items()
        if SCHEMA.page_of(field_id) == page
    ]
    return tuple(rules)


HOLDER_INFORMATION_RULES = RuleSchema('holder_information', (
    *_required_rules(1),
    Length('name', 1, 120, 'Name'),
    *_text_rules('account_registration', 'This field'),
    *_text_rules('rr_name', 'Name', max_length=100, pattern=NAME_PATTERN,
                 pattern_message='Name can only contain letters, spaces, hyphens, and apostrophes'),
    SingleChoice('person_entity'),
    Format('ssn', 'ssn'),
    Format('ein', 'ein'),
    *_text_rules('holder_participant_role', 'This field', max_length=100),
    Format('email', 'email'),
    Format('dob', 'date'),
    Custom('dob', date_in_past, 'Date of birth must be in the past'),
    *_text_rules('position_held', 'This field', max_length=100),
    Format('home_phone', 'phone'),
    Format('business_phone', 'phone'),
    Format('mobile_phone', 'phone'),
    *_address_rules('legal', no_po_box=True),
    *_address_rules('mailing'),
    *_text_rules('primary_citizenship', 'Citizenship', max_length=100, pattern=PLACE_PATTERN,
                 pattern_message='Citizenship can only contain letters, spaces, hyphens, and apostrophes'),
    *_text_rules('additional_citizenship', 'Citizenship', max_length=100, pattern=PLACE_PATTERN,
                 pattern_message='Citizenship can only contain letters, spaces, hyphens, and apostrophes'),
    SingleChoice('gender'),
    SingleChoice('marital_status'),
    SingleChoice('employment_status'),
    *_text_rules('occupation', 'Occupation', max_length=100, pattern=OCCUPATION_PATTERN,
                 pattern_message='Occupation can only contain letters, numbers, spaces, and common punctuation'),
    Range('years_employed', 0, 100, 'Years employed must be an integer between 0 and 100', integer=True),
    *_text_rules('type_of_business', 'Type of business', max_length=100),
    *_text_rules('employer_name', 'Business name', pattern=BUSINESS_NAME_PATTERN,
                 pattern_message='Business name can only contain letters, numbers, spaces, and common business characters'),
    *_address_rules('employer'),
    SingleChoice('overall_level'),
    *_knowledge_rules(PAGE_1_INVESTMENTS),
))

CONTINUATION_RULES = RuleSchema('continuation_and_signature', (
    *_required_rules(2),
    *_knowledge_rules(PAGE_2_INVESTMENTS),
    *_text_rules('other_investments_label', 'This field', max_length=100),
    *(Format(field_id, 'currency_range') for field_id in RANGE_FIELDS),
    SingleChoice('tax_bracket'),
    *_gov_id_rules(1),
    *_gov_id_rules(2),
    *_text_rules('employee_name', 'This field', max_length=120),
    *_text_rules('relationship', 'Relationship', max_length=50, pattern=NAME_PATTERN,
                 pattern_message='Relationship can only contain letters, spaces, hyphens, and apostrophes'),
    *_text_rules('broker_dealer_name', 'This field', max_length=120),
    *_text_rules('broker_dealer_name_2', 'This field', max_length=120),
    *_text_rules('employee_name_2', 'This field', max_length=120),
    *_text_rules('relationship_2', 'Relationship', max_length=50, pattern=NAME_PATTERN,
                 pattern_message='Relationship can only contain letters, spaces, hyphens, and apostrophes'),
    *_text_rules('with_what_firms', 'This field'),
    Range('years_of_investment_experience', 0, 100,
          'Years of experience must be an integer between 0 and 100', integer=True),
    *_text_rules('what_is_the_affiliation', 'This field'),
    *_text_rules('company_names', 'Business name', pattern=BUSINESS_NAME_PATTERN,
                 pattern_message='Business name can only contain letters, numbers, spaces, and common business characters'),
    Length('signature', 10, 500, 'Signature'),
    Length('printed_name', 1, 120, 'Printed name'),
    Format('date', 'date'),
    Custom('date', date_not_future, 'Date cannot be in the future'),
))

RULE_SET = RuleSet((HOLDER_INFORMATION_RULES, CONTINUATION_RULES), SCHEMA, visibility=is_visible)


# Transforms

def _address(snapshot: Mapping[str, Any], prefix: str, address_type: str) -> Optional[Dict[str, Any]]:
    entry = compact({to_camel_case(part): snapshot.get(f'{prefix}_{part}') for part in ADDRESS_PARTS})
    if not entry:
        return None
    return {'addressType': address_type, **entry}


def _investment_entries(snapshot: Mapping[str, Any]) -> List[Dict[str, Any]]:
    entries = []
    for prefix, investment_type in INVESTMENT_TYPES.items():
        level = first_item(snapshot.get(f'{prefix}_knowledge'))
        if not level:
            continue
        entry = {
            'investmentType': investment_type,
            'knowledgeLevel': level,
            'sinceYear': parse_int(snapshot.get(f'{prefix}_since_year')),
        }
        if investment_type == 'other':
            entry['label'] = snapshot.get('other_investments_label')
        entries.append(compact(entry))
    return entries


def _government_ids(snapshot: Mapping[str, Any]) -> List[Dict[str, Any]]:
    ids = []
    for n in (1, 2):
        entry = {}
        for part, key in GOV_ID_KEYS.items():
            value = snapshot.get(f'gov_id_{n}_{part}')
            entry[key] = to_iso_timestamp(value) if part.startswith('date_') else value
        entry = compact(entry)
        if entry:
            ids.append(entry)
    return ids


def to_backend(snapshot: Mapping[str, Any]) -> Dict[str, Any]:
    """Transform a form snapshot into the backend record shape."""
    payload: Dict[str, Any] = {}

    for field_id in PAGE_1_TEXT + PAGE_2_TEXT:
        payload[to_camel_case(field_id)] = snapshot.get(field_id)
    for field_id in PAGE_1_CHOICES:
        payload[to_camel_case(field_id)] = first_item(snapshot.get(field_id))

    payload['ssn'] = normalize_ssn(snapshot.get('ssn'))
    payload['ein'] = normalize_ein(snapshot.get('ein'))
    payload['dob'] = to_iso_timestamp(snapshot.get('dob'))
    payload['date'] = to_iso_timestamp(snapshot.get('date'))
    payload['yearsEmployed'] = parse_int(snapshot.get('years_employed'))
    payload['yearsOfInvestmentExperience'] = parse_int(snapshot.get('years_of_investment_experience'))

    addresses = [_address(snapshot, 'legal', 'legal')]
    if snapshot.get('mailing_same_as_legal') is False:
        addresses.append(_address(snapshot, 'mailing', 'mailing'))
    addresses.append(_address(snapshot, 'employer', 'employer'))
    payload['addresses'] = [address for address in addresses if address]

    payload['phones'] = [
        {'phoneType': phone_type, 'phoneNumber': normalize_phone(snapshot[field_id])}
        for field_id, phone_type in PHONE_TYPES.items()
        if snapshot.get(field_id)
    ]

    payload['investmentKnowledge'] = _investment_entries(snapshot)

    for field_id in RANGE_FIELDS:
        amount_range = snapshot.get(field_id)
        if isinstance(amount_range, dict):
            payload[f'{to_camel_case(field_id)}From'] = parse_currency(amount_range.get('from'))
            payload[f'{to_camel_case(field_id)}To'] = parse_currency(amount_range.get('to'))

    payload['taxBracket'] = TAX_BRACKETS.get(first_item(snapshot.get('tax_bracket')))
    payload['governmentIds'] = _government_ids(snapshot)

    return compact(payload)


def from_backend(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Transform a backend record into a form snapshot."""
    snapshot: Dict[str, Any] = {}

    for field_id in PAGE_1_TEXT + PAGE_2_TEXT:
        snapshot[field_id] = record.get(to_camel_case(field_id))
    for field_id in PAGE_1_CHOICES:
        value = record.get(to_camel_case(field_id))
        snapshot[field_id] = [value] if value else None

    snapshot['ssn'] = record.get('ssn')
    snapshot['ein'] = record.get('ein')
    snapshot['dob'] = to_display_date(record.get('dob'))
    snapshot['date'] = to_display_date(record.get('date'))
    snapshot['years_employed'] = format_number(record.get('yearsEmployed')) or None
    snapshot['years_of_investment_experience'] = format_number(record.get('yearsOfInvestmentExperience')) or None

    addresses = {address.get('addressType'): address for address in record.get('addresses') or []}
    for prefix in ('legal', 'mailing', 'employer'):
        address = addresses.get(prefix, {})
        for part in ADDRESS_PARTS:
            snapshot[f'{prefix}_{part}'] = address.get(to_camel_case(part))
    snapshot['mailing_same_as_legal'] = 'mailing' not in addresses

    phones = {phone.get('phoneType'): phone.get('phoneNumber') for phone in record.get('phones') or []}
    for field_id, phone_type in PHONE_TYPES.items():
        snapshot[field_id] = phones.get(phone_type)

    for entry in record.get('investmentKnowledge') or []:
        prefix = next(
            (key for key, value in INVESTMENT_TYPES.items() if value == entry.get('investmentType')), None
        )
        if prefix is None:
            continue
        level = entry.get('knowledgeLevel')
        snapshot[f'{prefix}_knowledge'] = [level] if level else None
        since_year = entry.get('sinceYear')
        snapshot[f'{prefix}_since_year'] = str(since_year) if since_year is not None else None
        if prefix == 'other_investments':
            snapshot['other_investments_label'] = entry.get('label')

    for field_id in RANGE_FIELDS:
        key = to_camel_case(field_id)
        amount_range = {
            end: format_currency(record.get(f'{key}{suffix}'))
            for end, suffix in (('from', 'From'), ('to', 'To'))
            if record.get(f'{key}{suffix}') is not None
        }
        snapshot[field_id] = amount_range or None

    label = TAX_BRACKET_LABELS.get(record.get('taxBracket'))
    snapshot['tax_bracket'] = [label] if label else None

    for n, entry in enumerate((record.get('governmentIds') or [])[:2], start=1):
        for part, key in GOV_ID_KEYS.items():
            value = entry.get(key)
            snapshot[f'gov_id_{n}_{part}'] = to_display_date(value) if part.startswith('date_') else value

    return {key: value for key, value in snapshot.items() if value is not None}


PAGE_KEYS = {
    1: tuple(to_camel_case(field_id) for field_id in PAGE_1_TEXT + PAGE_1_CHOICES) + (
        'ssn', 'ein', 'dob', 'yearsEmployed', 'addresses', 'phones', 'investmentKnowledge',
    ),
    2: tuple(to_camel_case(field_id) for field_id in PAGE_2_TEXT) + (
        'date', 'yearsOfInvestmentExperience', 'investmentKnowledge', 'taxBracket', 'governmentIds',
    ) + tuple(
        f'{to_camel_case(field_id)}{suffix}' for field_id in RANGE_FIELDS for suffix in ('From', 'To')
    ),
}


DEFINITION = FormDefinition(
    form_type=FORM_TYPE,
    schema=SCHEMA,
    rule_set=RULE_SET,
    is_visible=is_visible,
    get_requirement=get_requirement,
    to_backend=to_backend,
    from_backend=from_backend,
    page_keys=PAGE_KEYS,
)
