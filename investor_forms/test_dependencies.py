"""
Unit tests for visibility and requirement resolution.
"""

import pytest
from investor_forms import accreditation_form, additional_holder_form, alt_order_form
from investor_forms.dependencies import (
    Requirement, dependency, detect_joint_owner, requirement_resolver, visibility_resolver,
)
from investor_forms.rules import Condition


class TestResolvers:
    TABLE = (
        dependency(Condition('kind', 'equals', 'A'), fields=['a_only'], message='A needs this'),
        dependency(Condition('kind', 'equals', 'B'), prefixes=['b_'], exclude=['b_label']),
        dependency(Condition('kind', 'equals', 'C'), fields=['a_only']),
    )

    def test_unlisted_field_is_visible(self):
        is_visible = visibility_resolver(self.TABLE)
        assert is_visible('anything', {}) is True

    def test_first_matching_entry_decides(self):
        is_visible = visibility_resolver(self.TABLE)
        assert is_visible('a_only', {'kind': 'A'}) is True
        assert is_visible('a_only', {'kind': 'C'}) is False

    def test_prefix_and_exclusion(self):
        is_visible = visibility_resolver(self.TABLE)
        assert is_visible('b_name', {'kind': 'B'}) is True
        assert is_visible('b_name', {'kind': 'A'}) is False
        assert is_visible('b_label', {'kind': 'A'}) is True

    def test_requirement_message(self):
        get_requirement = requirement_resolver(self.TABLE, {'always': 'Always needed'})
        assert get_requirement('a_only', {'kind': 'A'}) == Requirement(True, 'A needs this')
        assert get_requirement('a_only', {'kind': 'B'}) == Requirement(False)
        assert get_requirement('b_name', {'kind': 'B'}) == Requirement(True, 'This field is required')
        assert get_requirement('always', {}) == Requirement(True, 'Always needed')
        assert get_requirement('other', {}).required is False

    def test_requirement_to_dict(self):
        assert Requirement(True, 'Needed').to_dict() == {'required': True, 'message': 'Needed'}
        assert Requirement(False).to_dict() == {'required': False}


class TestJointOwnerDetection:
    @pytest.mark.parametrize('names', [
        'Jane and John Doe', 'Jane & John Doe', 'JANE AND JOHN', 'Jane Doe and', 'Jane Doe &',
    ])
    def test_joint(self, names):
        assert detect_joint_owner(names) is True

    @pytest.mark.parametrize('names', ['Jane Doe', 'Alexander Anderson', 'Jane&John', '', None, 42])
    def test_single(self, names):
        assert detect_joint_owner(names) is False


class TestAdditionalHolderDependencies:
    is_visible = staticmethod(additional_holder_form.is_visible)
    get_requirement = staticmethod(additional_holder_form.get_requirement)

    def test_ssn_and_ein_follow_person_entity(self):
        person = {'person_entity': ['Person']}
        entity = {'person_entity': ['Entity']}
        assert self.is_visible('ssn', person) and not self.is_visible('ein', person)
        assert self.is_visible('ein', entity) and not self.is_visible('ssn', entity)
        assert not self.is_visible('ssn', {}) and not self.is_visible('ein', {})

    def test_ssn_requirement(self):
        requirement = self.get_requirement('ssn', {'person_entity': ['Person']})
        assert requirement.required is True
        assert requirement.message == 'SSN is required when Person is selected'
        assert self.get_requirement('ssn', {'person_entity': ['Entity']}).required is False

    def test_mailing_fields_follow_checkbox(self):
        assert self.is_visible('mailing_city', {'mailing_same_as_legal': False}) is True
        assert self.is_visible('mailing_city', {'mailing_same_as_legal': True}) is False
        assert self.is_visible('mailing_same_as_legal', {'mailing_same_as_legal': True}) is True

    @pytest.mark.parametrize('status, visible', [
        (['Employed'], True),
        (['Self-Employed'], True),
        (['Unemployed'], False),
        (['Retired'], False),
        (None, False),
    ])
    def test_employment_details(self, status, visible):
        snapshot = {'employment_status': status}
        assert self.is_visible('occupation', snapshot) is visible
        assert self.is_visible('employer_city', snapshot) is visible
        assert self.get_requirement('occupation', snapshot).required is visible
        assert self.get_requirement('employer_name', snapshot).required is visible

    def test_follow_ups(self):
        assert self.is_visible('company_names', {'senior_officer_director_shareholder': 'Yes'}) is True
        assert self.is_visible('company_names', {'senior_officer_director_shareholder': 'No'}) is False
        requirement = self.get_requirement('with_what_firms', {'maintaining_other_brokerage_accounts': 'Yes'})
        assert requirement == Requirement(True, 'Firm name(s) are required')

    def test_other_label(self):
        assert self.is_visible('other_investments_label', {'other_investments_knowledge': ['Moderate']}) is True
        assert self.is_visible('other_investments_label', {'other_investments_knowledge': []}) is False

    def test_always_required(self):
        assert self.get_requirement('signature', {}) == Requirement(True, 'Signature is required')
        assert self.get_requirement('name', {}).required is True
        assert self.get_requirement('email', {}).required is False


class TestSignatureDependencies:
    @pytest.mark.parametrize('module', [accreditation_form, alt_order_form])
    def test_joint_owner_block(self, module):
        joint = {'has_joint_owner': True}
        single = {'has_joint_owner': False}
        assert module.is_visible('joint_account_owner_signature', joint) is True
        assert module.is_visible('joint_account_owner_signature', single) is False
        assert module.is_visible('account_owner_signature', single) is True
        assert module.get_requirement('joint_account_owner_date', joint).message == \
            'All Joint Account Owner signature fields must be completed'
        assert module.get_requirement('joint_account_owner_signature_block', joint).required is False

    def test_qualified_account_certification(self):
        assert alt_order_form.is_visible('qualified_account_certification_text', {'qualified_account': 'Yes'})
        assert not alt_order_form.is_visible('qualified_account_certification_text', {'qualified_account': 'No'})

    def test_customer_names_messages(self):
        assert accreditation_form.get_requirement('customer_names', {}).message == 'Customer Name(s) is required'
        assert alt_order_form.get_requirement('customer_names', {}).message == 'Customer Names(s) is required'
