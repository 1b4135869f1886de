"""
Shared fixtures: valid snapshots for each form type and a test application.
"""

import pytest

from investor_forms import create_app, db


@pytest.fixture
def holder_snapshot():
    """A complete, valid Additional Account Holder snapshot (both pages)."""
    return {
        # Page 1
        'name': 'Jane Doe',
        'person_entity': ['Person'],
        'ssn': '123-45-6789',
        'email': 'jane.doe@example.com',
        'dob': '1980-05-17',
        'home_phone': '303-555-1234',
        'legal_address_line': '123 Main St',
        'legal_city': 'Denver',
        'legal_state_province': 'CO',
        'legal_zip_postal_code': '80202',
        'legal_country': 'USA',
        'mailing_same_as_legal': True,
        'employment_status': ['Employed'],
        'occupation': 'Engineer',
        'employer_name': 'Acme Corp',
        'years_employed': '5',
        'equities_knowledge': ['Moderate'],
        'equities_since_year': '2005',
        # Page 2
        'options_knowledge': ['Limited'],
        'annual_income': {'from': '100,000.00', 'to': '200,000.00'},
        'tax_bracket': ['15% - 32%'],
        'employee_of_this_broker_dealer': 'No',
        'signature': 'Jane Q. Doe (signed)',
        'printed_name': 'Jane Doe',
        'date': '2024-06-01',
    }


@pytest.fixture
def accreditation_snapshot():
    """A valid accreditation snapshot with a single account owner."""
    return {
        'rr_name': 'Alex Broker',
        'rr_no': 'A123',
        'customer_names': 'Jane Doe',
        'account_owner_signature': 'Jane Doe (signed)',
        'account_owner_printed_name': 'Jane Doe',
        'account_owner_date': '2024-06-01',
    }


@pytest.fixture
def alt_order_snapshot():
    """A valid alternative investment order snapshot."""
    return {
        'rr_name': 'Alex Broker',
        'rr_no': 'A123',
        'customer_names': 'Jane Doe',
        'proposed_principal_amount': '$25,000.00',
        'qualified_account': 'No',
        'custodian': 'Direct',
        'name_of_product': 'Income Fund II',
        'sponsor_issuer': 'Acme Sponsor LLC',
        'date_of_ppm': '2024-01-15',
        'date_ppm_sent': '2024-01-20',
        'existing_illiquid_alt_positions': '10,000.00',
        'existing_illiquid_alt_concentration': '12.5',
        'account_owner_signature': 'Jane Doe (signed)',
        'account_owner_printed_name': 'Jane Doe',
        'account_owner_date': '2024-06-01',
        'reg_bi_delivery': True,
    }


@pytest.fixture
def app():
    """Application bound to an in-memory database."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'RATELIMIT_ENABLED': False,
        'SAVE_BACKOFF_SECONDS': 0,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
