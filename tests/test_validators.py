from expense_tracker.validators import (
    normalize_category, parse_date, sanitize_form_data, validate_budget,
    validate_category_name, validate_expense_data, validate_registration
)


def test_normalize_category():
    assert normalize_category('food') == 'Food'
    assert normalize_category('  eating   OUT ') == 'Eating Out'
    assert normalize_category('') == 'Other'
    assert normalize_category(None) == 'Other'


def test_valid_expense():
    is_valid, errors = validate_expense_data({
        'description': 'Lunch', 'amount': 12.5, 'category': 'Food', 'date': '2024-03-01'
    })
    assert is_valid
    assert errors == []


def test_expense_requires_fields():
    is_valid, errors = validate_expense_data({'description': ' ', 'amount': None, 'category': ''})
    assert not is_valid
    assert "Description is required" in errors
    assert "Amount is required" in errors
    assert "Category is required" in errors


def test_expense_amount_zero_allowed_negative_rejected():
    base = {'description': 'Gift', 'category': 'Other'}
    assert validate_expense_data({**base, 'amount': 0})[0]
    assert not validate_expense_data({**base, 'amount': -1})[0]


def test_expense_bad_date():
    is_valid, errors = validate_expense_data({
        'description': 'Taxi', 'amount': 5, 'category': 'Transportation', 'date': '03/01/2024'
    })
    assert not is_valid
    assert errors == ["Date must be an ISO date (YYYY-MM-DD)"]


def test_partial_expense_only_checks_present_fields():
    assert validate_expense_data({'amount': 3}, partial=True) == (True, [])
    assert not validate_expense_data({'description': ''}, partial=True)[0]
    assert not validate_expense_data({'date': ''}, partial=True)[0]
    assert validate_expense_data({'date': None}, partial=True)[0]


def test_expense_amount_must_be_finite_number():
    base = {'description': 'Gift', 'category': 'Other'}
    for amount in (float('inf'), float('-inf'), float('nan'), 10 ** 400, True, '12'):
        is_valid, errors = validate_expense_data({**base, 'amount': amount})
        assert not is_valid, amount
        assert errors == ["Amount must be a number greater than or equal to 0"]


def test_validate_budget():
    assert validate_budget(0) == (True, [])
    assert validate_budget(1500.5)[0]
    assert not validate_budget(-10)[0]
    assert not validate_budget(None)[0]
    assert not validate_budget('100')[0]
    assert not validate_budget(True)[0]
    assert not validate_budget(float('inf'))[0]
    assert not validate_budget(float('nan'))[0]


def test_validate_category_name():
    assert validate_category_name('Pets')[0]
    assert not validate_category_name('   ')[0]
    assert not validate_category_name('x' * 101)[0]


def test_validate_registration():
    assert validate_registration({'username': 'bob', 'email': 'bob@example.com', 'password': 'secret1'})[0]
    assert validate_registration({'username': 'bob'}) == (False, ["Please add all fields"])
    is_valid, errors = validate_registration({'username': 'bo', 'email': 'nope', 'password': '123'})
    assert not is_valid
    assert len(errors) == 3


def test_parse_date_and_sanitize():
    assert parse_date('2024-02-29').day == 29
    assert parse_date('2024-02-29T10:00:00Z').tzinfo is not None
    assert parse_date('yesterday') is None
    assert sanitize_form_data({'name': '  Food ', 'amount': 3}) == {'name': 'Food', 'amount': 3}
