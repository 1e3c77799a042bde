import os
from datetime import datetime, timezone

from expense_tracker.config import DEFAULT_CATEGORIES
from expense_tracker.exceptions import AIServiceError

from .conftest import make_png, register


def add_expense(client, headers, amount, category='Food', description='Item', day='2024-03-01'):
    response = client.post('/api/expenses', headers=headers, json={
        'description': description, 'amount': amount, 'category': category, 'date': day
    })
    assert response.status_code == 201, response.text
    return response.json()


def send_raw(client, method, url, headers, body):
    """Send a JSON body as text so literals like Infinity reach the server."""
    return client.request(method, url, content=body,
                          headers={**headers, 'Content-Type': 'application/json'})


# ---------------------------------------------------------------- auth

def test_register_login_me(client):
    headers = register(client, 'carol', 'carol@example.com', 'secret123')

    me = client.get('/api/auth/me', headers=headers)
    assert me.status_code == 200
    assert me.json()['username'] == 'carol'

    login = client.post('/api/auth/login', json={'email': 'carol@example.com', 'password': 'secret123'})
    assert login.status_code == 200
    assert login.json()['token']

    bad = client.post('/api/auth/login', json={'email': 'carol@example.com', 'password': 'nope'})
    assert bad.status_code == 400
    assert bad.json()['detail'] == 'Invalid credentials'


def test_register_validation_and_duplicates(client):
    missing = client.post('/api/auth/register', json={'username': 'dave'})
    assert missing.status_code == 400
    assert missing.json()['detail'] == 'Please add all fields'

    register(client, 'dave', 'dave@example.com')
    duplicate = client.post('/api/auth/register', json={
        'username': 'dave', 'email': 'dave2@example.com', 'password': 'secret123'
    })
    assert duplicate.status_code == 400


def test_protected_routes_need_token(client):
    assert client.get('/api/expenses').status_code == 401
    assert client.get('/api/budget', headers={'Authorization': 'Bearer garbage'}).status_code == 401
    assert client.get('/api/ai/predict', headers={'Authorization': 'Token abc'}).status_code == 401


def test_forgot_and_reset_password(client):
    register(client, 'erin', 'erin@example.com', 'oldsecret')

    unknown = client.post('/api/auth/forgot-password', json={'email': 'ghost@example.com'})
    assert unknown.status_code == 404

    forgot = client.post('/api/auth/forgot-password', json={'email': 'erin@example.com'})
    assert forgot.status_code == 200
    token = forgot.json()['resetUrl'].rsplit('/', 1)[1]

    invalid = client.put('/api/auth/reset-password/not-a-token', json={'password': 'newsecret'})
    assert invalid.status_code == 400
    assert invalid.json()['detail'] == 'Invalid or expired token'

    reset = client.put(f'/api/auth/reset-password/{token}', json={'password': 'newsecret'})
    assert reset.status_code == 200

    assert client.post('/api/auth/login', json={'email': 'erin@example.com', 'password': 'newsecret'}).status_code == 200
    assert client.post('/api/auth/login', json={'email': 'erin@example.com', 'password': 'oldsecret'}).status_code == 400
    assert client.put(f'/api/auth/reset-password/{token}', json={'password': 'again123'}).status_code == 400


# ---------------------------------------------------------------- expenses

def test_expense_crud(client, auth_headers):
    created = add_expense(client, auth_headers, 12.5, 'food', 'Lunch')
    assert created['category'] == 'Food'

    fetched = client.get(f"/api/expenses/{created['id']}", headers=auth_headers)
    assert fetched.json()['description'] == 'Lunch'

    updated = client.put(f"/api/expenses/{created['id']}", headers=auth_headers, json={'amount': 20})
    assert updated.status_code == 200
    assert updated.json()['amount'] == 20
    assert updated.json()['description'] == 'Lunch'

    deleted = client.delete(f"/api/expenses/{created['id']}", headers=auth_headers)
    assert deleted.json() == {'id': created['id']}
    assert client.get(f"/api/expenses/{created['id']}", headers=auth_headers).status_code == 404


def test_expense_validation(client, auth_headers):
    response = client.post('/api/expenses', headers=auth_headers, json={'description': '', 'amount': -5})
    assert response.status_code == 400
    assert 'Description is required' in response.json()['detail']


def test_non_finite_amounts_are_rejected(client, auth_headers):
    for literal in ('Infinity', '-Infinity', 'NaN'):
        body = f'{{"description": "x", "amount": {literal}, "category": "Food"}}'
        response = send_raw(client, 'POST', '/api/expenses', auth_headers, body)
        assert response.status_code == 400, literal
        assert 'Amount must be a number' in response.json()['detail']

    expense = add_expense(client, auth_headers, 10)
    response = send_raw(client, 'PUT', f"/api/expenses/{expense['id']}", auth_headers, '{"amount": Infinity}')
    assert response.status_code == 400

    listed = client.get('/api/expenses', headers=auth_headers)
    assert listed.status_code == 200
    assert [row['amount'] for row in listed.json()] == [10]
    assert client.get('/api/expenses/stats', headers=auth_headers).status_code == 200


def test_non_numeric_amounts_are_rejected(client, auth_headers):
    for amount in ('12', 'lots', True, [5]):
        response = client.post('/api/expenses', headers=auth_headers, json={
            'description': 'x', 'amount': amount, 'category': 'Food'
        })
        assert response.status_code == 400, amount

    expense = add_expense(client, auth_headers, 10)
    response = client.put(f"/api/expenses/{expense['id']}", headers=auth_headers, json={'amount': False})
    assert response.status_code == 400
    assert client.get('/api/expenses', headers=auth_headers).json()[0]['amount'] == 10


def test_update_cannot_blank_the_date(client, auth_headers):
    expense = add_expense(client, auth_headers, 10, day='2024-03-01')

    response = client.put(f"/api/expenses/{expense['id']}", headers=auth_headers, json={'date': ''})

    assert response.status_code == 400
    fetched = client.get(f"/api/expenses/{expense['id']}", headers=auth_headers).json()
    assert fetched['date'] == expense['date']


def test_other_users_expense_is_forbidden(client, auth_headers):
    expense = add_expense(client, auth_headers, 10)
    mallory = register(client, 'mallory', 'mallory@example.com')

    assert client.get('/api/expenses', headers=mallory).json() == []
    assert client.get(f"/api/expenses/{expense['id']}", headers=mallory).status_code == 403
    assert client.put(f"/api/expenses/{expense['id']}", headers=mallory, json={'amount': 1}).status_code == 403
    assert client.delete(f"/api/expenses/{expense['id']}", headers=mallory).status_code == 403
    assert client.get('/api/expenses/stats', headers=mallory).json() == []


def test_stats_and_category_report(client, auth_headers):
    add_expense(client, auth_headers, 100, 'Food')
    add_expense(client, auth_headers, 50, 'Food')
    add_expense(client, auth_headers, 30, 'Travel')

    stats = client.get('/api/expenses/stats', headers=auth_headers).json()
    assert {row['category']: row['total'] for row in stats} == {'Food': 150, 'Travel': 30}

    report = client.get('/api/reports/category', headers=auth_headers).json()
    assert report[0] == {'category': 'Food', 'total': 150}


def test_trend_covers_today(client, auth_headers):
    today = datetime.now(timezone.utc).date().isoformat()
    add_expense(client, auth_headers, 8, day=today)
    add_expense(client, auth_headers, 2, day=today)
    add_expense(client, auth_headers, 99, day='2000-01-01')

    trend = client.get('/api/expenses/trend', headers=auth_headers).json()
    assert trend == [{'date': today, 'total': 10.0}]

    filled = client.get('/api/expenses/trend?days=7&zero_fill=true', headers=auth_headers).json()
    assert len(filled) == 7
    assert filled[-1] == {'date': today, 'total': 10.0}


def test_monthly_report(client, auth_headers):
    add_expense(client, auth_headers, 40, 'Food', day='2024-02-03')
    report = client.get('/api/reports/monthly?month=2&year=2024', headers=auth_headers).json()
    assert report['total'] == 40
    assert report['count'] == 1


# ---------------------------------------------------------------- categories & budget

def test_categories(client, auth_headers):
    assert client.get('/api/categories', headers=auth_headers).json() == DEFAULT_CATEGORIES

    created = client.post('/api/categories', headers=auth_headers, json={'name': 'Pets', 'color': '#00ff00'})
    assert created.status_code == 201
    assert client.post('/api/categories', headers=auth_headers, json={'name': 'pets'}).status_code == 400
    assert client.post('/api/categories', headers=auth_headers, json={'name': ''}).status_code == 400

    names = client.get('/api/categories', headers=auth_headers).json()
    assert names == DEFAULT_CATEGORIES + ['Pets']

    assert client.delete('/api/categories/Pets', headers=auth_headers).status_code == 200
    assert client.delete('/api/categories/Pets', headers=auth_headers).status_code == 404


def test_budget(client, auth_headers):
    assert client.get('/api/budget', headers=auth_headers).json() == {'budget': 0}

    assert client.put('/api/budget', headers=auth_headers, json={'budget': 2500}).json() == {'budget': 2500}
    assert client.put('/api/budget', headers=auth_headers, json={'budget': -1}).status_code == 400
    assert client.put('/api/budget', headers=auth_headers, json={}).status_code == 400
    assert client.get('/api/budget', headers=auth_headers).json() == {'budget': 2500}

    other = register(client, 'frank', 'frank@example.com')
    assert client.get('/api/budget', headers=other).json() == {'budget': 0}


def test_budget_rejects_non_finite_and_non_numeric(client, auth_headers):
    client.put('/api/budget', headers=auth_headers, json={'budget': 800})

    for literal in ('NaN', 'Infinity'):
        response = send_raw(client, 'PUT', '/api/budget', auth_headers, f'{{"budget": {literal}}}')
        assert response.status_code == 400, literal
    for value in ('800', 'inf', True, None):
        assert client.put('/api/budget', headers=auth_headers, json={'budget': value}).status_code == 400

    assert client.get('/api/budget', headers=auth_headers).json() == {'budget': 800}


# ---------------------------------------------------------------- ocr & ai

def test_scan_receipt_removes_temp_files(client, auth_headers, fake_model, app_config):
    fake_model.queue('{"amount": 18.75, "date": "2024-06-01", "merchant": "Deli", "category": "Food"}')

    response = client.post('/api/ocr/scan', headers=auth_headers, files=[
        ('images', ('receipt1.png', make_png(), 'image/png')),
        ('images', ('receipt2.png', make_png(), 'image/png')),
    ])

    assert response.status_code == 200, response.text
    assert response.json() == {'amount': 18.75, 'date': '2024-06-01', 'merchant': 'Deli', 'category': 'Food'}
    assert len(fake_model.calls[0]['images']) == 2
    assert os.listdir(app_config.UPLOAD_DIR) == []


def test_scan_failure_still_removes_temp_files(client, auth_headers, fake_model, app_config):
    fake_model.queue(AIServiceError("Model API error (500)"))

    response = client.post('/api/ocr/scan', headers=auth_headers, files=[
        ('images', ('receipt.png', make_png(), 'image/png')),
    ])

    assert response.status_code == 502
    assert 'AI Scan Failed' in response.json()['detail']
    assert os.listdir(app_config.UPLOAD_DIR) == []


def test_scan_limits(client, auth_headers, fake_model):
    assert client.post('/api/ocr/scan', headers=auth_headers).status_code == 400

    too_many = [('images', (f'r{i}.png', make_png(), 'image/png')) for i in range(6)]
    assert client.post('/api/ocr/scan', headers=auth_headers, files=too_many).status_code == 400

    wrong_type = [('images', ('notes.txt', b'hello', 'text/plain'))]
    assert client.post('/api/ocr/scan', headers=auth_headers, files=wrong_type).status_code == 400
    assert fake_model.calls == []


def test_predict(client, auth_headers, fake_model):
    for i in range(4):
        add_expense(client, auth_headers, 10 + i, day=f'2024-03-0{i + 1}')

    not_enough = client.get('/api/ai/predict', headers=auth_headers)
    assert not_enough.status_code == 400
    assert fake_model.calls == []

    add_expense(client, auth_headers, 50, 'Shopping', day='2024-03-05')
    client.put('/api/budget', headers=auth_headers, json={'budget': 1000})
    fake_model.queue('```json\n{"predictedTotal": 420, "predictedCategories": '
                     '[{"category": "Food", "predictedAmount": 300}], '
                     '"insights": ["one", "two", "three"], "confidence": 75}\n```')

    response = client.get('/api/ai/predict', headers=auth_headers)

    assert response.status_code == 200, response.text
    assert response.json()['predictedTotal'] == 420
    assert 'monthly budget is 1000' in fake_model.calls[0]['prompt']


def test_health(client):
    assert client.get('/api/health').json()['status'] == 'healthy'
