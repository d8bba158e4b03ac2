from flashbites.models.models import Coupon
from tests.conftest import auth_header

NEW_COUPON = {
    'code': 'flash50',
    'description': 'Flat 50 off',
    'discount_type': 'fixed',
    'discount_value': 50,
    'min_order_value': 299,
    'valid_from': '2026-01-01T00:00:00',
    'valid_till': '2099-12-31T00:00:00'
}


def test_validate_returns_discount(client, customer, make_coupon):
    make_coupon('FIRST20')
    response = client.post('/api/coupons/validate', json={'code': 'first20', 'order_value': 300},
                           headers=auth_header(customer))
    body = response.get_json()
    assert response.status_code == 200
    assert body['discount'] == 60
    assert body['final_amount'] == 240
    assert body['coupon']['code'] == 'FIRST20'


def test_validate_unknown_code(client, customer):
    response = client.post('/api/coupons/validate', json={'code': 'NOPE', 'order_value': 300},
                           headers=auth_header(customer))
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Invalid coupon code'}


def test_validate_requires_fields_and_login(client, customer):
    assert client.post('/api/coupons/validate', json={'code': 'X'}).status_code == 401
    response = client.post('/api/coupons/validate', json={'code': 'X'}, headers=auth_header(customer))
    assert response.status_code == 400


def test_available_coupons_for_order_value(client, customer, make_coupon):
    make_coupon('FIRST20', min_order_value=199)
    make_coupon('SAVE100', discount_type='fixed', discount_value=100, min_order_value=500)
    response = client.get('/api/coupons/available?orderValue=250', headers=auth_header(customer))
    assert [c['code'] for c in response.get_json()['coupons']] == ['FIRST20']


def test_admin_manages_coupons(client, admin):
    created = client.post('/api/coupons', json=NEW_COUPON, headers=auth_header(admin))
    assert created.status_code == 201
    coupon_id = created.get_json()['coupon']['id']
    assert created.get_json()['coupon']['code'] == 'FLASH50'

    duplicate = client.post('/api/coupons', json=NEW_COUPON, headers=auth_header(admin))
    assert duplicate.status_code == 400

    updated = client.put(f'/api/coupons/{coupon_id}', json={'discount_value': 75}, headers=auth_header(admin))
    assert updated.get_json()['coupon']['discount_value'] == 75

    listed = client.get('/api/coupons', headers=auth_header(admin)).get_json()
    assert listed['count'] == 1

    assert client.delete(f'/api/coupons/{coupon_id}', headers=auth_header(admin)).status_code == 200
    assert Coupon.query.count() == 0


def test_invalid_update_is_not_saved(client, admin, make_coupon):
    coupon = make_coupon('FIRST20')
    response = client.put(f'/api/coupons/{coupon.id}', json={'discount_value': -5}, headers=auth_header(admin))
    assert response.status_code == 400
    assert coupon.discount_value == 20


def test_customers_cannot_create_coupons(client, customer):
    assert client.post('/api/coupons', json=NEW_COUPON, headers=auth_header(customer)).status_code == 403


def test_numeric_fields_are_converted_or_rejected(client, admin):
    created = client.post('/api/coupons', json={**NEW_COUPON, 'discount_value': '50', 'usage_limit': '10'},
                          headers=auth_header(admin))
    assert created.status_code == 201
    assert created.get_json()['coupon']['discount_value'] == 50

    for field, value in (('discount_value', 'fifty'), ('min_order_value', [299]), ('max_discount', -1),
                         ('usage_limit', -5), ('usage_limit', 'many'), ('min_order_value', -10)):
        response = client.post('/api/coupons', json={**NEW_COUPON, 'code': 'BAD', field: value},
                               headers=auth_header(admin))
        assert response.status_code == 400, field
    assert Coupon.query.count() == 1
