import pytest
from flashbites import db
from flashbites.models.models import Notification, Order
from tests.conftest import auth_header


@pytest.fixture
def order(client, customer, restaurant, menu_item, place_order):
    response = place_order(customer, restaurant, [{'menu_item_id': menu_item.id, 'quantity': 1}])
    return db.session.get(Order, response.get_json()['order']['id'])


@pytest.fixture
def move(client, owner):
    def _move(order, *statuses):
        for status in statuses:
            response = client.patch(f'/api/orders/{order.id}/status', json={'status': status},
                                    headers=auth_header(owner))
            assert response.status_code == 200, response.get_json()
    return _move


def _post(client, user, path, json=None):
    return client.post(path, json=json or {}, headers=auth_header(user))


def test_pending_orders_are_not_offered(client, partner, order):
    body = client.get('/api/delivery/orders/available', headers=auth_header(partner)).get_json()
    assert body['orders'] == []


def test_confirmed_orders_are_offered(client, partner, order, move):
    move(order, 'confirmed')
    body = client.get('/api/delivery/orders/available', headers=auth_header(partner)).get_json()
    assert [o['id'] for o in body['orders']] == [order.id]
    assert 'delivery_otp' not in body['orders'][0]


def test_customers_cannot_see_delivery_board(client, customer):
    assert client.get('/api/delivery/orders/available', headers=auth_header(customer)).status_code == 403


def test_accept_assigns_partner_and_notifies_customer(client, customer, partner, order, move):
    move(order, 'confirmed')
    response = _post(client, partner, f'/api/delivery/orders/{order.id}/accept')

    assert response.status_code == 200
    assert order.delivery_partner_id == partner.id
    assert order.status == 'confirmed'
    assert Notification.query.filter_by(recipient_id=customer.id, type='delivery_assigned').count() == 1

    assigned = client.get('/api/delivery/orders/assigned', headers=auth_header(partner)).get_json()
    assert [o['id'] for o in assigned['orders']] == [order.id]


def test_accepting_a_ready_order_picks_it_up(client, partner, order, move):
    move(order, 'confirmed', 'preparing', 'ready')
    response = _post(client, partner, f'/api/delivery/orders/{order.id}/accept')

    assert response.status_code == 200
    assert response.get_json()['order']['status'] == 'out_for_delivery'
    assert order.status == 'out_for_delivery'


def test_order_cannot_be_accepted_twice(client, make_user, partner, order, move):
    move(order, 'confirmed')
    assert _post(client, partner, f'/api/delivery/orders/{order.id}/accept').status_code == 200

    rival = make_user('delivery_partner')
    response = _post(client, rival, f'/api/delivery/orders/{order.id}/accept')
    assert response.status_code == 400
    assert 'already assigned' in response.get_json()['error']
    assert order.delivery_partner_id == partner.id


def test_pending_order_cannot_be_accepted(client, partner, order):
    response = _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    assert response.status_code == 400
    assert order.delivery_partner_id is None


def test_pickup_requires_ready_order(client, partner, order, move):
    move(order, 'confirmed')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    assert _post(client, partner, f'/api/delivery/orders/{order.id}/pickup').status_code == 400

    move(order, 'preparing', 'ready')
    response = _post(client, partner, f'/api/delivery/orders/{order.id}/pickup')
    assert response.status_code == 200
    assert order.status == 'out_for_delivery'


def test_only_assigned_partner_can_pick_up(client, make_user, partner, order, move):
    move(order, 'confirmed')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    move(order, 'preparing', 'ready')

    rival = make_user('delivery_partner')
    assert _post(client, rival, f'/api/delivery/orders/{order.id}/pickup').status_code == 403


def test_delivery_requires_matching_otp(client, customer, partner, restaurant, order, move):
    move(order, 'confirmed', 'preparing', 'ready')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')

    wrong = '0000' if order.delivery_otp != '0000' else '1111'
    response = _post(client, partner, f'/api/delivery/orders/{order.id}/deliver', {'otp': wrong})
    assert response.status_code == 400
    assert order.status == 'out_for_delivery'

    assert _post(client, partner, f'/api/delivery/orders/{order.id}/deliver').status_code == 400

    response = _post(client, partner, f'/api/delivery/orders/{order.id}/deliver', {'otp': order.delivery_otp})
    assert response.status_code == 200
    assert order.status == 'delivered'
    assert order.payment_status == 'completed'
    assert order.delivered_at is not None
    assert restaurant.total_orders == 1
    assert Notification.query.filter_by(recipient_id=customer.id, type='order_delivered').count() == 1


def test_cannot_deliver_before_pickup(client, partner, order, move):
    move(order, 'confirmed')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    response = _post(client, partner, f'/api/delivery/orders/{order.id}/deliver', {'otp': order.delivery_otp})
    assert response.status_code == 400
    assert order.status == 'confirmed'


def test_history_and_stats(client, partner, order, move):
    move(order, 'confirmed', 'preparing', 'ready')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    _post(client, partner, f'/api/delivery/orders/{order.id}/deliver', {'otp': order.delivery_otp})

    history = client.get('/api/delivery/orders/history', headers=auth_header(partner)).get_json()
    assert [o['id'] for o in history['orders']] == [order.id]

    stats = client.get('/api/delivery/stats', headers=auth_header(partner)).get_json()['stats']
    assert stats['total_deliveries'] == 1
    assert stats['today_deliveries'] == 1
    assert stats['active_orders'] == 0
    assert stats['total_earnings'] == order.delivery_fee


def test_location_update_records_tracking_point(client, customer, partner, order, move):
    move(order, 'confirmed', 'preparing', 'ready')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')

    response = client.put('/api/delivery/location', json={
        'latitude': 12.975, 'longitude': 77.6, 'order_id': order.id
    }, headers=auth_header(partner))
    assert response.status_code == 200
    assert response.get_json()['order_id'] == order.id
    assert partner.latitude == 12.975

    tracking = client.get(f'/api/orders/{order.id}/tracking', headers=auth_header(customer)).get_json()['tracking']
    assert tracking['current_location']['latitude'] == 12.975
    assert len(tracking['tracking_history']) == 1
    assert tracking['delivery_partner']['name'] == partner.name


def test_location_update_validates_coordinates(client, partner):
    missing = client.put('/api/delivery/location', json={'latitude': 12.9}, headers=auth_header(partner))
    assert missing.status_code == 400
    out_of_range = client.put('/api/delivery/location', json={'latitude': 120, 'longitude': 77},
                              headers=auth_header(partner))
    assert out_of_range.status_code == 400


def test_location_for_order_not_in_transit_only_moves_partner(client, partner, order, move):
    move(order, 'confirmed')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    response = client.put('/api/delivery/location', json={
        'latitude': 12.975, 'longitude': 77.6, 'order_id': order.id
    }, headers=auth_header(partner))

    assert response.get_json()['order_id'] is None
    assert order.tracking_history == []


def test_restaurant_cancel_informs_assigned_partner(client, owner, partner, order, move):
    move(order, 'confirmed')
    _post(client, partner, f'/api/delivery/orders/{order.id}/accept')
    move(order, 'cancelled')

    history = client.get('/api/delivery/orders/history', headers=auth_header(partner)).get_json()
    assert [o['status'] for o in history['orders']] == ['cancelled']
