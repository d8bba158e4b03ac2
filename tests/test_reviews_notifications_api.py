from datetime import datetime, timedelta
import pytest
from flashbites import db
from flashbites.models.models import Notification, Order
from flashbites.services.notification_service import NotificationService
from tests.conftest import auth_header


@pytest.fixture
def delivered_order(client, customer, admin, restaurant, menu_item, place_order):
    def _deliver(quantity=1):
        response = place_order(customer, restaurant, [{'menu_item_id': menu_item.id, 'quantity': quantity}])
        order = db.session.get(Order, response.get_json()['order']['id'])
        for status in ('confirmed', 'out_for_delivery', 'delivered'):
            client.patch(f'/api/orders/{order.id}/status', json={'status': status}, headers=auth_header(admin))
        return order
    return _deliver


def _review(client, user, order, rating, comment=None):
    return client.post('/api/reviews', json={'order_id': order.id, 'rating': rating, 'comment': comment},
                       headers=auth_header(user))


def test_review_updates_restaurant_rating(client, customer, restaurant, delivered_order):
    first = delivered_order(1)
    second = delivered_order(2)

    response = _review(client, customer, first, 5, 'Loved it')
    assert response.status_code == 201
    assert response.get_json()['restaurant_rating'] == 5.0

    _review(client, customer, second, 4)
    assert restaurant.rating == 4.5
    assert restaurant.total_reviews == 2

    listed = client.get(f'/api/restaurants/{restaurant.id}/reviews').get_json()
    assert listed['total'] == 2
    assert {r['rating'] for r in listed['reviews']} == {4, 5}


def test_rating_is_rounded_to_one_decimal(client, customer, restaurant, delivered_order):
    for quantity, stars in ((1, 5), (2, 4), (3, 4)):
        _review(client, customer, delivered_order(quantity), stars)
    assert restaurant.rating == 4.3


def test_order_can_only_be_reviewed_once(client, customer, delivered_order):
    order = delivered_order()
    assert _review(client, customer, order, 5).status_code == 201
    assert _review(client, customer, order, 1).status_code == 400


def test_review_rules(client, customer, make_user, restaurant, menu_item, place_order, delivered_order):
    pending = place_order(customer, restaurant, [{'menu_item_id': menu_item.id, 'quantity': 5}])
    pending = db.session.get(Order, pending.get_json()['order']['id'])
    assert _review(client, customer, pending, 5).status_code == 400

    order = delivered_order()
    assert _review(client, customer, order, 6).status_code == 400
    assert _review(client, customer, order, 'great').status_code == 400
    assert _review(client, make_user('user'), order, 5).status_code == 403


def test_notifications_listing_and_read_state(client, customer, restaurant, menu_item, place_order):
    place_order(customer, restaurant, [{'menu_item_id': menu_item.id, 'quantity': 1}])

    body = client.get('/api/notifications', headers=auth_header(customer)).get_json()
    assert body['unread_count'] == 1
    notification = body['notifications'][0]
    assert notification['type'] == 'order_placed'

    response = client.patch(f"/api/notifications/{notification['id']}/read", headers=auth_header(customer))
    assert response.get_json()['notification']['read'] is True

    count = client.get('/api/notifications/unread-count', headers=auth_header(customer)).get_json()
    assert count['count'] == 0


def test_mark_all_read_and_unread_filter(client, customer):
    service = NotificationService()
    for i in range(3):
        service.create_notification(customer.id, 'promo', f'Offer {i}', 'Flat 50 off')
    db.session.commit()

    unread = client.get('/api/notifications?unreadOnly=true', headers=auth_header(customer)).get_json()
    assert len(unread['notifications']) == 3

    response = client.patch('/api/notifications/read-all', headers=auth_header(customer))
    assert response.get_json()['updated'] == 3
    unread = client.get('/api/notifications?unreadOnly=true', headers=auth_header(customer)).get_json()
    assert unread['notifications'] == []


def test_expired_notifications_are_hidden(client, customer):
    service = NotificationService()
    stale = service.create_notification(customer.id, 'promo', 'Old offer', 'Expired')
    service.create_notification(customer.id, 'promo', 'New offer', 'Still valid')
    db.session.flush()
    stale.expires_at = datetime.utcnow() - timedelta(days=1)
    db.session.commit()

    body = client.get('/api/notifications', headers=auth_header(customer)).get_json()
    assert [n['title'] for n in body['notifications']] == ['New offer']


def test_notifications_are_private(client, customer, make_user):
    notification = NotificationService().create_notification(customer.id, 'promo', 'Offer', 'Hi')
    db.session.commit()
    other = make_user('user')
    response = client.patch(f'/api/notifications/{notification.id}/read', headers=auth_header(other))
    assert response.status_code == 404


def test_notification_expiry_defaults_to_thirty_days(app, customer):
    notification = NotificationService().create_notification(customer.id, 'promo', 'Offer', 'Hi')
    db.session.commit()
    assert timedelta(days=29) < notification.expires_at - datetime.utcnow() <= timedelta(days=30)


def test_cash_on_delivery_reminder(client, customer, admin, restaurant, menu_item, place_order):
    response = place_order(customer, restaurant, [{'menu_item_id': menu_item.id, 'quantity': 1}])
    order_id = response.get_json()['order']['id']
    for status in ('confirmed', 'out_for_delivery'):
        client.patch(f'/api/orders/{order_id}/status', json={'status': status}, headers=auth_header(admin))

    types = [n.type for n in Notification.query.filter_by(recipient_id=customer.id).all()]
    assert 'payment_reminder' in types
    assert 'order_picked_up' in types
