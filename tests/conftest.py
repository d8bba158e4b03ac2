from datetime import datetime, timedelta
import pytest
from flashbites import create_app, db
from flashbites.config import TestingConfig
from flashbites.models.models import Coupon, MenuItem, MenuItemVariant, Restaurant, User
from flashbites.routes.auth import issue_token

RESTAURANT_LOCATION = (12.9716, 77.5946)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def auth_header(user):
    return {'Authorization': f'Bearer {issue_token(user)}'}


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role='user', name=None, password='password123'):
        counter['n'] += 1
        user = User(
            name=name or f'{role.title()} {counter["n"]}',
            email=f'{role}{counter["n"]}@example.com',
            phone=f'90000{counter["n"]:05d}',
            role=role
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def customer(make_user):
    return make_user('user', name='Anita')


@pytest.fixture
def owner(make_user):
    return make_user('restaurant_owner', name='Ravi')


@pytest.fixture
def partner(make_user):
    return make_user('delivery_partner', name='Suresh')


@pytest.fixture
def admin(make_user):
    return make_user('admin', name='Admin')


@pytest.fixture
def make_restaurant(app):
    def _make(owner, approved=True, accepting_orders=True, location=RESTAURANT_LOCATION, **fields):
        restaurant = Restaurant(
            owner_id=owner.id,
            name=fields.pop('name', 'Spice Route'),
            email='spice@example.com',
            phone='9100000000',
            cuisines=fields.pop('cuisines', ['North Indian']),
            address={'street': '12 MG Road', 'city': 'Bengaluru'},
            latitude=location[0],
            longitude=location[1],
            delivery_time=fields.pop('delivery_time', '30-40 mins'),
            is_approved=approved,
            accepting_orders=accepting_orders,
            **fields
        )
        db.session.add(restaurant)
        db.session.commit()
        return restaurant
    return _make


@pytest.fixture
def restaurant(make_restaurant, owner):
    return make_restaurant(owner)


@pytest.fixture
def make_menu_item(app):
    def _make(restaurant, name='Paneer Tikka', price=249, variants=None, **fields):
        item = MenuItem(
            restaurant_id=restaurant.id,
            name=name,
            description=fields.pop('description', 'Chargrilled cottage cheese'),
            price=price,
            category=fields.pop('category', 'Starters'),
            **fields
        )
        for variant_name, variant_price in (variants or []):
            item.variants.append(MenuItemVariant(name=variant_name, price=variant_price))
        db.session.add(item)
        db.session.commit()
        return item
    return _make


@pytest.fixture
def menu_item(make_menu_item, restaurant):
    return make_menu_item(restaurant)


@pytest.fixture
def make_coupon(app):
    def _make(code='FIRST20', discount_type='percentage', discount_value=20, min_order_value=199,
              max_discount=100, usage_limit=None, valid_days=30, **fields):
        now = datetime.utcnow()
        coupon = Coupon(
            code=code,
            description=fields.pop('description', f'{code} offer'),
            discount_type=discount_type,
            discount_value=discount_value,
            min_order_value=min_order_value,
            max_discount=max_discount,
            valid_from=fields.pop('valid_from', now - timedelta(days=1)),
            valid_till=fields.pop('valid_till', now + timedelta(days=valid_days)),
            usage_limit=usage_limit,
            used_count=fields.pop('used_count', 0),
            is_active=fields.pop('is_active', True)
        )
        db.session.add(coupon)
        db.session.commit()
        return coupon
    return _make


def delivery_address(location=RESTAURANT_LOCATION):
    return {
        'street': '1 Residency Road',
        'city': 'Bengaluru',
        'latitude': location[0],
        'longitude': location[1]
    }


@pytest.fixture
def place_order(client):
    """POST an order and return the response"""
    def _place(user, restaurant, items, **payload):
        body = {
            'restaurant_id': restaurant.id,
            'items': items,
            'delivery_address': payload.pop('delivery_address', delivery_address())
        }
        body.update(payload)
        return client.post('/api/orders', json=body, headers=auth_header(user))
    return _place
