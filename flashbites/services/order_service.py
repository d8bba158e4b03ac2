"""Order placement, status changes and delivery hand-off.

Routes stay thin: every rule about who may do what to an order lives here,
and every notification is sent after the database change is committed.
"""
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from flask import current_app
from flashbites import db
from flashbites.errors import APIError, Forbidden, NotFound
from flashbites.models.models import Address, MenuItem, Order, OrderItem, Restaurant, TrackingPoint, User
from flashbites.services.cart import Cart
from flashbites.services.coupons import CouponService
from flashbites.services.location_service import LocationService
from flashbites.services.notification_service import NotificationService
from flashbites.services.order_lifecycle import (
    ASSIGNABLE_STATUSES, PAYMENT_METHODS, OrderStatus, PaymentMethod, apply_transition,
    check_cancellation_eligibility, check_transition, parse_status
)
from flashbites.services.pricing import build_quote, delivery_fee_for, money, parse_delivery_minutes


def generate_delivery_otp() -> str:
    return str(1000 + secrets.randbelow(9000))


class OrderService:
    def __init__(self, coupon_service=None, notification_service=None, location_service=None):
        self.coupons = coupon_service or CouponService()
        self.notifications = notification_service or NotificationService()
        self.locations = location_service or LocationService()

    # Lookups and permissions

    def get_order(self, order_id) -> Order:
        order = db.session.get(Order, order_id)
        if not order:
            raise NotFound('Order not found')
        return order

    def can_view(self, order: Order, user: User) -> bool:
        if user.role == 'admin' or order.user_id == user.id:
            return True
        if order.delivery_partner_id is not None and order.delivery_partner_id == user.id:
            return True
        return user.role == 'restaurant_owner' and order.restaurant.owner_id == user.id

    def get_visible_order(self, order_id, user: User) -> Order:
        order = self.get_order(order_id)
        if not self.can_view(order, user):
            raise Forbidden('Not authorized to view this order')
        return order

    # Pricing

    def _resolve_address(self, user: User, data: Dict) -> Tuple[Optional[Address], Dict, Optional[Tuple[float, float]]]:
        """Return (saved address, snapshot, coordinates) for the request"""
        address_id = data.get('address_id')
        if address_id:
            address = Address.query.filter_by(id=address_id, user_id=user.id).first()
            if not address:
                raise NotFound('Address not found')
            return address, address.to_dict(), address.coordinates

        inline = data.get('delivery_address')
        if not inline:
            raise APIError('Delivery address is required')
        if not isinstance(inline, dict):
            raise APIError('Delivery address must be an object')

        snapshot = dict(inline)
        lat, lng = snapshot.get('latitude'), snapshot.get('longitude')
        if lat is not None and lng is not None:
            try:
                coords = (float(lat), float(lng))
            except (TypeError, ValueError):
                raise APIError('Invalid delivery coordinates')
        else:
            query = ', '.join(str(snapshot[k]) for k in ('street', 'city', 'state', 'zip_code') if snapshot.get(k))
            coords = self.locations.geocode_address(query) if query else None
            if coords:
                snapshot['latitude'], snapshot['longitude'] = coords
        return None, snapshot, coords

    def _price_lines(self, restaurant: Restaurant, items: List[Dict]) -> Tuple[float, List[Dict]]:
        try:
            cart = Cart.from_request(restaurant.id, items)
        except ValueError as e:
            raise APIError(str(e))

        subtotal = 0.0
        lines = []
        for line in cart.items:
            try:
                menu_item_id = int(line['menu_item_id'])
            except (TypeError, ValueError):
                raise APIError(f"Invalid menu item id {line['menu_item_id']}")
            menu_item = db.session.get(MenuItem, menu_item_id)
            if not menu_item:
                raise NotFound(f'Menu item {menu_item_id} not found')
            if menu_item.restaurant_id != restaurant.id:
                raise APIError(f'{menu_item.name} is not on the menu of {restaurant.name}. '
                               f'A cart can only contain items from one restaurant')
            if not menu_item.is_available:
                raise APIError(f'{menu_item.name} is not available')

            price = menu_item.price
            # A variant only applies to items that offer variants
            variant_name = line['selected_variant'] if menu_item.has_variants else None
            if variant_name:
                variant = menu_item.find_variant(variant_name)
                if not variant:
                    raise APIError(f'Variant "{variant_name}" not found for {menu_item.name}')
                if not variant.is_available:
                    raise APIError(f'{menu_item.name} ({variant_name}) is not available')
                price = variant.price

            subtotal += price * line['quantity']
            lines.append({
                'menu_item': menu_item,
                'name': menu_item.name,
                'quantity': line['quantity'],
                'price': price,
                'selected_variant': variant_name
            })
        return money(subtotal), lines

    def price_order(self, restaurant: Restaurant, items: List[Dict], address_coords,
                    coupon_code: Optional[str] = None, now: Optional[datetime] = None) -> Tuple[Dict, List[Dict], object]:
        """Quote for a cart: ``(quote, lines, coupon)``"""
        config = current_app.config
        subtotal, lines = self._price_lines(restaurant, items)
        delivery_fee, distance = delivery_fee_for(restaurant.coordinates, address_coords,
                                                  config['DEFAULT_DELIVERY_FEE'])

        coupon, discount = None, 0.0
        if coupon_code:
            try:
                coupon, discount = self.coupons.validate_coupon(coupon_code, subtotal, now)
            except NotFound as e:
                raise APIError(e.message)

        quote = build_quote(subtotal, delivery_fee, discount, config['TAX_RATE'])
        quote['distance_km'] = distance
        quote['coupon_code'] = coupon.code if coupon else None
        quote['minimum_order_value'] = config['MINIMUM_ORDER_VALUE']
        quote['amount_to_minimum'] = money(max(0.0, config['MINIMUM_ORDER_VALUE'] - subtotal))
        return quote, lines, coupon

    def _get_orderable_restaurant(self, restaurant_id) -> Restaurant:
        if not restaurant_id:
            raise APIError('Restaurant ID is required')
        restaurant = db.session.get(Restaurant, restaurant_id)
        if not restaurant:
            raise NotFound('Restaurant not found')
        if not restaurant.is_available:
            raise APIError('Restaurant is not available')
        if not restaurant.accepting_orders:
            raise APIError('Restaurant is currently not accepting orders')
        return restaurant

    def quote(self, user: User, data: Dict, now: Optional[datetime] = None) -> Dict:
        restaurant = self._get_orderable_restaurant(data.get('restaurant_id'))
        if not data.get('items'):
            raise APIError('Order must contain at least one item')

        coords = None
        if data.get('address_id') or data.get('delivery_address'):
            _, _, coords = self._resolve_address(user, data)
        quote, _, _ = self.price_order(restaurant, data['items'], coords, data.get('coupon_code'), now)
        return quote

    # Placing orders

    def create_order(self, user: User, data: Dict, now: Optional[datetime] = None) -> Tuple[Order, bool]:
        """Place an order; returns ``(order, created)``.

        ``created`` is False when an identical order placed moments ago is
        returned instead of a new one.
        """
        now = now or datetime.utcnow()
        config = current_app.config

        restaurant = self._get_orderable_restaurant(data.get('restaurant_id'))
        if not data.get('items'):
            raise APIError('Order must contain at least one item')
        if not data.get('address_id') and not data.get('delivery_address'):
            raise APIError('Delivery address is required')

        payment_method = data.get('payment_method') or PaymentMethod.COD.value
        if payment_method not in PAYMENT_METHODS:
            raise APIError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")

        address, snapshot, coords = self._resolve_address(user, data)
        quote, lines, coupon = self.price_order(restaurant, data['items'], coords, data.get('coupon_code'), now)

        if quote['subtotal'] < config['MINIMUM_ORDER_VALUE']:
            raise APIError(f"Minimum order value is ₹{config['MINIMUM_ORDER_VALUE']:g}",
                           payload={'amount_to_minimum': quote['amount_to_minimum']})

        window = timedelta(seconds=config['DUPLICATE_ORDER_WINDOW_SECONDS'])
        recent = Order.query.filter(
            Order.user_id == user.id,
            Order.restaurant_id == restaurant.id,
            Order.total == quote['total'],
            Order.created_at >= now - window
        ).first()
        if recent:
            current_app.logger.warning(f"Duplicate order detected, returning existing order {recent.id}")
            return recent, False

        if coupon:
            self.coupons.redeem(coupon)

        delivery_minutes = parse_delivery_minutes(restaurant.delivery_time, config['DEFAULT_DELIVERY_MINUTES'])
        order = Order(
            user_id=user.id,
            restaurant_id=restaurant.id,
            address_id=address.id if address else None,
            delivery_address=snapshot,
            subtotal=quote['subtotal'],
            delivery_fee=quote['delivery_fee'],
            distance_km=quote['distance_km'],
            tax=quote['tax'],
            discount=quote['discount'],
            coupon_code=quote['coupon_code'],
            total=quote['total'],
            payment_method=payment_method,
            payment_status='pending',
            status=OrderStatus.PENDING.value,
            delivery_instructions=data.get('delivery_instructions'),
            delivery_otp=generate_delivery_otp(),
            estimated_delivery=now + timedelta(minutes=delivery_minutes),
            created_at=now,
            updated_at=now
        )
        for line in lines:
            order.items.append(OrderItem(
                menu_item_id=line['menu_item'].id,
                name=line['name'],
                quantity=line['quantity'],
                price=line['price'],
                selected_variant=line['selected_variant'],
                image=line['menu_item'].image
            ))

        db.session.add(order)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            f"Order {order.id} created for restaurant {restaurant.id}: subtotal {order.subtotal}, "
            f"delivery {order.delivery_fee}, discount {order.discount}, total {order.total}"
        )
        if payment_method != PaymentMethod.COD.value:
            current_app.logger.warning(f"Order {order.id} awaits {payment_method} payment confirmation")

        self._safely(self.notifications.notify_order_placed, order)
        return order, True

    # Status changes

    def update_status(self, order: Order, actor: User, status, reason: Optional[str] = None,
                      now: Optional[datetime] = None) -> Order:
        """Status change requested by a restaurant owner or an admin"""
        target = parse_status(status)
        if actor.role == 'restaurant_owner' and order.restaurant.owner_id != actor.id:
            raise Forbidden('Not authorized to update this order')
        check_transition(order.status, target, actor.role)

        if target == OrderStatus.CANCELLED:
            order.cancellation_fee = 0.0
            reason = reason or ('Cancelled by restaurant' if actor.role == 'restaurant_owner' else 'Cancelled by admin')
        self._transition(order, target, now, reason)
        current_app.logger.info(f"Order {order.id} moved to {target.value} by {actor.role} {actor.id}")

        self._safely(self._announce_status, order, target)
        return order

    def cancel_by_customer(self, order: Order, user: User, reason: Optional[str] = None,
                           now: Optional[datetime] = None) -> Order:
        if order.user_id != user.id:
            raise Forbidden('Not authorized')

        eligibility = self.cancellation_eligibility(order, now)
        if not eligibility['allowed']:
            raise APIError(eligibility['reason'], payload={'can_cancel': False, 'fee': eligibility['fee']})

        order.cancellation_fee = eligibility['fee']
        self._transition(order, OrderStatus.CANCELLED, now, reason or 'Cancelled by user')
        current_app.logger.info(f"Order {order.id} cancelled by customer, refund {order.refund_amount}")

        self._safely(self._announce_status, order, OrderStatus.CANCELLED, by_customer=True)
        return order

    def cancellation_eligibility(self, order: Order, now: Optional[datetime] = None) -> Dict:
        return check_cancellation_eligibility(order, now, current_app.config['FREE_CANCELLATION_SECONDS'])

    def _transition(self, order: Order, target: OrderStatus, now: Optional[datetime], reason: Optional[str] = None):
        now = now or datetime.utcnow()
        apply_transition(order, target, now=now, reason=reason,
                         commission_rate=current_app.config['DEFAULT_COMMISSION_RATE'])
        order.updated_at = now
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def _announce_status(self, order: Order, target: OrderStatus, by_customer: bool = False):
        self.notifications.notify_order_status(order, target)

        if target in (OrderStatus.CONFIRMED, OrderStatus.READY) and order.delivery_partner_id is None:
            self.notifications.notify_partners_order_available(order)

        if target == OrderStatus.READY and order.delivery_partner_id is not None:
            self.notifications.notify_partner(order.delivery_partner_id, 'order-ready', order)

        if target == OrderStatus.OUT_FOR_DELIVERY and order.payment_method == PaymentMethod.COD.value:
            self.notifications.notify_payment_reminder(order)

        if target == OrderStatus.CANCELLED:
            if order.delivery_partner_id is not None:
                self.notifications.notify_partner(order.delivery_partner_id, 'order-cancelled', order)
            if by_customer:
                self.notifications.notify_restaurant_status_change(
                    order, target.value,
                    message=f"Order #{order.reference} was cancelled by customer",
                    event_type='ORDER_CANCELLED'
                )
                return

        if target in (OrderStatus.CONFIRMED, OrderStatus.READY, OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            self.notifications.notify_restaurant_status_change(order, target.value)

    def _safely(self, fn, *args, **kwargs):
        """Notifications never fail the request that triggered them"""
        try:
            fn(*args, **kwargs)
        except Exception as e:
            current_app.logger.error(f"Notification error (non-fatal) in {fn.__name__}: {e}")

    # Delivery partners

    def accept_delivery(self, order: Order, partner: User, now: Optional[datetime] = None) -> Order:
        if order.delivery_partner_id is not None:
            raise APIError('Order already assigned to another delivery partner')
        if order.status not in [s.value for s in ASSIGNABLE_STATUSES]:
            raise APIError('Order is not available for delivery')

        # Claim atomically so two partners cannot accept the same order
        claimed = Order.query.filter(
            Order.id == order.id,
            Order.delivery_partner_id.is_(None)
        ).update({'delivery_partner_id': partner.id}, synchronize_session=False)
        if not claimed:
            db.session.rollback()
            raise APIError('Order already assigned to another delivery partner')
        db.session.commit()
        db.session.refresh(order)

        picked_up = order.status == OrderStatus.READY.value
        if picked_up:
            self._transition(order, OrderStatus.OUT_FOR_DELIVERY, now)
        current_app.logger.info(f"Order {order.id} accepted by delivery partner {partner.id}")

        self._safely(self.notifications.notify_delivery_assigned, order, partner)
        if picked_up:
            self._safely(self._announce_status, order, OrderStatus.OUT_FOR_DELIVERY)
        return order

    def _check_assigned(self, order: Order, partner: User):
        if order.delivery_partner_id != partner.id:
            raise Forbidden('You are not assigned to this order')

    def pickup(self, order: Order, partner: User, now: Optional[datetime] = None) -> Order:
        self._check_assigned(order, partner)
        if order.status != OrderStatus.READY.value:
            raise APIError('Order is not ready for pickup')
        check_transition(order.status, OrderStatus.OUT_FOR_DELIVERY, partner.role)
        self._transition(order, OrderStatus.OUT_FOR_DELIVERY, now)

        self._safely(self._announce_status, order, OrderStatus.OUT_FOR_DELIVERY)
        return order

    def mark_delivered(self, order: Order, partner: User, otp, now: Optional[datetime] = None) -> Order:
        self._check_assigned(order, partner)
        if order.status != OrderStatus.OUT_FOR_DELIVERY.value:
            raise APIError('Order is not out for delivery')
        if not otp:
            raise APIError('Delivery OTP is required')
        if str(otp).strip() != order.delivery_otp:
            raise APIError('Invalid delivery OTP')
        check_transition(order.status, OrderStatus.DELIVERED, partner.role)
        self._transition(order, OrderStatus.DELIVERED, now)
        current_app.logger.info(f"Order {order.id} delivered by partner {partner.id}")

        self._safely(self._announce_status, order, OrderStatus.DELIVERED)
        return order

    def update_partner_location(self, partner: User, latitude, longitude, order_id=None,
                                now: Optional[datetime] = None) -> Optional[Order]:
        if latitude is None or longitude is None:
            raise APIError('Latitude and longitude are required')
        try:
            latitude, longitude = float(latitude), float(longitude)
        except (TypeError, ValueError):
            raise APIError('Latitude and longitude must be numbers')
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            raise APIError('Coordinates out of range')

        now = now or datetime.utcnow()
        partner.latitude, partner.longitude = latitude, longitude
        partner.last_location_update = now

        order = None
        if order_id:
            order = Order.query.filter_by(
                id=order_id,
                delivery_partner_id=partner.id,
                status=OrderStatus.OUT_FOR_DELIVERY.value
            ).first()
            if order:
                order.partner_latitude, order.partner_longitude = latitude, longitude
                order.partner_location_updated_at = now
                order.tracking_history.append(TrackingPoint(
                    latitude=latitude,
                    longitude=longitude,
                    status=order.status,
                    timestamp=now
                ))
        db.session.commit()

        if order:
            self._safely(self.notifications.location_update, order.id, latitude, longitude)
        return order

    def tracking_data(self, order: Order) -> Dict:
        restaurant = order.restaurant
        partner = order.delivery_partner
        current_location = None
        if order.partner_latitude is not None and order.partner_longitude is not None:
            current_location = {
                'latitude': order.partner_latitude,
                'longitude': order.partner_longitude,
                'last_updated': order.partner_location_updated_at.isoformat()
                if order.partner_location_updated_at else None
            }

        return {
            'order_id': order.id,
            'status': order.status,
            'estimated_delivery': order.estimated_delivery.isoformat() if order.estimated_delivery else None,
            'restaurant': {
                'name': restaurant.name,
                'address': restaurant.address,
                'location': {'latitude': restaurant.latitude, 'longitude': restaurant.longitude}
            },
            'delivery_address': order.delivery_address,
            'delivery_partner': {'name': partner.name, 'phone': partner.phone} if partner else None,
            'current_location': current_location,
            'tracking_history': [point.to_dict() for point in order.tracking_history]
        }
