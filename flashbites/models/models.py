from flashbites import db
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash

def _iso(value):
    return value.isoformat() if value else None

class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(20), unique=True)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(30), nullable=False, default='user')  # user, restaurant_owner, delivery_partner, admin
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Last known position, only tracked for delivery partners
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    last_location_update = db.Column(db.DateTime)

    # Relationships
    orders = db.relationship('Order', backref='user', lazy=True, foreign_keys='Order.user_id')
    addresses = db.relationship('Address', backref='user', lazy=True, cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'created_at': _iso(self.created_at)
        }

class Address(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    label = db.Column(db.String(50), default='home')
    street = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100))
    zip_code = db.Column(db.String(20))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)

    def to_dict(self):
        return {
            'id': self.id,
            'label': self.label,
            'street': self.street,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'is_default': self.is_default
        }

class Restaurant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text)
    cuisines = db.Column(db.JSON, default=list)
    address = db.Column(db.JSON, default=dict)  # street, city, state, zip_code, landmark
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    image = db.Column(db.String(500))
    opening_time = db.Column(db.String(5), default='09:00')
    closing_time = db.Column(db.String(5), default='22:00')
    delivery_time = db.Column(db.String(50), default='30-40 mins')
    rating = db.Column(db.Float, default=0.0)
    total_reviews = db.Column(db.Integer, default=0)
    total_orders = db.Column(db.Integer, default=0)
    total_earnings = db.Column(db.Float, default=0.0)
    commission_rate = db.Column(db.Float)  # percent, falls back to DEFAULT_COMMISSION_RATE
    is_active = db.Column(db.Boolean, default=True)
    is_approved = db.Column(db.Boolean, default=False)
    accepting_orders = db.Column(db.Boolean, default=True)
    is_pure_veg = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = db.relationship('User', backref=db.backref('restaurants', lazy=True))
    menu_items = db.relationship('MenuItem', backref='restaurant', lazy=True, cascade='all, delete-orphan')
    orders = db.relationship('Order', backref='restaurant', lazy=True)

    @property
    def coordinates(self):
        return (self.latitude, self.longitude)

    @property
    def is_available(self):
        return bool(self.is_active and self.is_approved)

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'description': self.description,
            'cuisines': self.cuisines or [],
            'address': self.address or {},
            'location': {'latitude': self.latitude, 'longitude': self.longitude},
            'image': self.image,
            'timing': {'open': self.opening_time, 'close': self.closing_time},
            'delivery_time': self.delivery_time,
            'rating': self.rating,
            'total_reviews': self.total_reviews,
            'total_orders': self.total_orders,
            'is_active': self.is_active,
            'is_approved': self.is_approved,
            'accepting_orders': self.accepting_orders,
            'is_pure_veg': self.is_pure_veg
        }

class MenuItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurant.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(200), nullable=False)
    price = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(100), nullable=False)  # Starters, Main Course, Desserts, ...
    image = db.Column(db.String(500))
    is_veg = db.Column(db.Boolean, default=True)
    is_available = db.Column(db.Boolean, default=True)
    tags = db.Column(db.JSON, default=list)
    prep_time = db.Column(db.Integer, default=20)  # in minutes
    spice_level = db.Column(db.String(20), default='Medium')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    variants = db.relationship('MenuItemVariant', backref='menu_item', lazy=True, cascade='all, delete-orphan')

    @property
    def has_variants(self):
        return len(self.variants) > 0

    def find_variant(self, name):
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'restaurant_id': self.restaurant_id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'category': self.category,
            'image': self.image,
            'is_veg': self.is_veg,
            'is_available': self.is_available,
            'tags': self.tags or [],
            'prep_time': self.prep_time,
            'spice_level': self.spice_level,
            'has_variants': self.has_variants,
            'variants': [v.to_dict() for v in self.variants]
        }

class MenuItemVariant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey('menu_item.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)  # e.g. "Regular (7\")", "Half"
    price = db.Column(db.Float, nullable=False)
    is_available = db.Column(db.Boolean, default=True)

    def to_dict(self):
        return {'name': self.name, 'price': self.price, 'is_available': self.is_available}

class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    restaurant_id = db.Column(db.Integer, db.ForeignKey('restaurant.id'), nullable=False)
    address_id = db.Column(db.Integer, db.ForeignKey('address.id'))
    delivery_partner_id = db.Column(db.Integer, db.ForeignKey('user.id'))
    delivery_address = db.Column(db.JSON)  # snapshot: street, city, state, zip_code, latitude, longitude

    subtotal = db.Column(db.Float, nullable=False)
    delivery_fee = db.Column(db.Float, nullable=False)
    distance_km = db.Column(db.Float)
    tax = db.Column(db.Float, default=0.0)
    discount = db.Column(db.Float, default=0.0)
    coupon_code = db.Column(db.String(50))
    total = db.Column(db.Float, nullable=False)

    payment_method = db.Column(db.String(20), default='cod')  # cod, card, upi
    payment_status = db.Column(db.String(20), default='pending')  # pending, completed, failed, refunded
    status = db.Column(db.String(30), default='pending', index=True)
    delivery_instructions = db.Column(db.Text)
    delivery_otp = db.Column(db.String(4))

    estimated_delivery = db.Column(db.DateTime)
    confirmed_at = db.Column(db.DateTime)
    delivered_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    cancellation_reason = db.Column(db.Text)
    cancellation_fee = db.Column(db.Float, default=0.0)
    refund_amount = db.Column(db.Float, default=0.0)

    # Live position of the delivery partner
    partner_latitude = db.Column(db.Float)
    partner_longitude = db.Column(db.Float)
    partner_location_updated_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    items = db.relationship('OrderItem', backref='order', lazy=True, cascade='all, delete-orphan')
    tracking_history = db.relationship('TrackingPoint', backref='order', lazy=True,
                                       cascade='all, delete-orphan', order_by='TrackingPoint.timestamp')
    delivery_partner = db.relationship('User', foreign_keys=[delivery_partner_id])
    address = db.relationship('Address')

    @property
    def reference(self):
        """Short human readable order number"""
        return f"FB{self.id:06d}"

    def to_dict(self, include_otp=False):
        data = {
            'id': self.id,
            'order_number': self.reference,
            'user_id': self.user_id,
            'restaurant_id': self.restaurant_id,
            'restaurant_name': self.restaurant.name if self.restaurant else None,
            'address_id': self.address_id,
            'delivery_address': self.delivery_address,
            'delivery_partner_id': self.delivery_partner_id,
            'items': [item.to_dict() for item in self.items],
            'subtotal': self.subtotal,
            'delivery_fee': self.delivery_fee,
            'distance_km': self.distance_km,
            'tax': self.tax,
            'discount': self.discount,
            'coupon_code': self.coupon_code,
            'total': self.total,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'status': self.status,
            'delivery_instructions': self.delivery_instructions,
            'estimated_delivery': _iso(self.estimated_delivery),
            'confirmed_at': _iso(self.confirmed_at),
            'delivered_at': _iso(self.delivered_at),
            'cancelled_at': _iso(self.cancelled_at),
            'cancellation_reason': self.cancellation_reason,
            'cancellation_fee': self.cancellation_fee,
            'refund_amount': self.refund_amount,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_otp:
            data['delivery_otp'] = self.delivery_otp
        return data

class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=False)
    menu_item_id = db.Column(db.Integer, db.ForeignKey('menu_item.id'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Float, nullable=False)
    selected_variant = db.Column(db.String(100))
    image = db.Column(db.String(500))

    def to_dict(self):
        return {
            'menu_item_id': self.menu_item_id,
            'name': self.name,
            'quantity': self.quantity,
            'price': self.price,
            'selected_variant': self.selected_variant,
            'subtotal': round(self.price * self.quantity, 2)
        }

class TrackingPoint(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(30))
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'latitude': self.latitude,
            'longitude': self.longitude,
            'status': self.status,
            'timestamp': _iso(self.timestamp)
        }

class Coupon(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255))
    discount_type = db.Column(db.String(20), nullable=False)  # percentage, fixed
    discount_value = db.Column(db.Float, nullable=False)
    min_order_value = db.Column(db.Float, default=0.0)
    max_discount = db.Column(db.Float)
    valid_from = db.Column(db.DateTime, nullable=False)
    valid_till = db.Column(db.DateTime, nullable=False)
    usage_limit = db.Column(db.Integer)  # None means unlimited
    used_count = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'description': self.description,
            'discount_type': self.discount_type,
            'discount_value': self.discount_value,
            'min_order_value': self.min_order_value,
            'max_discount': self.max_discount,
            'valid_from': _iso(self.valid_from),
            'valid_till': _iso(self.valid_till),
            'usage_limit': self.usage_limit,
            'used_count': self.used_count,
            'is_active': self.is_active
        }

class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)  # order_placed, order_confirmed, new_order, ...
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, default=dict)
    read = db.Column(db.Boolean, default=False)
    priority = db.Column(db.String(10), default='medium')  # low, medium, high
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.data or {},
            'read': self.read,
            'priority': self.priority,
            'expires_at': _iso(self.expires_at),
            'created_at': _iso(self.created_at)
        }
