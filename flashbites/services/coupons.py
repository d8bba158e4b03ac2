from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import or_
from flashbites import db
from flashbites.errors import APIError, NotFound
from flashbites.models.models import Coupon
from flashbites.services.pricing import calculate_coupon_discount

DISCOUNT_TYPES = ('percentage', 'fixed')

COUPON_FIELDS = ('code', 'description', 'discount_type', 'discount_value', 'min_order_value',
                 'max_discount', 'valid_from', 'valid_till', 'usage_limit', 'is_active')

FLOAT_FIELDS = ('discount_value', 'min_order_value', 'max_discount')


def normalize_code(code: str) -> str:
    return (code or '').strip().upper()


def _parse_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise APIError(f'Invalid date: {value}')


def _parse_number(kind, field, value):
    if isinstance(value, bool):
        raise APIError(f'Invalid {field}')
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise APIError(f'Invalid {field}')


class CouponService:
    def find_active(self, code: str) -> Optional[Coupon]:
        return Coupon.query.filter_by(code=normalize_code(code), is_active=True).first()

    def check(self, coupon: Coupon, order_value: float, now: Optional[datetime] = None) -> float:
        """Raise APIError when the coupon cannot be used, otherwise return the discount"""
        now = now or datetime.utcnow()

        if now < coupon.valid_from or now > coupon.valid_till:
            raise APIError('Coupon has expired or is not yet valid')

        if order_value < (coupon.min_order_value or 0):
            raise APIError(f'Minimum order value of ₹{coupon.min_order_value:g} required for this coupon')

        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise APIError('Coupon usage limit reached')

        return calculate_coupon_discount(coupon.discount_type, coupon.discount_value,
                                         order_value, coupon.max_discount)

    def validate_coupon(self, code: str, order_value: float,
                        now: Optional[datetime] = None) -> Tuple[Coupon, float]:
        coupon = self.find_active(code)
        if not coupon:
            raise NotFound('Invalid coupon code')
        return coupon, self.check(coupon, order_value, now)

    def get_available_coupons(self, order_value: float, now: Optional[datetime] = None) -> List[Coupon]:
        now = now or datetime.utcnow()
        return Coupon.query.filter(
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_till >= now,
            Coupon.min_order_value <= order_value,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit)
        ).order_by(Coupon.min_order_value).all()

    def redeem(self, coupon: Coupon) -> None:
        coupon.used_count = (coupon.used_count or 0) + 1

    def create_coupon(self, data: Dict) -> Coupon:
        missing = [k for k in ('code', 'discount_type', 'discount_value', 'valid_from', 'valid_till') if k not in data]
        if missing:
            raise APIError(f"Missing required fields: {', '.join(missing)}")

        code = normalize_code(data['code'])
        if Coupon.query.filter_by(code=code).first():
            raise APIError('Coupon code already exists')

        coupon = Coupon(code=code, used_count=0)
        self._apply(coupon, data)
        db.session.add(coupon)
        return coupon

    def update_coupon(self, coupon: Coupon, data: Dict) -> Coupon:
        if 'code' in data:
            code = normalize_code(data['code'])
            existing = Coupon.query.filter_by(code=code).first()
            if existing and existing.id != coupon.id:
                raise APIError('Coupon code already exists')
        self._apply(coupon, data)
        return coupon

    def _apply(self, coupon: Coupon, data: Dict) -> None:
        for field in COUPON_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field == 'code':
                value = normalize_code(value)
            elif field in ('valid_from', 'valid_till'):
                value = _parse_datetime(value)
            elif value is not None and field in FLOAT_FIELDS:
                value = _parse_number(float, field, value)
            elif value is not None and field == 'usage_limit':
                value = _parse_number(int, field, value)
            setattr(coupon, field, value)

        if coupon.discount_type not in DISCOUNT_TYPES:
            raise APIError('Discount type must be percentage or fixed')
        if coupon.discount_value is None or coupon.discount_value <= 0:
            raise APIError('Discount value must be positive')
        if coupon.discount_type == 'percentage' and coupon.discount_value > 100:
            raise APIError('Percentage discount cannot exceed 100')
        if coupon.valid_till < coupon.valid_from:
            raise APIError('Coupon validity window is invalid')
        if coupon.min_order_value is None:
            coupon.min_order_value = 0.0
        if coupon.min_order_value < 0:
            raise APIError('Minimum order value cannot be negative')
        if coupon.max_discount is not None and coupon.max_discount < 0:
            raise APIError('Maximum discount cannot be negative')
        if coupon.usage_limit is not None and coupon.usage_limit < 0:
            raise APIError('Usage limit cannot be negative')
