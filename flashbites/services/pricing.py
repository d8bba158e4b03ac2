"""Price calculation for carts and orders.

Delivery charges are platform controlled: the restaurant-to-customer distance
is measured with the Haversine formula and mapped onto a fixed tier table.
Coupons reduce the subtotal, tax is charged on what remains.
"""
import math
import re
from typing import Dict, Optional, Tuple

EARTH_RADIUS_KM = 6371

# Distance tiers in km, upper bound exclusive
DELIVERY_CHARGES = [
    {'min_distance': 0, 'max_distance': 2, 'charge': 20},
    {'min_distance': 2, 'max_distance': 5, 'charge': 30},
    {'min_distance': 5, 'max_distance': 10, 'charge': 50},
    {'min_distance': 10, 'max_distance': 20, 'charge': 80},
    {'min_distance': 20, 'max_distance': math.inf, 'charge': 100},
]
FALLBACK_DELIVERY_CHARGE = 100


def money(value: float) -> float:
    return round(float(value), 2)


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (math.sin(d_lat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(d_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def calculate_delivery_charge(distance: float) -> float:
    """Flat charge for the tier the distance falls into"""
    for tier in DELIVERY_CHARGES:
        if tier['min_distance'] <= distance < tier['max_distance']:
            return tier['charge']
    return FALLBACK_DELIVERY_CHARGE


def delivery_fee_for(restaurant_coords: Optional[Tuple[float, float]],
                     address_coords: Optional[Tuple[float, float]],
                     default_fee: float) -> Tuple[float, Optional[float]]:
    """Return ``(fee, distance_km)``; distance is None when it cannot be measured"""
    if not restaurant_coords or not address_coords:
        return default_fee, None
    if None in restaurant_coords or None in address_coords:
        return default_fee, None

    distance = calculate_distance(restaurant_coords[0], restaurant_coords[1],
                                  address_coords[0], address_coords[1])
    return calculate_delivery_charge(distance), round(distance, 2)


def calculate_coupon_discount(discount_type: str, discount_value: float, order_value: float,
                              max_discount: Optional[float] = None) -> float:
    if discount_type == 'percentage':
        discount = order_value * discount_value / 100
        if max_discount and discount > max_discount:
            discount = max_discount
    else:
        discount = discount_value

    return money(max(0.0, min(discount, order_value)))


def calculate_tax(taxable_amount: float, rate: float) -> float:
    return money(max(0.0, taxable_amount) * rate)


def build_quote(subtotal: float, delivery_fee: float, discount: float = 0.0,
                tax_rate: float = 0.05) -> Dict[str, float]:
    """Break an order down into its charged components"""
    subtotal = money(subtotal)
    discount = money(min(discount, subtotal))
    tax = calculate_tax(subtotal - discount, tax_rate)
    total = money(subtotal + delivery_fee + tax - discount)

    return {
        'subtotal': subtotal,
        'delivery_fee': money(delivery_fee),
        'discount': discount,
        'tax': tax,
        'total': total
    }


def parse_delivery_minutes(delivery_time: Optional[str], default: int = 30) -> int:
    """'30-40 mins' -> 30"""
    if delivery_time is None:
        return default
    match = re.match(r'\s*(\d+)', str(delivery_time))
    if not match or int(match.group(1)) == 0:
        return default
    return int(match.group(1))
