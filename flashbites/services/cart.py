"""Single-restaurant cart.

A cart only ever holds items from one restaurant. Lines are keyed by menu
item id plus the selected variant, so "Onion Pizza (Large)" and
"Onion Pizza (Regular)" are separate lines.
"""
from typing import Dict, List, Optional


def cart_key(menu_item_id, variant: Optional[str] = None) -> str:
    return f"{menu_item_id}_{variant}" if variant else str(menu_item_id)


class Cart:
    def __init__(self):
        self.restaurant_id = None
        self.lines: Dict[str, Dict] = {}

    def __len__(self):
        return len(self.lines)

    @property
    def items(self) -> List[Dict]:
        return list(self.lines.values())

    def add(self, restaurant_id, menu_item_id, quantity: int = 1, variant: Optional[str] = None,
            replace_other_restaurant: bool = True) -> Dict:
        """Add ``quantity`` of an item.

        An item from another restaurant empties the cart first, unless
        ``replace_other_restaurant`` is False in which case ValueError is raised.
        """
        if self.restaurant_id is not None and self.restaurant_id != restaurant_id:
            if not replace_other_restaurant:
                raise ValueError('Cart can only contain items from one restaurant')
            self.lines = {}

        self.restaurant_id = restaurant_id
        key = cart_key(menu_item_id, variant)

        if key in self.lines:
            self.lines[key]['quantity'] += quantity
        else:
            self.lines[key] = {
                'cart_id': key,
                'menu_item_id': menu_item_id,
                'selected_variant': variant,
                'quantity': quantity
            }
        return self.lines[key]

    def update_quantity(self, key: str, quantity: int) -> None:
        if key not in self.lines:
            return
        if quantity > 0:
            self.lines[key]['quantity'] = quantity
        else:
            del self.lines[key]
        self._forget_restaurant_if_empty()

    def remove(self, key: str) -> None:
        self.lines.pop(key, None)
        self._forget_restaurant_if_empty()

    def clear(self) -> None:
        self.lines = {}
        self.restaurant_id = None

    def _forget_restaurant_if_empty(self):
        if not self.lines:
            self.restaurant_id = None

    @classmethod
    def from_request(cls, restaurant_id, items: List[Dict]) -> 'Cart':
        """Build a cart from order request lines, merging duplicates"""
        cart = cls()
        cart.restaurant_id = restaurant_id
        for item in items:
            menu_item_id = item.get('menu_item_id')
            quantity = item.get('quantity', 1)
            if menu_item_id is None:
                raise ValueError('Each item needs a menu_item_id')
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise ValueError('Item quantity must be a positive integer')
            cart.add(restaurant_id, menu_item_id, quantity, item.get('selected_variant'),
                     replace_other_restaurant=False)
        return cart
