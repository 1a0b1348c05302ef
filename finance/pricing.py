"""
FINANCE App - Line Item Pricing

Pure calculations shared by estimates and invoices:
- Cascading line totals (percentage lines apply to the running total)
- Discount parsing ("10%" or a fixed amount)
- Tax on the discounted subtotal
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

ZERO = Decimal('0.00')
CENT = Decimal('0.01')


class UnitType:
    FIXED = 'fixed'
    PERCENT = 'percent'
    KG = 'kg'


def _dec(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_amount(item: Dict, running_total: Decimal) -> Decimal:
    """
    Amount contributed by one line.

    Percentage lines take `unit_price` percent of everything above them;
    fixed and per-kg lines are quantity × unit price.
    """
    if item.get('unit_type') == UnitType.PERCENT:
        return running_total * _dec(item.get('unit_price')) / Decimal('100')
    return _dec(item.get('quantity', 1)) * _dec(item.get('unit_price'))


def calculate_line_totals(items: Iterable[Dict]) -> Dict:
    """
    Walk the lines in order, accumulating a running total.

    Args:
        items: Dicts with unit_type, quantity and unit_price

    Returns:
        {'amounts': [Decimal per line], 'subtotal': Decimal}
    """
    running = Decimal('0')
    amounts: List[Decimal] = []
    for item in items:
        amount = line_amount(item, running)
        running += amount
        amounts.append(quantize(amount))
    return {'amounts': amounts, 'subtotal': quantize(running)}


def parse_discount(discount: Optional[str], subtotal: Decimal) -> Decimal:
    """
    Resolve a discount string against a subtotal.

    "10%" is ten percent of the subtotal. Anything else is read as a fixed
    amount after dropping non-numeric characters ("TZS 5,000" -> 5000).
    Blank or unreadable input gives zero.
    """
    if not discount:
        return ZERO

    text = str(discount).strip()
    try:
        if '%' in text:
            percent = Decimal(text.replace('%', '').strip())
            return quantize(subtotal * percent / Decimal('100'))

        digits = re.sub(r'[^0-9.]', '', text)
        if not digits:
            return ZERO
        return quantize(Decimal(digits))
    except InvalidOperation:
        return ZERO


def calculate_totals(items: Iterable[Dict], discount: Optional[str] = None,
                     tax_rate=0) -> Dict:
    """
    Full document totals.

    Returns:
        Dict with amounts, subtotal, discount_amount, tax_amount and total
    """
    lines = calculate_line_totals(items)
    subtotal = lines['subtotal']
    discount_amount = parse_discount(discount, subtotal)
    after_discount = subtotal - discount_amount
    tax_amount = quantize(after_discount * _dec(tax_rate) / Decimal('100'))

    return {
        'amounts': lines['amounts'],
        'subtotal': subtotal,
        'discount_amount': discount_amount,
        'tax_amount': tax_amount,
        'total': quantize(after_discount + tax_amount),
    }


# ===========================================
# STANDARD LINE ITEMS
# ===========================================

def freight_item(weight_kg, rate_per_kg, description: str = '') -> Dict:
    """Freight charged per kilogram."""
    weight = _dec(weight_kg)
    rate = _dec(rate_per_kg)
    return {
        'item_type': 'freight',
        'description': description or f"Freight charge @ {rate}/kg",
        'quantity': weight,
        'unit_price': rate,
        'unit_type': UnitType.KG,
        'weight_kg': weight,
        'amount': quantize(weight * rate),
    }


def handling_item(amount, description: str = '') -> Dict:
    amount = _dec(amount)
    return {
        'item_type': 'handling',
        'description': description or 'Handling fee',
        'quantity': Decimal('1'),
        'unit_price': amount,
        'unit_type': UnitType.FIXED,
        'weight_kg': None,
        'amount': quantize(amount),
    }


def transit_item(amount, transit_point: str = '', description: str = '') -> Dict:
    amount = _dec(amount)
    default = f"Transit fee ({transit_point})" if transit_point else 'Transit fee'
    return {
        'item_type': 'transit',
        'description': description or default,
        'quantity': Decimal('1'),
        'unit_price': amount,
        'unit_type': UnitType.FIXED,
        'weight_kg': None,
        'amount': quantize(amount),
    }
