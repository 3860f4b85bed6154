from decimal import Decimal, Context, ROUND_HALF_UP
from typing import Union

from kandel.core.errors import InvalidPrice

Amount = Union[Decimal, int, str, float]

# 18-decimal tokens with large notionals need far more than the default 28 digits.
DECIMAL_CONTEXT = Context(prec=78, rounding=ROUND_HALF_UP)

def to_decimal(value: Amount) -> Decimal:
    """Converts ints, numeric strings and floats (through str) into a Decimal."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)

def round_to_decimals(value: Amount, decimals: int) -> Decimal:
    """
    Rounds half-up (ties away from zero) to a fixed number of decimals.
    E.g., round_to_decimals("0.125", 2) -> Decimal("0.13")
    """
    exponent = Decimal(1).scaleb(-decimals)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP, context=DECIMAL_CONTEXT)

def _checked_price(price: Amount) -> Decimal:
    price = to_decimal(price)
    if price <= 0:
        raise InvalidPrice(f"Price must be > 0, got {price}.")
    return price

class DecimalPolicy:
    """
    Rounds base and quote amounts to their token's precision and converts
    between them given a price. Conversions are not mutual inverses: deriving
    base from a rounded quote can differ by one unit in the last place.
    """

    def __init__(self, base_decimals: int, quote_decimals: int):
        self.base_decimals = base_decimals
        self.quote_decimals = quote_decimals

    def round_base(self, base: Amount) -> Decimal:
        return round_to_decimals(base, self.base_decimals)

    def round_quote(self, quote: Amount) -> Decimal:
        return round_to_decimals(quote, self.quote_decimals)

    def quote_from_base_and_price(self, base: Amount, price: Amount) -> Decimal:
        """Quote = base * price, rounded to quote decimals."""
        price = _checked_price(price)
        return self.round_quote(DECIMAL_CONTEXT.multiply(to_decimal(base), price))

    def base_from_quote_and_price(self, quote: Amount, price: Amount) -> Decimal:
        """Base = quote / price, rounded to base decimals."""
        price = _checked_price(price)
        return self.round_base(DECIMAL_CONTEXT.divide(to_decimal(quote), price))
