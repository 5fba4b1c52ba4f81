from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

from .exceptions import ValidationError

# Smallest currency unit every stored amount is expressed in
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value, field="amount"):
    """Coerce caller input to Decimal without ever going through float."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string or Decimal, not {type(value).__name__}")
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"{field} is not a valid decimal: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def fit_field(value, field, max_digits, decimal_places):
    """Reject values a DecimalField(max_digits, decimal_places) can't hold.

    Trailing zeros don't count against the scale; a value written with more
    places than the column has is quantized down so the model validators
    accept it.
    """
    value = to_decimal(value, field)
    exponent = value.normalize().as_tuple().exponent
    if exponent < 0 and -exponent > decimal_places:
        raise ValidationError(f"{field} allows at most {decimal_places} decimal places: {value}")
    # digits left of the point
    whole = value.copy_abs().to_integral_value(rounding=ROUND_DOWN)
    if whole and whole.adjusted() + 1 > max_digits - decimal_places:
        raise ValidationError(f"{field} is too large: {value}")
    if value.as_tuple().exponent < -decimal_places:
        value = value.quantize(Decimal(1).scaleb(-decimal_places))
    return value


def round_money(value):
    """Round half-up to the currency's minimal unit."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def is_whole_cents(value):
    return value == value.quantize(CENT)
