from .errors import AmountOverflowError

MAX_AMOUNT = 2**256 - 1


def is_amount(value: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= MAX_AMOUNT


def checked_add(a: int, b: int) -> int:
    result = a + b
    if result > MAX_AMOUNT:
        raise AmountOverflowError(f"Overflow in addition: {a} + {b}")
    if result < 0:
        raise AmountOverflowError(f"Underflow in addition: {a} + {b}")
    return result


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise AmountOverflowError(f"Underflow in subtraction: {a} - {b}")
    return a - b


def checked_mul_div(a: int, b: int, c: int) -> int:
    """
    Compute floor(a * b / c) on unsigned amounts.

    The intermediate product may exceed 256 bits; only the result is bounded.
    Truncation is toward zero, so rounding dust stays with the side the
    amounts were taken from.
    """
    if c == 0:
        raise AmountOverflowError("Division by zero")
    if a < 0 or b < 0 or c < 0:
        raise AmountOverflowError("Negative values not allowed in mul_div")
    if a > MAX_AMOUNT or b > MAX_AMOUNT:
        raise AmountOverflowError(f"Input values exceed maximum: a={a}, b={b}")

    result = (a * b) // c
    if result > MAX_AMOUNT:
        raise AmountOverflowError(f"Overflow in mul_div: ({a} * {b}) / {c}")
    return result
