from typing import Iterable, Union


def is_valid_balance(balance: str) -> bool:
    """
    Check that a balance is a decimal string of a non-negative integer.

    Args:
        balance: Balance in the smallest on-chain unit

    Returns:
        bool: True if valid, False otherwise
    """
    return isinstance(balance, str) and balance.isascii() and balance.isdigit()


def normalize_balance(value: Union[str, int]) -> str:
    """
    Convert a raw on-chain amount to its canonical decimal string.

    Raises:
        ValueError: If value is negative, fractional or not a number
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid balance value: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Balance must be non-negative: {value}")
        return str(value)
    if isinstance(value, str) and is_valid_balance(value.strip()):
        return str(int(value.strip()))
    raise ValueError(f"Invalid balance value: {value!r}")


def sum_balances(balances: Iterable[str]) -> str:
    """
    Add decimal-string balances exactly.

    Python integers are arbitrary precision, so the sum never loses digits
    the way a float total would.
    """
    total = 0
    for balance in balances:
        total += int(normalize_balance(balance))
    return str(total)

