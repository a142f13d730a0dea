"""Currency formatting for receipts and invoice descriptions."""

# Currencies that don't use decimal places (smallest unit is whole currency)
zero_decimal_currencies = [
    "JPY",
    "KRW",
    "VND",
    "CLP",
    "ISK",
    "TWD",
]

currency_symbols = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "INR": "₹",
    "BRL": "R$",
    "KRW": "₩",
}


def format_amount_for_currency(amount: int, currency: str) -> str:
    """
    Format an amount in the smallest currency unit to a human-readable string.

    Args:
        amount: Amount in smallest currency unit (cents for USD, whole yen for JPY)
        currency: ISO 4217 currency code (case-insensitive, plans store lowercase)

    Returns:
        Formatted string with currency symbol and amount

    Examples:
        >>> format_amount_for_currency(1999, "usd")
        '$19.99 USD'
        >>> format_amount_for_currency(1000, "JPY")
        '¥1,000 JPY'
    """
    currency_upper = currency.upper()
    symbol = currency_symbols.get(currency_upper, "")

    if currency_upper in zero_decimal_currencies:
        return f"{symbol}{amount:,} {currency_upper}"
    return f"{symbol}{amount / 100.0:,.2f} {currency_upper}"
