from subtrack.config import settings

CURRENCY_SYMBOLS: dict[str, str] = {
    "NOK": "kr",
    "SEK": "kr",
    "DKK": "kr",
    "ISK": "kr",
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "CHF": "CHF",
    "PLN": "zł",
    "CAD": "C$",
    "AUD": "A$",
    "JPY": "¥",
}

_PREFIX_SYMBOLS = {"€", "$", "£", "¥", "C$", "A$"}


def resolve_currency(code: str | None) -> str:
    if not code:
        return settings.default_currency
    return code.strip().upper()


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get(code, code)


def format_amount(amount: float, currency_code: str | None = None) -> str:
    sym = currency_symbol(resolve_currency(currency_code))
    if sym in _PREFIX_SYMBOLS:
        return f"{sym}{amount:,.2f}"
    return f"{amount:,.2f} {sym}"


def to_cents(amount: float) -> int:
    """Absolute amount in minor units, used as an equality key."""
    return int(round(abs(amount) * 100))
