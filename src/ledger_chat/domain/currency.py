"""Currencies the assistant can present amounts in."""

from pydantic import BaseModel


class Currency(BaseModel):
    code: str
    symbol: str
    name: str
    decimal_digits: int = 2


CURRENCIES: dict[str, Currency] = {
    "BRL": Currency(code="BRL", symbol="R$", name="Brazilian Real"),
    "USD": Currency(code="USD", symbol="$", name="United States Dollar"),
    "MZN": Currency(code="MZN", symbol="MT", name="Mozambican Metical"),
}


def get_currency(code: str) -> Currency:
    """Look up a currency by ISO code; unknown codes render with the code as symbol."""
    normalized = code.strip().upper()
    return CURRENCIES.get(normalized) or Currency(code=normalized, symbol=normalized, name=normalized)


def format_amount(value: float, code: str) -> str:
    currency = get_currency(code)
    return f"{currency.symbol} {value:,.{currency.decimal_digits}f}"
