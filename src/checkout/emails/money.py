"""Amount formatting for email bodies."""


def format_amount(cents: int | None, currency: str | None = "eur") -> str:
    cents = cents or 0
    return f"{cents / 100:.2f} {(currency or 'eur').upper()}"
