from __future__ import annotations

import uuid
from decimal import Decimal


def new_id() -> str:
    return str(uuid.uuid4())


def money(value) -> str | None:
    """Serialize a NUMERIC(10,2) value as a two-decimal string."""
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))
