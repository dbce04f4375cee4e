"""
SQL utilities for consistent handling of aggregate results.

SQLModel/SQLAlchemy may return an aggregate as a bare value or as a
1-tuple/Row depending on how the statement was built.
"""
from typing import Any, Optional


def _unwrap(x: Any) -> Any:
    if isinstance(x, (tuple, list)) or hasattr(x, "_mapping"):
        return x[0]
    return x


def scalar_int(x: Any) -> int:
    """COUNT result as int."""
    return int(_unwrap(x))


def scalar_float(x: Any) -> Optional[float]:
    """MAX/MIN/SUM result as float; None when the aggregate ran over no rows."""
    value = _unwrap(x)
    return float(value) if value is not None else None
