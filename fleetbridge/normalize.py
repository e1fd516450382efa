import re
from typing import Any, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def fold(s: Any) -> str:
    return str(s if s is not None else "").strip().lower()


def sanitize(s: Any) -> str:
    return _NON_ALNUM.sub("", fold(s))


def is_blank(v: Any) -> bool:
    return v is None or str(v).strip() == ""


def sanitize_work_order_number(n: Any) -> Optional[str]:
    if n is None:
        return None
    s = str(n).strip()
    return s[1:] if s.startswith("#") else s
