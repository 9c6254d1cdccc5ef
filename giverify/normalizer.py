"""Turn raw result-table rows into a typed attribute map."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence

_DISTRIBUTOR_LABEL_RE = re.compile(r"authorized.*user")
_ARTISAN_LABEL_RE = re.compile(r"artisan|weaver")


@dataclass
class NormalizedAttributes:
    attributes: Dict[str, str] = field(default_factory=dict)
    authorized_distributor: Optional[str] = None
    artisan: Optional[str] = None


def is_usable_row(row: Sequence[str]) -> bool:
    return len(row) >= 2 and bool(row[0]) and bool(row[1])


def normalize_rows(rows: Iterable[Sequence[str]]) -> NormalizedAttributes:
    """Promote distributor and artisan rows; keep everything else by label.

    Labels are matched lower-cased but stored with their original casing.
    Later rows overwrite earlier ones, for promoted fields and residual keys
    alike.
    """
    normalized = NormalizedAttributes()
    for row in rows:
        if not is_usable_row(row):
            continue
        label, value = row[0], row[1]
        lowered = label.lower()
        if _DISTRIBUTOR_LABEL_RE.search(lowered):
            normalized.authorized_distributor = value
        elif _ARTISAN_LABEL_RE.search(lowered):
            normalized.artisan = value
        else:
            normalized.attributes[label] = value
    return normalized
