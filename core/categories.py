"""
Category canonicalisation.

Maps detailed (level-3) catalogue categories onto the coarse categories
used by the warehouse capacity map.
"""

import re
from functools import lru_cache
from typing import List, Optional, Tuple

from config import warehouse as config


@lru_cache(maxsize=1)
def _compiled_rules() -> List[Tuple[re.Pattern, str]]:
    return [(re.compile(pattern, re.IGNORECASE), label) for pattern, label in config.CATEGORY_RULES]


def normalize_category(raw: Optional[str]) -> str:
    """
    Return the canonical category for a raw category name.

    Rules are tried in order and the first match wins. Unmatched names are
    kept with their first letter upper-cased; empty names become
    `Uncategorized`.
    """
    if raw is None:
        return config.UNCATEGORIZED
    text = str(raw).strip()
    if not text or text.lower() == "nan":
        return config.UNCATEGORIZED

    lowered = text.lower()
    for pattern, label in _compiled_rules():
        if pattern.search(lowered):
            return label

    return text[0].upper() + text[1:]
