"""
Recursive merge of a partial config into an existing one.
"""

import copy
from typing import Any


def merge_patch(target: Any, patch: Any) -> Any:
    """Merge ``patch`` into ``target`` key by key and return the result.

    Objects merge recursively; any other patch value, including lists and
    None, replaces the target value. Neither argument is mutated.
    """
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    merged = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        merged[key] = merge_patch(merged.get(key), value)
    return merged
