"""Recognise changes that prguard itself opened.

Generated test PRs carry the product tag in their title and live on a
``prguard/`` branch. Analysing them would open another companion PR, whose
analysis would open another, and so on.
"""

from __future__ import annotations

import re

PRODUCT_TAG = "[PRGuard]"
BRANCH_PREFIX = "prguard/"
TEST_BRANCH_PREFIX = f"{BRANCH_PREFIX}tests-pr-"

_TITLE_PATTERNS = (
    re.compile(re.escape(PRODUCT_TAG), re.IGNORECASE),
    re.compile(r"Automated tests for PR", re.IGNORECASE),
)
_BRANCH_PATTERNS = (
    re.compile(rf"^{re.escape(BRANCH_PREFIX)}", re.IGNORECASE),
    re.compile(re.escape(TEST_BRANCH_PREFIX), re.IGNORECASE),
)


def is_self_generated(title: str | None, branch_name: str | None = None) -> bool:
    if title and any(p.search(title) for p in _TITLE_PATTERNS):
        return True
    if branch_name and any(p.search(branch_name) for p in _BRANCH_PATTERNS):
        return True
    return False
