"""Client identifier conventions.

Every logical member is provisioned on each enabled inbound as
``{base}-{n}`` where ``n`` is the 1-based position of the inbound. The
helpers below recover the base name from those identifiers and collapse
lists of identifiers into compact labels for chat output.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

USERNAME_SEPARATOR = "-"

# Display grouping thresholds
MAX_LENGTH_DIFFERENCE_FOR_GROUPING = 3
MIN_PREFIX_LENGTH_FOR_GROUPING = 3


def _split_numeric_suffix(name: str) -> Optional[str]:
    head, sep, suffix = name.rpartition(USERNAME_SEPARATOR)
    if sep and suffix.isdigit() and suffix.isascii():
        return head
    return None


def extract_base_username(email: str) -> str:
    """Strip a trailing ``-{digits}`` suffix.

    ``alice-2`` becomes ``alice`` while ``alice-v2`` and ``alice`` are
    returned unchanged.
    """
    head = _split_numeric_suffix(email)
    return email if head is None else head


def remove_numeric_suffix(name: str) -> str:
    return extract_base_username(name)


def format_inbound_email(base_username: str, inbound_number: int) -> str:
    """Return the identifier used for ``base_username`` on the n-th inbound."""

    return f"{base_username}{USERNAME_SEPARATOR}{inbound_number}"


def is_matching_base_username(email: str, base_username: str) -> bool:
    return extract_base_username(email) == base_username


def matches_identifier(email: str, identifier: str) -> bool:
    """True when ``email`` is ``identifier`` itself or one of its numbered copies."""

    return email == identifier or is_matching_base_username(email, identifier)


def _split_email(email: str) -> Tuple[str, Optional[str]]:
    local, sep, domain = email.partition("@")
    if not sep or "@" in domain:
        return email, None
    return local, domain


def should_group_emails(emails: List[str]) -> bool:
    """Decide whether ``emails`` look like numbered copies of one name.

    All addresses must share a domain (plain names have none) and the local
    parts may differ in length by fewer than
    :data:`MAX_LENGTH_DIFFERENCE_FOR_GROUPING` characters.
    """
    if len(emails) <= 1:
        return False

    local_parts: List[str] = []
    domain: Optional[str] = None
    for email in emails:
        local, email_domain = _split_email(email)
        if email_domain is not None:
            if domain is None:
                domain = email_domain
            elif domain != email_domain:
                return False
        local_parts.append(local)

    lengths = [len(local) for local in local_parts]
    return max(lengths) - min(lengths) < MAX_LENGTH_DIFFERENCE_FOR_GROUPING


def longest_common_prefix(first: str, second: str) -> str:
    size = min(len(first), len(second))
    for index in range(size):
        if first[index] != second[index]:
            return first[:index]
    return first[:size]


def find_common_part_without_suffix(names: List[str]) -> str:
    if not names:
        return ""
    cleaned = [remove_numeric_suffix(name) for name in names]
    if len(cleaned) == 1:
        return cleaned[0]

    prefix = cleaned[0]
    for name in cleaned[1:]:
        prefix = longest_common_prefix(prefix, name)

    if len(prefix) < MIN_PREFIX_LENGTH_FOR_GROUPING:
        return cleaned[0]
    return prefix


def generate_group_name(emails: List[str]) -> str:
    """Build one label for ``emails``, re-attaching the shared domain."""

    if len(emails) == 1:
        return emails[0]

    local_parts: List[str] = []
    domain: Optional[str] = None
    for email in emails:
        local, email_domain = _split_email(email)
        if email_domain is not None and domain is None:
            domain = email_domain
        local_parts.append(local)

    common = find_common_part_without_suffix(local_parts)
    if domain:
        return f"{common}@{domain}"
    return common


def group_similar_emails(emails: List[str]) -> List[str]:
    """Collapse numbered copies into a single label for compact output.

    Only used for formatting; correlation never relies on it.
    """
    if len(emails) <= 1:
        return list(emails)
    if should_group_emails(emails):
        return [generate_group_name(emails)]
    return list(emails)
