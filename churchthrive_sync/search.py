"""
Korean initial-consonant (chosung) search over member names.

Typing "ㄱㅊ" finds "김철수": a query made only of initial consonants is
matched as a prefix of the name's consonant skeleton, any other query as a
case-insensitive substring of the name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .records import EntityType, SyncableRecord

if TYPE_CHECKING:
    from .local.store import LocalStore

CHOSUNG_LIST = (
    "ㄱ", "ㄲ", "ㄴ", "ㄷ", "ㄸ", "ㄹ", "ㅁ", "ㅂ", "ㅃ",
    "ㅅ", "ㅆ", "ㅇ", "ㅈ", "ㅉ", "ㅊ", "ㅋ", "ㅌ", "ㅍ", "ㅎ",
)

_CHOSUNG_SET = frozenset(CHOSUNG_LIST)

HANGUL_START = 0xAC00
HANGUL_END = 0xD7A3
# 21 medial vowels * 28 finals per initial consonant
CHOSUNG_OFFSET = 588


def get_chosung(text: str) -> str:
    """Replace each precomposed Hangul syllable with its initial consonant."""
    result = []
    for char in text:
        code = ord(char)
        if HANGUL_START <= code <= HANGUL_END:
            result.append(CHOSUNG_LIST[(code - HANGUL_START) // CHOSUNG_OFFSET])
        else:
            result.append(char)
    return "".join(result)


def is_chosung_only(text: str) -> bool:
    """True for a non-empty string made only of initial consonants."""
    return bool(text) and all(char in _CHOSUNG_SET for char in text)


def matches_chosung(name: str, query: str) -> bool:
    if not query:
        return True
    if is_chosung_only(query):
        return get_chosung(name).startswith(query)
    return query.lower() in name.lower()


async def search_cached_members(store: LocalStore, query: str) -> list[SyncableRecord]:
    """Search the offline member cache by name.

    Args:
        store: Open local store
        query: Name fragment or initial consonants ("" returns everyone)

    Returns:
        Matching member records sorted by name
    """
    members = await store.query(
        EntityType.MEMBERS,
        predicate=lambda r: matches_chosung(str(r.payload.get("name") or ""), query),
    )
    return sorted(members, key=lambda r: str(r.payload.get("name") or ""))
