"""
Closed vocabularies used by the name parser and the given-name analysis.
"""

from __future__ import annotations

import re

# Nobiliary particles, matched case-sensitively (lowercase only).
PARTICLES = frozenset(
    {
        "van",
        "von",
        "de",
        "der",
        "den",
        "del",
        "della",
        "la",
        "le",
        "lo",
        "di",
        "du",
        "da",
        "das",
        "dos",
        "do",
        "des",
        "el",
        "al",
        "ter",
        "ten",
        "zu",
    }
)

# Particles that can take a following given-name-like word ("del Carmen").
NAME_TAKING_PARTICLES = frozenset({"del", "de", "da", "das", "dos", "do", "du", "des", "di"})

SUFFIXES = frozenset({"jr", "sr", "ii", "iii", "iv", "phd", "md"})

INITIAL_TOKEN = re.compile(r"^(?:[^\W\d_]\.)+$")
SINGLE_INITIAL = re.compile(r"^[^\W\d_]\.?$")

KEY_PUNCTUATION = re.compile(r"[.,;:!?()]")

GIVEN_NAME_EQUIVALENTS: dict[str, str] = {
    "alex": "alexander",
    "andy": "andrew",
    "ben": "benjamin",
    "bill": "william",
    "billy": "william",
    "bob": "robert",
    "bobby": "robert",
    "cathy": "catherine",
    "chris": "christopher",
    "dan": "daniel",
    "danny": "daniel",
    "dave": "david",
    "ed": "edward",
    "eddie": "edward",
    "jim": "james",
    "jimmy": "james",
    "joe": "joseph",
    "johnny": "john",
    "jon": "jonathan",
    "kate": "katherine",
    "katie": "katherine",
    "liz": "elizabeth",
    "beth": "elizabeth",
    "matt": "matthew",
    "mike": "michael",
    "nick": "nicholas",
    "pat": "patrick",
    "peggy": "margaret",
    "pete": "peter",
    "rich": "richard",
    "rick": "richard",
    "dick": "richard",
    "rob": "robert",
    "sam": "samuel",
    "steve": "steven",
    "sue": "susan",
    "ted": "edward",
    "tom": "thomas",
    "tony": "anthony",
    "will": "william",
}
