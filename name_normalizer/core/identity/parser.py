"""
Structured parsing of raw personal names.

Handles the shapes found in bibliographic creator fields:
- "Jerry Alan Fodor" and "J.A. Fodor" (given names first)
- "Fodor, Jerry A." (comma inverted)
- "Ludwig van Beethoven", "Maria del Carmen Rodriguez" (particles)
- "Martin Luther King Jr." (suffixes)

Parsing never raises; unusable input degrades to an empty ParsedName.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from .constants import INITIAL_TOKEN, NAME_TAKING_PARTICLES, PARTICLES, SUFFIXES
from .models import ParsedName

_TRAILING_COMMAS = re.compile(r"[,\s]+$")


def is_suffix(token: str) -> bool:
    return token.rstrip(".,").lower() in SUFFIXES


def is_particle(token: str) -> bool:
    return token in PARTICLES


def is_initials_token(token: str) -> bool:
    """True for "J." and compact multi-initial tokens such as "J.A."."""
    return bool(INITIAL_TOKEN.match(token))


def _strip_lone_period(token: str) -> str:
    # "Fred." -> "Fred"; initials such as "J." or "J.A." stay intact
    if token.endswith(".") and token.count(".") == 1 and len(token) > 2:
        return token[:-1]
    return token


def _pop_suffixes(tokens: list[str], keep: int) -> list[str]:
    suffixes: list[str] = []
    while len(tokens) > keep and is_suffix(tokens[-1]):
        suffixes.insert(0, tokens.pop())
    return suffixes


class NameParser:
    """Split one raw name into first, middle, prefix, last and suffix parts."""

    def parse(self, raw: Optional[Any]) -> ParsedName:
        if raw is None:
            return ParsedName()
        original = raw if isinstance(raw, str) else str(raw)
        text = _TRAILING_COMMAS.sub("", " ".join(original.split()))
        if not text:
            return ParsedName(original=original)
        if "," in text:
            parsed = self._parse_inverted(text, original)
            if parsed is not None:
                return parsed
            text = " ".join(text.replace(",", " ").split())
        return self._parse_direct(text.split(), original)

    def _parse_inverted(self, text: str, original: str) -> Optional[ParsedName]:
        family, _, given = text.partition(",")
        family_tokens = family.split()
        given_tokens = given.replace(",", " ").split()
        if not family_tokens:
            return None

        suffixes = _pop_suffixes(given_tokens, keep=0)
        if suffixes and not given_tokens:
            # "John Smith, Jr." is not inverted
            return None
        suffixes = _pop_suffixes(family_tokens, keep=1) + suffixes
        given_tokens = [_strip_lone_period(token) for token in given_tokens]

        prefix_tokens: list[str] = []
        # "Beethoven, Ludwig van"
        while len(given_tokens) > 1 and is_particle(given_tokens[-1]):
            prefix_tokens.insert(0, given_tokens.pop())
        # "van der Berg, Jan"
        while len(family_tokens) > 1 and is_particle(family_tokens[0]):
            prefix_tokens.append(family_tokens.pop(0))
        if given_tokens and not prefix_tokens:
            # "Garcia Marquez, Gabriel" splits like "Gabriel Garcia Marquez"
            given_tokens.extend(family_tokens[:-1])
            family_tokens = family_tokens[-1:]

        return ParsedName(
            first_name=given_tokens[0] if given_tokens else "",
            middle_name=" ".join(given_tokens[1:]),
            prefix=" ".join(prefix_tokens),
            last_name=" ".join(family_tokens),
            suffix=" ".join(suffixes),
            original=original,
        )

    def _parse_direct(self, tokens: list[str], original: str) -> ParsedName:
        suffixes = _pop_suffixes(tokens, keep=1)
        if len(tokens) == 1:
            return ParsedName(last_name=tokens[0], suffix=" ".join(suffixes), original=original)

        start = self._find_particle(tokens)
        if start is None:
            # The final token is the family name; a second trailing surname
            # ("Gabriel Garcia Marquez") lands in the middle slot.
            given = tokens[:-1]
            prefix_tokens: list[str] = []
            surname = tokens[-1:]
        else:
            end = start
            while end < len(tokens) - 1 and is_particle(tokens[end]):
                end += 1
            prefix_tokens = tokens[start:end]
            if (
                prefix_tokens[-1] in NAME_TAKING_PARTICLES
                and end < len(tokens) - 1
                and tokens[end][:1].isupper()
            ):
                # "Maria del Carmen Rodriguez"
                prefix_tokens.append(tokens[end])
                end += 1
            given = tokens[:start]
            surname = tokens[end:]

        return ParsedName(
            first_name=given[0] if given else "",
            middle_name=" ".join(given[1:]),
            prefix=" ".join(prefix_tokens),
            last_name=" ".join(surname),
            suffix=" ".join(suffixes),
            original=original,
        )

    @staticmethod
    def _find_particle(tokens: list[str]) -> Optional[int]:
        for index, token in enumerate(tokens[:-1]):
            if is_particle(token):
                return index
        return None


def parse_name(raw: Optional[Any]) -> ParsedName:
    return NameParser().parse(raw)
