"""
Alternate renderings of a parsed name.

Given "Jerry Alan Fodor" the generator yields, in order:
    "Jerry Alan Fodor", "J. A. Fodor", "Fodor", "J. Fodor", "J.A. Fodor"
and the canonical comparison key "FODOR JERRY ALAN".
"""

from __future__ import annotations

import re
from typing import Iterable

from .models import ParsedName
from .parser import is_initials_token

_PERIOD_RUN = re.compile(r"\.{2,}")


def _join(parts: Iterable[str]) -> str:
    return " ".join(" ".join(part for part in parts if part).split())


def token_initials(token: str) -> list[str]:
    """
    Initials of one given-name token.

    A compact initials token keeps every letter ("J.A." -> ["J", "A"]);
    any other token contributes its first character.
    """
    if not token:
        return []
    if is_initials_token(token):
        return [letter.upper() for letter in token.replace(".", "")]
    return [token[0].upper()]


class VariantGenerator:
    def generate_variants(self, parsed: ParsedName) -> tuple[str, ...]:
        # dict keeps first-seen order and drops exact duplicates
        variants: dict[str, None] = {}

        def add(text: str) -> None:
            if text:
                variants.setdefault(text, None)

        first, last, prefix = parsed.first_name, parsed.last_name, parsed.prefix
        middle = parsed.middle_tokens

        if last:
            add(_join([first, parsed.middle_name, prefix, last]))
        if first and last:
            spaced = [f"{initial}." for token in [first, *middle] for initial in token_initials(token)]
            add(_join([*spaced, prefix, last]))
        if last:
            add(last)
        if first and last:
            add(_join([f"{first[0].upper()}.", prefix, last]))
            compact = "".join(f"{initial}." for token in [first, *middle] for initial in token_initials(token))
            add(_join([_PERIOD_RUN.sub(".", compact), prefix, last]))

        variants.setdefault(parsed.original, None)
        return tuple(variants)

    def generate_canonical(self, parsed: ParsedName) -> str:
        parts = [parsed.last_name, parsed.first_name, *parsed.middle_tokens]
        return " ".join(part.upper() for part in parts if part)
