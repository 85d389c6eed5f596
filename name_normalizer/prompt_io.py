from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol

from .core.identity.models import NameVariant, NormalizationSuggestion


class PromptIO(Protocol):
    def print(self, text: str = "") -> None: ...

    def input(self, prompt: str = "") -> str: ...


class ConsolePromptIO:
    def print(self, text: str = "") -> None:
        print(text)

    def input(self, prompt: str = "") -> str:
        return input(prompt)


@dataclass(slots=True)
class BufferPromptIO:
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    prompts: List[str] = field(default_factory=list)

    def print(self, text: str = "") -> None:
        self.outputs.append(text)

    def input(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.inputs:
            raise AssertionError("BufferPromptIO has no more inputs")
        return self.inputs.pop(0)


def ask_yes_no(io: PromptIO, question: str, default: bool = False) -> bool:
    hint = "[Y/n]" if default else "[y/N]"
    while True:
        answer = io.input(f"{question} {hint} ").strip().lower()
        if not answer:
            return default
        if answer in {"y", "yes"}:
            return True
        if answer in {"n", "no"}:
            return False
        io.print("Please answer y or n.")


class SuggestionPrompter:
    """Confirmation callback that asks about each variant of a suggestion."""

    def __init__(self, io: PromptIO) -> None:
        self.io = io
        self._announced: set[int] = set()

    def __call__(self, suggestion: NormalizationSuggestion, variant: NameVariant) -> bool:
        if id(suggestion) not in self._announced:
            self._announced.add(id(suggestion))
            self.io.print("")
            self.io.print(f"{suggestion.type} group -> {suggestion.primary} (similarity {suggestion.similarity:.2f})")
        return ask_yes_no(self.io, f"  Map '{variant.name}' ({variant.frequency}x) to '{suggestion.primary}'?")
