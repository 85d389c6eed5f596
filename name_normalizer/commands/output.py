from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.identity.models import NormalizationSuggestion


@dataclass(frozen=True, slots=True)
class StatusLine:
    label: str
    status: str
    detail: Optional[str] = None

    def render(self) -> str:
        if self.detail:
            return f"{self.label}: {self.status} ({self.detail})"
        return f"{self.label}: {self.status}"


def ok(label: str, detail: Optional[str] = None) -> str:
    return StatusLine(label, "OK", detail).render()


def warning(label: str, detail: Optional[str] = None) -> str:
    return StatusLine(label, "WARNING", detail).render()


def error(label: str, detail: Optional[str] = None) -> str:
    return StatusLine(label, "ERROR", detail).render()


def not_found(label: str, detail: Optional[str] = None) -> str:
    return StatusLine(label, "NOT FOUND", detail).render()


def suggestion_lines(suggestion: NormalizationSuggestion) -> list[str]:
    lines = [
        f"[{suggestion.type}] {suggestion.primary}"
        f" (similarity {suggestion.similarity:.2f}, {suggestion.total_frequency} occurrences)"
    ]
    for variant in suggestion.variants:
        marker = "*" if suggestion.is_primary(variant) else "-"
        lines.append(f"  {marker} {variant.name} ({variant.frequency}x)")
    return lines
