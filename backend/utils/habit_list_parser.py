"""Parser for bulk habit lists written in a small markdown dialect.

    # Health
    ## Morning
    - Stretch
    * Meditation

Headings open a category path (depth = number of ``#``), bullets are habits
filed under the current fully-qualified path ("Health > Morning"). Blank
lines, ``//`` comments and ``<!-- -->`` comments are skipped. Parsing is
best-effort: problems on individual lines are collected, never raised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from services.errors import EmptyImportContent, NoHabitsFound

# ---------------------------------------------------------------------------
# Regex
# ---------------------------------------------------------------------------

MAX_HEADING_DEPTH = 6
HEADING_RE = re.compile(r"^(#{1,%d})\s+(.+)$" % MAX_HEADING_DEPTH)
BULLET_RE = re.compile(r"^[-*](?:\s+(.*))?$")
CATEGORY_SEPARATOR = " > "

EMPTY_CONTENT_MESSAGE = "Content cannot be empty"
NO_HABITS_MESSAGE = 'No habits found. Habits should be on lines starting with "- " or "* "'

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedCategory:
    name: str
    sort_order: int


@dataclass(frozen=True)
class ParsedHabit:
    name: str
    category_name: str | None
    sort_order: int
    line_number: int


@dataclass
class ImportStats:
    total_lines: int = 0
    skipped_lines: int = 0
    habits_found: int = 0
    categories_found: int = 0


@dataclass
class ImportResult:
    categories: list[ParsedCategory] = field(default_factory=list)
    habits: list[ParsedHabit] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    stats: ImportStats = field(default_factory=ImportStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": [{"name": c.name, "sort_order": c.sort_order} for c in self.categories],
            "habits": [
                {"name": h.name, "category_name": h.category_name, "sort_order": h.sort_order}
                for h in self.habits
            ],
            "errors": list(self.errors),
            "stats": {
                "total_lines": self.stats.total_lines,
                "skipped_lines": self.stats.skipped_lines,
                "habits_found": self.stats.habits_found,
                "categories_found": self.stats.categories_found,
            },
        }


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _is_skippable(line: str) -> bool:
    return not line or line.startswith("//") or line.startswith("<!--")


def parse(content: str) -> ImportResult:
    result = ImportResult()
    if not isinstance(content, str):
        result.errors.append("Content is required and must be a string")
        return result

    lines = content.split("\n")
    seen_categories: set[str] = set()
    path: list[str] = []

    for index, raw_line in enumerate(lines):
        line_number = index + 1
        line = raw_line.strip()

        if _is_skippable(line):
            result.stats.skipped_lines += 1
            continue

        heading = HEADING_RE.match(line)
        if heading:
            depth = len(heading.group(1))
            path = path[: depth - 1] + [heading.group(2).strip()]
            full_name = CATEGORY_SEPARATOR.join(path)
            if full_name not in seen_categories:
                seen_categories.add(full_name)
                result.categories.append(ParsedCategory(name=full_name, sort_order=len(result.categories)))
            continue

        bullet = BULLET_RE.match(line)
        if bullet:
            name = (bullet.group(1) or "").strip()
            if not name:
                result.errors.append(f"Empty habit name at line {line_number}")
                result.stats.skipped_lines += 1
                continue
            result.habits.append(
                ParsedHabit(
                    name=name,
                    category_name=CATEGORY_SEPARATOR.join(path) if path else None,
                    sort_order=len(result.habits),
                    line_number=line_number,
                )
            )
            continue

        # Free text between entries is tolerated and counted.
        result.stats.skipped_lines += 1

    result.stats.total_lines = len(lines)
    result.stats.habits_found = len(result.habits)
    result.stats.categories_found = len(result.categories)
    return result


def validate(content: str) -> ValidationResult:
    if not isinstance(content, str):
        return ValidationResult(is_valid=False, errors=["Content is required and must be a string"])
    if not content.strip():
        return ValidationResult(is_valid=False, errors=[EMPTY_CONTENT_MESSAGE])
    if not parse(content).habits:
        return ValidationResult(is_valid=False, errors=[NO_HABITS_MESSAGE])
    return ValidationResult(is_valid=True, errors=[])


def parse_or_raise(content: str) -> ImportResult:
    """Parse for a bulk write, raising the document-level failures."""
    if not isinstance(content, str) or not content.strip():
        raise EmptyImportContent(EMPTY_CONTENT_MESSAGE)
    result = parse(content)
    if not result.habits:
        raise NoHabitsFound(NO_HABITS_MESSAGE, details=result.errors)
    return result
