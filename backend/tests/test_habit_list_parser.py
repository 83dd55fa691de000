from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.errors import EmptyImportContent, NoHabitsFound  # noqa: E402
from utils.habit_list_parser import parse, parse_or_raise, validate  # noqa: E402


# ─── validate ───


@pytest.mark.parametrize("content", ["", "   \n   "])
def test_validate_rejects_empty_content(content):
    result = validate(content)
    assert result.is_valid is False
    assert result.errors == ["Content cannot be empty"]


def test_validate_rejects_content_without_habits():
    result = validate("# Category\nJust some notes")
    assert result.is_valid is False
    assert result.errors[0].startswith("No habits found")


def test_validate_rejects_content_with_only_empty_bullets():
    result = validate("# Category\n-\n*   ")
    assert result.is_valid is False
    assert result.errors[0].startswith("No habits found")


def test_validate_rejects_non_string_content():
    assert validate(None).is_valid is False


def test_validate_accepts_valid_content():
    result = validate("# Category\n- My Habit")
    assert result.is_valid is True
    assert result.errors == []


# ─── parse ───


def test_parse_habits_without_category():
    result = parse("- Habit 1\n- Habit 2\n- Habit 3")
    assert [h.name for h in result.habits] == ["Habit 1", "Habit 2", "Habit 3"]
    assert all(h.category_name is None for h in result.habits)
    assert result.categories == []


def test_parse_nested_headings_builds_qualified_names():
    content = "# Health\n## Morning\n- Stretch\n- Meditation\n## Evening\n- Wind down\n- Journal"
    result = parse(content)

    assert [c.name for c in result.categories] == ["Health", "Health > Morning", "Health > Evening"]
    assert [(h.name, h.category_name) for h in result.habits] == [
        ("Stretch", "Health > Morning"),
        ("Meditation", "Health > Morning"),
        ("Wind down", "Health > Evening"),
        ("Journal", "Health > Evening"),
    ]


def test_parse_deeper_headings_replace_segments_at_their_level():
    content = "# A\n## B\n### C\n- one\n## D\n- two\n# E\n### F\n- three"
    result = parse(content)

    assert [c.name for c in result.categories] == ["A", "A > B", "A > B > C", "A > D", "E", "E > F"]
    assert [h.category_name for h in result.habits] == ["A > B > C", "A > D", "E > F"]


def test_parse_subheading_without_parent_stands_alone():
    result = parse("## Morning\n- Stretch")
    assert [c.name for c in result.categories] == ["Morning"]
    assert result.habits[0].category_name == "Morning"


def test_parse_repeated_heading_does_not_duplicate_category():
    content = "# Fitness\n- Running\n# Nutrition\n- Eating\n# Fitness\n- Gym"
    result = parse(content)

    assert [c.name for c in result.categories] == ["Fitness", "Nutrition"]
    assert [c.sort_order for c in result.categories] == [0, 1]
    by_name = {h.name: h.category_name for h in result.habits}
    assert by_name["Running"] == by_name["Gym"] == "Fitness"


def test_parse_same_leaf_under_different_parents_stays_separate():
    result = parse("# Home\n## Morning\n- Bed\n# Work\n## Morning\n- Inbox")
    assert "Home > Morning" in [c.name for c in result.categories]
    assert "Work > Morning" in [c.name for c in result.categories]


def test_parse_asterisk_and_indented_bullets():
    result = parse("* Habit with asterisk\n    - Indented one\n\t* Tabbed")
    assert [h.name for h in result.habits] == ["Habit with asterisk", "Indented one", "Tabbed"]


def test_parse_skips_blank_lines_and_comments_without_resetting_category():
    content = "# Category\n\n- Habit 1\n// This is a comment\n- Habit 2\n\n<!-- HTML comment -->\n- Habit 3"
    result = parse(content)

    assert [h.name for h in result.habits] == ["Habit 1", "Habit 2", "Habit 3"]
    assert all(h.category_name == "Category" for h in result.habits)
    assert result.stats.skipped_lines == 4


def test_parse_sort_order_is_global_and_zero_based():
    result = parse("# Cat1\n- Habit A\n# Cat2\n- Habit B\n- Habit C")
    assert [c.sort_order for c in result.categories] == [0, 1]
    assert [h.sort_order for h in result.habits] == [0, 1, 2]


def test_parse_empty_bullet_is_reported_and_parse_continues():
    result = parse("# Category\n-\n- Valid Habit\n*   \n- Another")

    assert [h.name for h in result.habits] == ["Valid Habit", "Another"]
    assert result.errors == ["Empty habit name at line 2", "Empty habit name at line 4"]


def test_parse_reports_stats():
    result = parse("# Category\n- Habit 1\n- Habit 2\n\nSome random text\n- Habit 3\n")

    assert result.stats.total_lines == 7
    assert result.stats.habits_found == 3
    assert result.stats.categories_found == 1
    assert result.stats.skipped_lines == 3


def test_parse_ignores_non_bullet_markdown():
    result = parse("# Cat\n---\n**bold**\n#NoSpace\n-dash\n- Real")
    assert [h.name for h in result.habits] == ["Real"]
    assert [c.name for c in result.categories] == ["Cat"]


def test_parse_handles_windows_line_endings():
    result = parse("# Fuel\r\n## Timing\r\n- Fasting Day (14+ hrs)\r\n")
    assert result.habits[0].name == "Fasting Day (14+ hrs)"
    assert result.habits[0].category_name == "Fuel > Timing"


def test_parse_never_raises_for_non_string():
    result = parse(None)
    assert result.habits == []
    assert result.errors


def test_parse_result_to_dict_shape():
    payload = parse("# A\n- one").to_dict()
    assert payload["categories"] == [{"name": "A", "sort_order": 0}]
    assert payload["habits"] == [{"name": "one", "category_name": "A", "sort_order": 0}]
    assert payload["stats"]["habits_found"] == 1


# ─── parse_or_raise ───


def test_parse_or_raise_raises_document_level_errors():
    with pytest.raises(EmptyImportContent):
        parse_or_raise("  ")
    with pytest.raises(NoHabitsFound):
        parse_or_raise("# Only a heading")


def test_parse_or_raise_returns_result_for_valid_content():
    assert len(parse_or_raise("- a\n- b").habits) == 2
