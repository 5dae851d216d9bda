from datetime import datetime, timezone

import pytest

from codex.domain.contributions import gate
from codex.domain.contributions.exceptions import MalformedSpoilerMetadata
from codex.domain.contributions.models import (
    UNRESTRICTED_PROGRESS,
    Actor,
    ContentItem,
    ContentStatus,
    ContentType,
    Role,
    SpoilerPreferences,
)

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _item(*, is_spoiler: bool = True, chapter: int | None = 300, **overrides) -> ContentItem:
    fields = dict(
        id=7,
        content_type=ContentType.ANNOTATION,
        author_id=1,
        status=ContentStatus.APPROVED,
        created_at=NOW,
        updated_at=NOW,
        title="Kakerou's true purpose",
        content="The referee organisation was...",
        url=None,
        is_spoiler=is_spoiler,
        spoiler_chapter=chapter,
    )
    fields.update(overrides)
    return ContentItem(**fields)


def test_reader_behind_spoiler_chapter_gets_placeholder() -> None:
    item = _item(chapter=300)
    assert gate.is_visible(250, item) is False

    shown = gate.present(Actor(id=5, progress=250), item)
    assert shown.visible is False
    assert "300" in shown.placeholder
    assert shown.item.title == ""
    assert shown.item.content == ""
    assert shown.item.spoiler_chapter == 300


def test_reader_at_spoiler_chapter_sees_content() -> None:
    item = _item(chapter=300)
    assert gate.is_visible(300, item) is True
    shown = gate.present(Actor(id=5, progress=300), item)
    assert shown.visible is True
    assert shown.placeholder is None
    assert shown.item is item


@pytest.mark.parametrize("chapter", [1, 50, 300, 539])
def test_visibility_is_monotonic_in_progress(chapter: int) -> None:
    item = _item(chapter=chapter)
    progresses = [0, 1, chapter - 1, chapter, chapter + 1, 1000, UNRESTRICTED_PROGRESS]
    results = [gate.is_visible(progress, item) for progress in sorted(progresses)]
    first_visible = results.index(True)
    assert all(results[first_visible:])


@pytest.mark.parametrize("progress", [None, 0, 10, UNRESTRICTED_PROGRESS])
def test_non_spoiler_always_visible(progress) -> None:
    item = _item(is_spoiler=False, chapter=None)
    assert gate.is_visible(progress, item) is True


def test_anonymous_reader_treated_as_progress_zero() -> None:
    item = _item(chapter=1)
    assert gate.actor_can_see(Actor.anonymous(), item) is False
    # Preferences never apply to anonymous readers.
    prefs = SpoilerPreferences(show_all_spoilers=True)
    assert gate.actor_can_see(Actor.anonymous(), item, preferences=prefs) is False


def test_unrestricted_override_reveals_spoilers() -> None:
    item = _item(chapter=400)
    assert gate.is_visible(None, item, unrestricted=True) is True
    staff = Actor(id=9, role=Role.MODERATOR, progress=0)
    assert gate.present(staff, item, unrestricted=True).visible is True


@pytest.mark.parametrize("chapter", [0, -3, None])
def test_malformed_spoiler_chapter_is_hidden_not_raised(chapter, caplog) -> None:
    item = _item(chapter=chapter)
    with caplog.at_level("ERROR"):
        assert gate.is_visible(UNRESTRICTED_PROGRESS, item) is False
        assert gate.is_visible(None, item, unrestricted=True) is False
    assert any(record.getMessage() == "spoiler_metadata_invalid" for record in caplog.records)

    shown = gate.present(Actor(id=2, progress=UNRESTRICTED_PROGRESS), item)
    assert shown.visible is False
    assert shown.placeholder == "Contains spoilers"


def test_effective_progress_applies_preferences() -> None:
    assert gate.effective_progress(120, None) == 120
    assert gate.effective_progress(-5, None) == 0
    assert gate.effective_progress(120, SpoilerPreferences(show_all_spoilers=True)) == UNRESTRICTED_PROGRESS
    assert gate.effective_progress(120, SpoilerPreferences(chapter_tolerance=200)) == 200
    assert gate.effective_progress(120, SpoilerPreferences(chapter_tolerance=0)) == 120


def test_tolerance_unlocks_later_chapter() -> None:
    item = _item(chapter=180)
    reader = Actor(id=3, progress=100)
    assert gate.actor_can_see(reader, item) is False
    assert gate.actor_can_see(reader, item, preferences=SpoilerPreferences(chapter_tolerance=200)) is True


def test_validate_spoiler_metadata() -> None:
    assert gate.validate_spoiler_metadata(False, None) is None
    # A chapter without the flag is dropped.
    assert gate.validate_spoiler_metadata(False, 12) is None
    assert gate.validate_spoiler_metadata(True, 12) == 12
    for bad in (None, 0, -1, True):
        with pytest.raises(MalformedSpoilerMetadata):
            gate.validate_spoiler_metadata(True, bad)
