import pytest

from codex.domain.contributions.aggregator import ContributionAggregator
from codex.domain.contributions.exceptions import (
    ContentNotFoundError,
    ContentPermissionError,
    ContentValidationError,
    MalformedSpoilerMetadata,
    MissingRejectionReason,
    SelfLikeError,
)
from codex.domain.contributions.models import (
    UNRESTRICTED_PROGRESS,
    Action,
    Actor,
    ContentStatus,
    ContentType,
    EditAction,
    EditEntityType,
    Role,
    SpoilerPreferences,
)
from codex.domain.contributions.repository import (
    InMemoryContentRepository,
    InMemoryEditLogRepository,
    InMemoryReaderRepository,
)
from codex.domain.contributions.service import ContentChanges, ContributionService, SubmitContent
from codex.settings import settings

AUTHOR = Actor(id=1)
READER = Actor(id=2)
MODERATOR = Actor(id=3, role=Role.MODERATOR)
ADMIN = Actor(id=4, role=Role.ADMIN)


@pytest.fixture
def content() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def readers() -> InMemoryReaderRepository:
    return InMemoryReaderRepository()


@pytest.fixture
def service(content, readers) -> ContributionService:
    edit_log = InMemoryEditLogRepository()
    return ContributionService(content, readers, edit_log, ContributionAggregator(content, edit_log))


def _guide(**overrides) -> SubmitContent:
    fields = dict(title="Beating Lalo at Ultimatum", content="Count the cards.")
    fields.update(overrides)
    return SubmitContent(**fields)


@pytest.mark.asyncio
async def test_initial_status_per_type(service) -> None:
    guide = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide())
    draft = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(content="", as_draft=True))
    media = await service.submit_content(AUTHOR, ContentType.MEDIA, SubmitContent(url="https://example.com/x.png"))
    quote = await service.submit_content(AUTHOR, ContentType.QUOTE, SubmitContent(content="Bet everything."))
    annotation = await service.submit_content(
        AUTHOR,
        ContentType.ANNOTATION,
        _guide(owner_type="gamble", owner_id=8),
    )

    assert guide.status is ContentStatus.PENDING
    assert draft.status is ContentStatus.DRAFT
    assert media.status is ContentStatus.PENDING
    assert quote.status is ContentStatus.APPROVED
    assert annotation.status is ContentStatus.PENDING
    assert annotation.owner_id == 8


@pytest.mark.asyncio
async def test_submission_validation(service) -> None:
    with pytest.raises(ContentPermissionError):
        await service.submit_content(Actor.anonymous(), ContentType.GUIDE, _guide())
    with pytest.raises(ContentValidationError) as exc:
        await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(title="   "))
    assert exc.value.field == "title"
    with pytest.raises(ContentValidationError) as exc:
        await service.submit_content(AUTHOR, ContentType.MEDIA, SubmitContent(url="https://x", as_draft=True))
    assert exc.value.reason == "draft_not_supported"
    with pytest.raises(ContentValidationError) as exc:
        await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(title="", content="", as_draft=True))
    assert exc.value.reason == "required_field_missing"
    with pytest.raises(ContentValidationError) as exc:
        await service.submit_content(AUTHOR, ContentType.ANNOTATION, _guide(owner_type="volume", owner_id=1))
    assert exc.value.reason == "invalid_owner_type"
    with pytest.raises(MalformedSpoilerMetadata):
        await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(is_spoiler=True, spoiler_chapter=0))
    with pytest.raises(ContentValidationError) as exc:
        await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(title="t" * 201))
    assert exc.value.reason == "title_too_long"


@pytest.mark.asyncio
async def test_spoiler_pair_is_kept_consistent(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(is_spoiler=False, spoiler_chapter=40))
    assert item.spoiler_chapter is None


@pytest.mark.asyncio
async def test_fetch_hides_unapproved_from_public(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide())
    with pytest.raises(ContentNotFoundError):
        await service.fetch_content_item(READER, ContentType.GUIDE, item.id)
    with pytest.raises(ContentNotFoundError):
        await service.fetch_content_item(Actor.anonymous(), ContentType.GUIDE, item.id)
    own = await service.fetch_content_item(AUTHOR, ContentType.GUIDE, item.id)
    assert Action.EDIT in own.actions
    with pytest.raises(ContentNotFoundError):
        await service.fetch_content_item(READER, ContentType.GUIDE, 999)


@pytest.mark.asyncio
async def test_fetch_uses_stored_progress_and_preview(service, readers) -> None:
    item = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide(is_spoiler=True, spoiler_chapter=300))
    await service.transition_status(MODERATOR, ContentType.GUIDE, item.id, ContentStatus.APPROVED)

    await readers.set_progress(READER.id, 250)
    reader = await service.resolve_actor(READER.id)
    gated = await service.fetch_content_item(reader, ContentType.GUIDE, item.id)
    assert gated.visible is False
    assert gated.placeholder == "Contains spoilers for chapter 300+"
    assert gated.item.content == ""

    await service.update_progress(reader, READER.id, 300)
    reader = await service.resolve_actor(READER.id)
    shown = await service.fetch_content_item(reader, ContentType.GUIDE, item.id)
    assert shown.visible is True
    assert shown.item.content == "Count the cards."

    staff = await service.resolve_actor(MODERATOR.id, "moderator")
    preview = await service.fetch_content_item(staff, ContentType.GUIDE, item.id, preview=True)
    assert preview.visible is True
    with pytest.raises(ContentPermissionError):
        await service.fetch_content_item(reader, ContentType.GUIDE, item.id, preview=True)


@pytest.mark.asyncio
async def test_preferences_unlock_spoilers(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.QUOTE, SubmitContent(content="...", is_spoiler=True, spoiler_chapter=500))
    await service.update_preferences(READER, READER.id, SpoilerPreferences(show_all_spoilers=True))
    shown = await service.fetch_content_item(READER, ContentType.QUOTE, item.id)
    assert shown.visible is True
    with pytest.raises(ContentPermissionError):
        await service.update_preferences(AUTHOR, READER.id, SpoilerPreferences())


@pytest.mark.asyncio
async def test_profile_details_follow_viewer_preferences(service) -> None:
    item = await service.submit_content(
        AUTHOR, ContentType.QUOTE, SubmitContent(content="Fold.", is_spoiler=True, spoiler_chapter=500)
    )
    gated = await service.get_user_contribution_details(READER, AUTHOR.id)
    assert gated.submissions["quotes"][0].description == ""

    await service.update_preferences(READER, READER.id, SpoilerPreferences(show_all_spoilers=True))
    details = await service.get_user_contribution_details(READER, AUTHOR.id)
    entry = details.submissions["quotes"][0]
    assert entry.id == item.id
    assert entry.description == "Fold."
    assert entry.placeholder is None

@pytest.mark.asyncio
async def test_moderation_flow_and_failed_reject_leaves_state(service, content) -> None:
    item = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide())

    with pytest.raises(MissingRejectionReason):
        await service.transition_status(MODERATOR, ContentType.GUIDE, item.id, ContentStatus.REJECTED)
    assert (await content.get(ContentType.GUIDE, item.id)).status is ContentStatus.PENDING

    with pytest.raises(ContentPermissionError):
        await service.transition_status(READER, ContentType.GUIDE, item.id, ContentStatus.APPROVED)
    with pytest.raises(ContentPermissionError):
        await service.transition_status(AUTHOR, ContentType.GUIDE, item.id, ContentStatus.APPROVED)
    assert (await content.get(ContentType.GUIDE, item.id)).status is ContentStatus.PENDING

    rejected = await service.transition_status(
        MODERATOR, ContentType.GUIDE, item.id, ContentStatus.REJECTED, "Unverified claim"
    )
    assert rejected.status is ContentStatus.REJECTED
    assert rejected.rejection_reason == "Unverified claim"

    resubmitted = await service.transition_status(AUTHOR, ContentType.GUIDE, item.id, ContentStatus.PENDING)
    assert resubmitted.status is ContentStatus.PENDING
    assert resubmitted.rejection_reason is None


@pytest.mark.asyncio
async def test_transition_writes_audit_event(service, fake_redis) -> None:
    item = await service.submit_content(AUTHOR, ContentType.MEDIA, SubmitContent(url="https://example.com/a.png"))
    await service.transition_status(ADMIN, ContentType.MEDIA, item.id, ContentStatus.APPROVED)

    entries = await fake_redis.xrange(settings.audit_stream)
    events = [fields["event"] for _, fields in entries]
    assert events == ["content.submit", "content.transition"]
    transition = entries[-1][1]
    assert transition["from"] == "pending"
    assert transition["to"] == "approved"
    assert transition["item"] == f"media:{item.id}"


@pytest.mark.asyncio
async def test_like_toggle_round_trip(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.QUOTE, SubmitContent(content="Liar."))

    first = await service.toggle_like(READER, ContentType.QUOTE, item.id)
    assert (first.liked, first.like_count) == (True, 1)
    second = await service.toggle_like(READER, ContentType.QUOTE, item.id)
    assert (second.liked, second.like_count) == (False, 0)

    with pytest.raises(SelfLikeError) as exc:
        await service.toggle_like(AUTHOR, ContentType.QUOTE, item.id)
    assert exc.value.kind == "validation"
    with pytest.raises(ContentPermissionError):
        await service.toggle_like(Actor.anonymous(), ContentType.QUOTE, item.id)


@pytest.mark.asyncio
async def test_like_flag_reported_on_fetch(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.QUOTE, SubmitContent(content="Liar."))
    await service.toggle_like(READER, ContentType.QUOTE, item.id)
    presented = await service.fetch_content_item(READER, ContentType.QUOTE, item.id)
    assert presented.user_has_liked is True
    assert presented.item.like_count == 1


@pytest.mark.asyncio
async def test_progress_updates_are_owner_or_admin(service, readers) -> None:
    assert await service.update_progress(READER, READER.id, 120) == 120
    assert await service.update_progress(ADMIN, READER.id, 130) == 130
    assert await readers.get_progress(READER.id) == 130
    with pytest.raises(ContentPermissionError):
        await service.update_progress(MODERATOR, READER.id, 10)
    with pytest.raises(ContentPermissionError):
        await service.update_progress(AUTHOR, READER.id, 10)
    with pytest.raises(ContentValidationError):
        await service.update_progress(READER, READER.id, -1)
    with pytest.raises(ContentValidationError):
        await service.update_progress(READER, READER.id, UNRESTRICTED_PROGRESS + 1)


@pytest.mark.asyncio
async def test_edit_keeps_status_and_revalidates(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.GUIDE, _guide())
    approved = await service.transition_status(MODERATOR, ContentType.GUIDE, item.id, ContentStatus.APPROVED)

    edited = await service.edit_content(AUTHOR, ContentType.GUIDE, item.id, ContentChanges(title="Beating Lalo"))
    assert edited.title == "Beating Lalo"
    assert edited.status is approved.status

    with pytest.raises(ContentValidationError):
        await service.edit_content(AUTHOR, ContentType.GUIDE, item.id, ContentChanges(content="  "))
    with pytest.raises(MalformedSpoilerMetadata):
        await service.edit_content(AUTHOR, ContentType.GUIDE, item.id, ContentChanges(is_spoiler=True))
    with pytest.raises(ContentPermissionError):
        await service.edit_content(READER, ContentType.GUIDE, item.id, ContentChanges(title="Mine now"))

    moderated = await service.edit_content(
        MODERATOR, ContentType.GUIDE, item.id, ContentChanges(is_spoiler=True, spoiler_chapter=12)
    )
    assert moderated.is_spoiler is True
    assert moderated.spoiler_chapter == 12


@pytest.mark.asyncio
async def test_delete_is_terminal(service) -> None:
    item = await service.submit_content(AUTHOR, ContentType.QUOTE, SubmitContent(content="Gone soon."))
    with pytest.raises(ContentPermissionError):
        await service.delete_content(READER, ContentType.QUOTE, item.id)
    await service.delete_content(AUTHOR, ContentType.QUOTE, item.id)
    with pytest.raises(ContentNotFoundError):
        await service.fetch_content_item(AUTHOR, ContentType.QUOTE, item.id)
    summary = await service.get_user_contributions(AUTHOR, AUTHOR.id)
    assert summary.submissions["quotes"] == 0


@pytest.mark.asyncio
async def test_pending_queue_is_staff_only(service) -> None:
    await service.submit_content(AUTHOR, ContentType.GUIDE, _guide())
    await service.submit_content(AUTHOR, ContentType.MEDIA, SubmitContent(url="https://example.com/b.png"))

    queue = await service.list_pending(MODERATOR, ContentType.GUIDE)
    assert len(queue) == 1
    counts = await service.count_pending(MODERATOR)
    assert counts[ContentType.GUIDE] == 1
    assert counts[ContentType.MEDIA] == 1
    assert counts[ContentType.QUOTE] == 0
    with pytest.raises(ContentPermissionError):
        await service.count_pending(AUTHOR)


@pytest.mark.asyncio
async def test_list_for_entity_filters_by_access(service) -> None:
    published = await service.submit_content(AUTHOR, ContentType.ANNOTATION, _guide(owner_type="arc", owner_id=3))
    await service.submit_content(AUTHOR, ContentType.ANNOTATION, _guide(owner_type="arc", owner_id=3))
    await service.transition_status(MODERATOR, ContentType.ANNOTATION, published.id, ContentStatus.APPROVED)

    public = await service.list_for_entity(READER, ContentType.ANNOTATION, "arc", 3)
    assert [entry.item.id for entry in public] == [published.id]
    own = await service.list_for_entity(AUTHOR, ContentType.ANNOTATION, "arc", 3)
    assert len(own) == 2


@pytest.mark.asyncio
async def test_entity_edits_feed_aggregate(service) -> None:
    entry = await service.record_entity_edit(AUTHOR, EditEntityType.GAMBLE, 4, EditAction.UPDATE, ["rules"])
    assert entry.changed_fields == ("rules",)
    with pytest.raises(ContentValidationError):
        await service.record_entity_edit(AUTHOR, EditEntityType.GAMBLE, 4, EditAction.UPDATE, [])
    with pytest.raises(ContentPermissionError):
        await service.record_entity_edit(Actor.anonymous(), EditEntityType.GAMBLE, 4)

    summary = await service.get_user_contributions(READER, AUTHOR.id)
    assert summary.edits["gambles"] == 1
