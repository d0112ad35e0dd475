import asyncio
import pytest
from fakes import FakeSession, FakeTranslator
from inline_translate.core.annotations import AnnotationStore
from inline_translate.core.models import ChatMessage, OutgoingDraft, TranslateSettings
from inline_translate.core.pipeline import MessagePipeline
from inline_translate.core.tooltip import TooltipTimer
from inline_translate.core.translator import TranslationError


def make_pipeline(translator, prefs, session, **settings):
    return MessagePipeline(
        translator=translator,
        prefs=prefs,
        annotations=AnnotationStore(),
        settings=TranslateSettings(**settings),
        session=session,
    )


def msg(message_id, content="Hallo Welt", author_id="someone", channel_id="c1"):
    return ChatMessage(id=message_id, channel_id=channel_id, author_id=author_id, content=content)


# --- Outbound intercept ---


@pytest.mark.asyncio
async def test_pre_send_replaces_draft_text(translator, prefs, session):
    pipeline = make_pipeline(translator, prefs, session, auto_translate=True)
    draft = OutgoingDraft(channel_id="c1", content="Hello")

    result = await pipeline.on_pre_send(draft)

    assert result.status == "translated"
    assert draft.content == "[sent] Hello"
    assert translator.calls == [("sent", "Hello")]


@pytest.mark.asyncio
async def test_pre_send_toggle_off_leaves_draft_alone(translator, prefs, session):
    pipeline = make_pipeline(translator, prefs, session, auto_translate=False)
    draft = OutgoingDraft(channel_id="c1", content="Hello")

    result = await pipeline.on_pre_send(draft)

    assert result.status == "skipped"
    assert draft.content == "Hello"
    assert translator.calls == []


@pytest.mark.asyncio
async def test_pre_send_empty_draft_is_not_translated(translator, prefs, session):
    pipeline = make_pipeline(translator, prefs, session, auto_translate=True)
    draft = OutgoingDraft(channel_id="c1", content="")

    result = await pipeline.on_pre_send(draft)

    assert result.status == "skipped"
    assert translator.calls == []


@pytest.mark.asyncio
async def test_pre_send_failure_sends_original_text(prefs, session):
    translator = FakeTranslator(fail_on={"Hello"})
    pipeline = make_pipeline(translator, prefs, session, auto_translate=True)
    draft = OutgoingDraft(channel_id="c1", content="Hello")

    result = await pipeline.on_pre_send(draft)

    assert result.status == "failed"
    assert not result.ok
    assert draft.content == "Hello"


@pytest.mark.asyncio
async def test_pre_send_keeps_tooltip_up_between_quick_sends(translator, prefs, session):
    changes = []
    pipeline = make_pipeline(translator, prefs, session, auto_translate=True)
    pipeline.tooltip = TooltipTimer(on_change=changes.append, delay=0.2)

    await pipeline.on_pre_send(OutgoingDraft(channel_id="c1", content="one"))
    await asyncio.sleep(0.12)
    await pipeline.on_pre_send(OutgoingDraft(channel_id="c1", content="two"))
    await asyncio.sleep(0.12)

    assert pipeline.tooltip.visible
    assert changes == [True]

    await asyncio.sleep(0.2)
    assert not pipeline.tooltip.visible
    assert changes == [True, False]


@pytest.mark.asyncio
async def test_pre_send_tooltip_can_be_switched_off(translator, prefs, session):
    changes = []
    pipeline = make_pipeline(
        translator, prefs, session, auto_translate=True, show_auto_translate_tooltip=False
    )
    pipeline.tooltip = TooltipTimer(on_change=changes.append, delay=0.2)

    await pipeline.on_pre_send(OutgoingDraft(channel_id="c1", content="one"))

    assert changes == []
    assert translator.calls == [("sent", "one")]


# --- Inbound message created ---


@pytest.mark.asyncio
async def test_message_create_attaches_annotation(translator, prefs, session):
    await prefs.set("c1", True)
    pipeline = make_pipeline(translator, prefs, session)

    result = await pipeline.on_message_create("c1", msg("m1"))

    assert result.status == "translated"
    assert translator.calls == [("received", "Hallo Welt")]
    assert pipeline.annotations.get("m1").text == "[received] Hallo Welt"


@pytest.mark.asyncio
async def test_message_create_never_translates_own_messages(translator, prefs, session):
    await prefs.set("c1", True)
    pipeline = make_pipeline(translator, prefs, session)

    result = await pipeline.on_message_create("c1", msg("m1", author_id="me"))

    assert result.status == "skipped"
    assert translator.calls == []
    assert "m1" not in pipeline.annotations


@pytest.mark.asyncio
async def test_message_create_ignores_other_channels(translator, prefs, session):
    await prefs.set("c1", True)
    await prefs.set("c2", True)
    pipeline = make_pipeline(translator, prefs, session)

    result = await pipeline.on_message_create("c2", msg("m1", channel_id="c2"))

    assert result.status == "skipped"
    assert translator.calls == []


@pytest.mark.asyncio
async def test_message_create_respects_channel_flag(translator, prefs, session):
    pipeline = make_pipeline(translator, prefs, session)

    result = await pipeline.on_message_create("c1", msg("m1"))

    assert result.status == "skipped"
    assert translator.calls == []


@pytest.mark.asyncio
async def test_message_create_without_active_channel(translator, prefs):
    await prefs.set("c1", True)
    pipeline = make_pipeline(translator, prefs, FakeSession(channel_id=None))

    result = await pipeline.on_message_create("c1", msg("m1"))

    assert result.status == "skipped"
    assert translator.calls == []


@pytest.mark.asyncio
async def test_message_create_failure_shows_nothing(prefs, session):
    await prefs.set("c1", True)
    translator = FakeTranslator(fail_on={"Hallo Welt"})
    pipeline = make_pipeline(translator, prefs, session)

    result = await pipeline.on_message_create("c1", msg("m1"))

    assert result.status == "failed"
    assert len(pipeline.annotations) == 0


# --- Channel switch backfill ---


def history(*ids):
    return [msg(message_id, content=f"text {message_id}") for message_id in ids]


@pytest.mark.asyncio
async def test_backfill_translates_newest_messages_in_order(translator, prefs):
    await prefs.set("c1", True)
    session = FakeSession(history={"c1": history("m1", "m2", "m3", "m4", "m5")})
    pipeline = make_pipeline(translator, prefs, session, amount_to_auto_translate=3)

    result = await pipeline.on_channel_select("c1")

    assert result.status == "translated"
    assert result.translated == 3
    assert translator.calls == [
        ("received", "text m1"),
        ("received", "text m2"),
        ("received", "text m3"),
    ]
    assert all(m in pipeline.annotations for m in ("m1", "m2", "m3"))
    assert "m4" not in pipeline.annotations
    assert "m5" not in pipeline.annotations


@pytest.mark.asyncio
async def test_backfill_short_history(translator, prefs):
    await prefs.set("c1", True)
    session = FakeSession(history={"c1": history("m1", "m2")})
    pipeline = make_pipeline(translator, prefs, session, amount_to_auto_translate=3)

    result = await pipeline.on_channel_select("c1")

    assert result.status == "translated"
    assert result.translated == 2
    assert len(translator.calls) == 2


@pytest.mark.asyncio
async def test_backfill_defaults_to_current_channel(translator, prefs):
    await prefs.set("c1", True)
    session = FakeSession(channel_id="c1", history={"c1": history("m1")})
    pipeline = make_pipeline(translator, prefs, session, amount_to_auto_translate=3)

    await pipeline.on_channel_select()

    assert session.history_requests == [("c1", 3)]


@pytest.mark.asyncio
async def test_backfill_disabled_channel_is_noop(translator, prefs):
    session = FakeSession(history={"c1": history("m1", "m2")})
    pipeline = make_pipeline(translator, prefs, session, amount_to_auto_translate=3)

    result = await pipeline.on_channel_select("c1")

    assert result.status == "skipped"
    assert translator.calls == []
    assert session.history_requests == []


@pytest.mark.asyncio
async def test_backfill_stops_on_first_error(prefs):
    await prefs.set("c1", True)
    translator = FakeTranslator(fail_on={"text m2"})
    session = FakeSession(history={"c1": history("m1", "m2", "m3")})
    pipeline = make_pipeline(translator, prefs, session, amount_to_auto_translate=3)

    result = await pipeline.on_channel_select("c1")

    assert result.status == "failed"
    assert result.translated == 1
    assert "m1" in pipeline.annotations
    assert "m2" not in pipeline.annotations
    assert "m3" not in pipeline.annotations
    assert translator.calls == [("received", "text m1"), ("received", "text m2")]


@pytest.mark.asyncio
async def test_backfill_skips_messages_without_text(translator, prefs):
    await prefs.set("c1", True)
    messages = [msg("m1"), msg("m2", content=""), msg("m3"), msg("m4")]
    session = FakeSession(history={"c1": messages})
    pipeline = make_pipeline(translator, prefs, session, amount_to_auto_translate=3)

    result = await pipeline.on_channel_select("c1")

    assert result.translated == 2
    assert "m4" not in pipeline.annotations


# --- Manual translate ---


@pytest.mark.asyncio
async def test_manual_translate_raises_on_failure(prefs, session):
    translator = FakeTranslator(fail_on={"Hallo"})
    pipeline = make_pipeline(translator, prefs, session)

    with pytest.raises(TranslationError):
        await pipeline.translate_message("m1", "Hallo")
    assert "m1" not in pipeline.annotations


@pytest.mark.asyncio
async def test_manual_translate_twice_issues_two_requests(translator, prefs, session):
    pipeline = make_pipeline(translator, prefs, session)

    first = await pipeline.translate_message("m1", "Hallo")
    second = await pipeline.translate_message("m2", "Hallo")

    assert translator.calls == [("received", "Hallo"), ("received", "Hallo")]
    assert pipeline.annotations.get("m1") == first
    assert pipeline.annotations.get("m2") == second


@pytest.mark.asyncio
async def test_manual_and_auto_translate_last_write_wins(prefs, session):
    await prefs.set("c1", True)

    class SlowTranslator(FakeTranslator):
        async def translate(self, direction, text):
            if text == "slow":
                await asyncio.sleep(0.05)
            return await super().translate(direction, text)

    pipeline = make_pipeline(SlowTranslator(), prefs, session)

    await asyncio.gather(
        pipeline.on_message_create("c1", msg("m1", content="slow")),
        pipeline.translate_message("m1", "fast"),
    )

    assert pipeline.annotations.get("m1").text == "[received] slow"
