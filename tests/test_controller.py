"""Сценарии обработки событий контроллером модерации."""
import asyncio

import pytest

from app.moderation import texts
from app.moderation.controller import ModerationController
from app.moderation.events import (
    BotAdded,
    BotRemoved,
    Callback,
    DirectMessage,
    GroupMessage,
    MemberJoined,
)
from app.moderation.models import FilterSettings

from tests.conftest import CHAT_ID, OWNER_ID, USER_ID, wait_until

DM_CHAT_ID = 9001


def _join(user_id=USER_ID):
    return MemberJoined(chat_id=CHAT_ID, user_id=user_id, chat_title="Тестовый чат")


def _click(payload, user_id=USER_ID, chat_id=CHAT_ID):
    return Callback(chat_id=chat_id, user_id=user_id, payload=payload)


def _terminal_actions(actions, user_id=USER_ID):
    unmutes = [c for c in actions.named("set_member_can_send") if c[2] == user_id and c[3] is True]
    kicks = [c for c in actions.named("remove_member") if c[2] == user_id]
    return unmutes, kicks


@pytest.fixture
def owned_chat(repository):
    repository.ensure_owner_and_chat(OWNER_ID, CHAT_ID, "Тестовый чат")
    return CHAT_ID


# ============================================================================
# DIRECT MESSAGES
# ============================================================================

@pytest.mark.asyncio
async def test_help_command(controller, actions):
    await controller.handle_event(DirectMessage(chat_id=DM_CHAT_ID, user_id=OWNER_ID, text="  /HELP "))
    assert actions.calls == [("send_message", DM_CHAT_ID, texts.HELP_TEXT, None)]


@pytest.mark.asyncio
async def test_other_direct_message_sends_menu(controller, actions, redis_client):
    await controller.handle_event(DirectMessage(chat_id=DM_CHAT_ID, user_id=OWNER_ID, text="привет"))

    (_, chat_id, text, buttons), = actions.calls
    assert (chat_id, text) == (DM_CHAT_ID, texts.WELCOME_TEXT)
    assert buttons[0][0].payload == f"show_chats_{OWNER_ID}"
    assert redis_client.keys("*") == []


# ============================================================================
# JOIN / VERIFY / EXPIRY
# ============================================================================

@pytest.mark.asyncio
async def test_join_mutes_then_issues_challenge(controller, actions, repository):
    await controller.handle_event(_join())

    names = [call[0] for call in actions.calls]
    assert names == ["set_member_can_send", "send_message"]
    assert actions.calls[0] == ("set_member_can_send", CHAT_ID, USER_ID, False)
    assert controller.captcha.has_pending(CHAT_ID, USER_ID)
    assert repository.get_chat(CHAT_ID).owner_id == USER_ID
    controller.captcha.shutdown()


@pytest.mark.asyncio
async def test_verify_within_timeout(controller, actions):
    await controller.handle_event(_join())
    challenge_id = controller.captcha.get(USER_ID).message_id

    await controller.handle_event(_click(f"verify_{USER_ID}"))

    assert not controller.captcha.has_pending(CHAT_ID, USER_ID)
    assert ("set_member_can_send", CHAT_ID, USER_ID, True) in actions.calls
    assert ("delete_message", CHAT_ID, challenge_id) in actions.calls
    assert actions.calls[-1] == ("send_message", CHAT_ID, texts.VERIFIED_TEXT, None)

    calls_before = list(actions.calls)
    await controller.handle_event(_click(f"verify_{USER_ID}"))
    assert actions.calls == calls_before

    await asyncio.sleep(0.2)
    assert actions.named("remove_member") == []


@pytest.mark.asyncio
async def test_verify_button_of_another_user_is_ignored(controller, actions):
    await controller.handle_event(_join())
    calls_before = list(actions.calls)

    await controller.handle_event(_click(f"verify_{USER_ID}", user_id=USER_ID + 1))

    assert actions.calls == calls_before
    assert controller.captcha.has_pending(CHAT_ID, USER_ID)
    controller.captcha.shutdown()


@pytest.mark.asyncio
async def test_no_click_expires_and_removes_member(controller, actions, repository):
    await controller.handle_event(_join())
    challenge_id = controller.captcha.get(USER_ID).message_id

    assert await wait_until(lambda: actions.named("remove_member"))

    assert actions.named("remove_member") == [("remove_member", CHAT_ID, USER_ID)]
    assert ("delete_message", CHAT_ID, challenge_id) in actions.calls
    assert ("send_message", CHAT_ID, texts.EXPIRED_TEXT.format(user_id=USER_ID), None) in actions.calls
    assert not controller.captcha.has_pending(CHAT_ID, USER_ID)

    assert await wait_until(
        lambda: [a.action_type for a in repository.load_mod_log(CHAT_ID)] == ["kick", "mute"]
    )

    # Клик после истечения ничего не делает
    calls_before = list(actions.calls)
    await controller.handle_event(_click(f"verify_{USER_ID}"))
    assert actions.calls == calls_before


@pytest.mark.asyncio
async def test_expiry_kicks_even_if_notice_fails(controller, actions):
    await controller.handle_event(_join())
    actions.fail_on.update({"delete_message", "send_message"})

    assert await wait_until(lambda: actions.named("remove_member"))


@pytest.mark.asyncio
async def test_exactly_one_terminal_action_when_click_races_expiry(actions, repository):
    controller = ModerationController(actions, repository, captcha_timeout_sec=0.0)
    await controller.handle_event(_join())

    # Таймер уже наступил; клики и истечение конкурируют в одном тике
    await asyncio.gather(*(controller.handle_event(_click(f"verify_{USER_ID}")) for _ in range(5)))
    await asyncio.sleep(0.1)

    unmutes, kicks = _terminal_actions(actions)
    assert len(unmutes) + len(kicks) == 1
    assert not controller.captcha.has_pending(CHAT_ID, USER_ID)


@pytest.mark.asyncio
async def test_mute_failure_aborts_challenge(controller, actions):
    actions.fail_on.add("set_member_can_send")

    await controller.handle_event(_join())

    assert actions.named("send_message") == []
    assert not controller.captcha.has_pending(CHAT_ID, USER_ID)


@pytest.mark.asyncio
async def test_duplicate_join_is_silent(controller, actions):
    await controller.handle_event(_join())
    calls_before = list(actions.calls)

    await controller.handle_event(_join())

    assert actions.calls == calls_before
    controller.captcha.shutdown()


@pytest.mark.asyncio
async def test_concurrent_duplicate_joins_issue_one_challenge(controller, actions):
    await asyncio.gather(controller.handle_event(_join()), controller.handle_event(_join()))

    challenges = [c for c in actions.named("send_message") if c[2] == texts.CHALLENGE_TEXT]
    assert len(challenges) == 1
    controller.captcha.shutdown()


@pytest.mark.asyncio
async def test_join_while_pending_elsewhere_does_not_mute(controller, actions):
    other_chat = CHAT_ID - 1
    await controller.handle_event(_join())

    await controller.handle_event(MemberJoined(chat_id=other_chat, user_id=USER_ID))

    assert [c for c in actions.calls if c[1] == other_chat] == []
    assert controller.captcha.has_pending(CHAT_ID, USER_ID)

    # После прохождения капчи вход во второй чат проверяется как обычно
    await controller.handle_event(_click(f"verify_{USER_ID}"))
    await controller.handle_event(MemberJoined(chat_id=other_chat, user_id=USER_ID))

    assert ("set_member_can_send", other_chat, USER_ID, False) in actions.calls
    assert ("send_message", other_chat, texts.CHALLENGE_TEXT) == actions.named("send_message")[-1][:3]
    assert controller.captcha.has_pending(other_chat, USER_ID)
    controller.captcha.shutdown()


@pytest.mark.asyncio
async def test_concurrent_joins_in_two_chats_mute_once(controller, actions):
    await asyncio.gather(
        controller.handle_event(_join()),
        controller.handle_event(MemberJoined(chat_id=CHAT_ID - 1, user_id=USER_ID)),
    )

    mutes = [c for c in actions.named("set_member_can_send") if c[3] is False]
    challenges = [c for c in actions.named("send_message") if c[2] == texts.CHALLENGE_TEXT]
    assert len(mutes) == 1
    assert [c[1] for c in challenges] == [mutes[0][1]]
    controller.captcha.shutdown()


@pytest.mark.asyncio
async def test_join_with_captcha_disabled_admits_member(controller, actions, repository, owned_chat):
    repository.toggle(owned_chat, "captcha")

    await controller.handle_event(_join())

    assert actions.calls == []
    assert not controller.captcha.has_pending(CHAT_ID, USER_ID)


@pytest.mark.asyncio
async def test_join_keeps_existing_owner(controller, repository, owned_chat):
    await controller.handle_event(_join())
    assert repository.get_chat(owned_chat).owner_id == OWNER_ID
    controller.captcha.shutdown()


# ============================================================================
# GROUP MESSAGES
# ============================================================================

@pytest.mark.asyncio
async def test_link_toggle_takes_effect_on_next_message(controller, actions, owned_chat):
    message = GroupMessage(chat_id=owned_chat, message_id="mid.100", text="смотри http://x.com", user_id=USER_ID)

    await controller.handle_event(message)
    assert actions.calls == []

    await controller.handle_event(_click(f"toggle_links_{owned_chat}", user_id=OWNER_ID, chat_id=DM_CHAT_ID))
    actions.calls.clear()

    await controller.handle_event(message)
    assert actions.calls == [
        ("delete_message", owned_chat, "mid.100"),
        ("send_message", owned_chat, texts.VIOLATION_TEXT, None),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["плохое", "http://x.com", "обычный текст", ""])
async def test_disabled_chat_never_moderated(controller, actions, repository, owned_chat, text):
    repository.toggle(owned_chat, "links")
    repository.toggle(owned_chat, "bad_words")
    repository.set_enabled(owned_chat, False)

    await controller.handle_event(GroupMessage(chat_id=owned_chat, message_id="m", text=text))

    assert actions.calls == []


@pytest.mark.asyncio
async def test_unknown_chat_message_is_ignored(controller, actions):
    await controller.handle_event(GroupMessage(chat_id=123, message_id="m", text="http://x.com"))
    assert actions.calls == []


@pytest.mark.asyncio
async def test_violation_is_recorded_in_mod_log(controller, repository, owned_chat, monkeypatch):
    monkeypatch.setattr("app.config.BAD_WORDS", ["плохое"])
    repository.toggle(owned_chat, "bad_words")

    await controller.handle_event(GroupMessage(chat_id=owned_chat, message_id="m1", text="ПЛОХОЕ", user_id=USER_ID))

    action, = repository.load_mod_log(owned_chat)
    assert action.action_type == "delete"
    assert action.target_user_id == USER_ID
    assert action.reason == "filter:bad_words"


@pytest.mark.asyncio
async def test_delete_failure_is_contained(controller, actions, repository, owned_chat):
    repository.toggle(owned_chat, "links")
    actions.fail_on.add("delete_message")

    await controller.handle_event(GroupMessage(chat_id=owned_chat, message_id="m1", text="www.x.ru"))

    assert actions.named("send_message") == []


# ============================================================================
# SETTINGS MENU
# ============================================================================

@pytest.mark.asyncio
async def test_show_chats_empty(controller, actions):
    await controller.handle_event(_click(f"show_chats_{OWNER_ID}", user_id=OWNER_ID, chat_id=DM_CHAT_ID))
    assert actions.calls == [("send_message", DM_CHAT_ID, texts.NO_CHATS_TEXT, None)]


@pytest.mark.asyncio
async def test_show_chats_lists_buttons(controller, actions, repository, owned_chat):
    repository.ensure_owner_and_chat(OWNER_ID, 2, None)
    repository.set_enabled(2, False)

    await controller.handle_event(_click(f"show_chats_{OWNER_ID}", user_id=OWNER_ID, chat_id=DM_CHAT_ID))

    (_, chat_id, text, buttons), = actions.calls
    assert (chat_id, text) == (DM_CHAT_ID, texts.CHATS_LIST_TEXT)
    assert [(row[0].text, row[0].payload) for row in buttons] == [
        ("Тестовый чат (✅)", f"settings_{owned_chat}"),
        ("Без названия (❌)", "settings_2"),
    ]


@pytest.mark.asyncio
async def test_show_chats_of_another_owner_is_rejected(controller, actions, owned_chat):
    await controller.handle_event(_click(f"show_chats_{OWNER_ID}", user_id=USER_ID, chat_id=DM_CHAT_ID))
    assert actions.calls == []


@pytest.mark.asyncio
async def test_open_settings_renders_grid(controller, actions, repository, owned_chat):
    repository.toggle(owned_chat, "links")

    await controller.handle_event(_click(f"settings_{owned_chat}", user_id=OWNER_ID, chat_id=DM_CHAT_ID))

    (_, chat_id, text, buttons), = actions.calls
    assert (chat_id, text) == (DM_CHAT_ID, texts.SETTINGS_TEXT)
    flat = [(button.text, button.payload) for row in buttons for button in row]
    assert flat == [
        ("Капча ✅", f"toggle_captcha_{owned_chat}"),
        ("Мат ❌", f"toggle_bad_words_{owned_chat}"),
        ("Ссылки ✅", f"toggle_links_{owned_chat}"),
    ]


@pytest.mark.asyncio
async def test_toggle_sends_confirmation_with_updated_grid(controller, actions, repository, owned_chat):
    await controller.handle_event(_click(f"toggle_bad_words_{owned_chat}", user_id=OWNER_ID, chat_id=DM_CHAT_ID))

    assert repository.get_settings(owned_chat).bad_words is True
    (_, chat_id, text, buttons), = actions.calls
    assert chat_id == DM_CHAT_ID
    assert text == texts.TOGGLED_TEXT.format(label="Мат", state="✅")
    assert buttons[0][1].text == "Мат ✅"


@pytest.mark.asyncio
async def test_toggle_grid_comes_from_written_settings(controller, actions, repository, owned_chat, monkeypatch):
    def _no_second_read(chat_id):
        raise AssertionError("настройки перечитаны после переключения")

    monkeypatch.setattr(repository, "get_settings", _no_second_read)

    await controller.handle_event(_click(f"toggle_links_{owned_chat}", user_id=OWNER_ID, chat_id=DM_CHAT_ID))

    (_, _, text, buttons), = actions.calls
    assert text == texts.TOGGLED_TEXT.format(label="Ссылки", state="✅")
    assert buttons[1][0].text == "Ссылки ✅"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    f"toggle_badwords_{CHAT_ID}",
    "toggle_links_31337",
    "toggle_links",
    "something_else",
])
async def test_bad_toggle_payloads_are_noops(controller, actions, repository, owned_chat, payload):
    await controller.handle_event(_click(payload, user_id=OWNER_ID, chat_id=DM_CHAT_ID))

    assert actions.calls == []
    assert repository.get_settings(owned_chat) == FilterSettings()


@pytest.mark.asyncio
async def test_toggle_by_non_owner_is_rejected(controller, actions, repository, owned_chat):
    await controller.handle_event(_click(f"toggle_links_{owned_chat}", user_id=USER_ID, chat_id=DM_CHAT_ID))

    assert actions.calls == []
    assert repository.get_settings(owned_chat).links is False


# ============================================================================
# BOT MEMBERSHIP / ERRORS
# ============================================================================

@pytest.mark.asyncio
async def test_bot_added_registers_owner(controller, repository):
    await controller.handle_event(BotAdded(chat_id=CHAT_ID, user_id=OWNER_ID, chat_title="Чат"))
    chat = repository.get_chat(CHAT_ID)
    assert chat.owner_id == OWNER_ID
    assert [c.chat_id for c in repository.list_chats(OWNER_ID)] == [CHAT_ID]


@pytest.mark.asyncio
async def test_bot_removed_then_added_toggles_enabled(controller, repository, owned_chat):
    await controller.handle_event(BotRemoved(chat_id=owned_chat))
    assert repository.get_chat(owned_chat).enabled is False

    await controller.handle_event(BotAdded(chat_id=owned_chat, user_id=OWNER_ID))
    assert repository.get_chat(owned_chat).enabled is True


@pytest.mark.asyncio
async def test_bot_removed_from_unknown_chat(controller, repository):
    await controller.handle_event(BotRemoved(chat_id=123))
    assert repository.get_chat(123) is None


@pytest.mark.asyncio
async def test_unexpected_error_is_logged(controller, monkeypatch, caplog):
    async def _boom(event):
        raise RuntimeError("boom")

    monkeypatch.setattr(controller, "on_direct_message", _boom)

    await controller.handle_event(DirectMessage(chat_id=DM_CHAT_ID, user_id=OWNER_ID, text="x"))

    assert "Непредвиденная ошибка обработки DirectMessage" in caplog.text


@pytest.mark.asyncio
async def test_unsupported_event_is_ignored(controller, actions):
    await controller.handle_event(object())
    assert actions.calls == []
