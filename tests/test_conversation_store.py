import json

from bookbot.config import STORAGE_KEY
from bookbot.conversation_store import SEED_GREETING, ConversationStore
from bookbot.models import Message, Sender
from bookbot.storage import JsonFileStorage, MemoryStorage


def _message(index: int) -> Message:
    sender = Sender.USER if index % 2 == 0 else Sender.ASSISTANT
    return Message(sender=sender, text=f"msg-{index:02d}", created_at=float(index))


def test_new_store_starts_with_seed_greeting():
    store = ConversationStore(MemoryStorage())

    messages = store.messages()
    assert len(messages) == 1
    assert messages[0].sender == Sender.ASSISTANT
    assert messages[0].text == SEED_GREETING


def test_append_preserves_insertion_order_and_persists_each_message():
    storage = MemoryStorage()
    store = ConversationStore(storage)

    for index in range(7):
        store.append(_message(index))
        stored = json.loads(storage.get(STORAGE_KEY))
        assert stored[-1]["text"] == f"msg-{index:02d}"

    texts = [message.text for message in store.messages()[1:]]
    assert texts == [f"msg-{index:02d}" for index in range(7)]


def test_windowed_returns_tail_and_sets_truncation_flag():
    store = ConversationStore(MemoryStorage(), max_context_messages=20)
    for index in range(25):
        store.append(_message(index))

    window = store.windowed()
    assert len(window) == 20
    assert [message.text for message in window] == [f"msg-{index:02d}" for index in range(5, 25)]
    assert store.is_truncated is True


def test_truncation_flag_clear_at_or_below_cap():
    store = ConversationStore(MemoryStorage(), max_context_messages=20)
    for index in range(19):
        store.append(_message(index))

    assert len(store) == 20
    assert store.is_truncated is False
    assert len(store.windowed()) == 20


def test_reset_leaves_only_seed_and_is_idempotent():
    storage = MemoryStorage()
    store = ConversationStore(storage)
    for index in range(5):
        store.append(_message(index))

    store.reset()
    store.reset()

    assert [message.text for message in store.messages()] == [SEED_GREETING]
    assert len(json.loads(storage.get(STORAGE_KEY))) == 1


def test_restore_loads_previous_snapshot():
    storage = MemoryStorage()
    first = ConversationStore(storage)
    first.append(_message(0))
    first.append(_message(1))

    second = ConversationStore(storage)

    assert [message.text for message in second.messages()] == [SEED_GREETING, "msg-00", "msg-01"]


def test_restore_treats_corrupt_snapshot_as_empty():
    for raw in ["{not json", json.dumps({"sender": "user"}), json.dumps([{"sender": "robot", "text": "x"}]), "[]"]:
        storage = MemoryStorage({STORAGE_KEY: raw})

        store = ConversationStore(storage)

        assert [message.text for message in store.messages()] == [SEED_GREETING]
        assert len(json.loads(storage.get(STORAGE_KEY))) == 1


def test_json_file_storage_survives_restart_and_corruption(tmp_path):
    path = tmp_path / "chat.json"
    store = ConversationStore(JsonFileStorage(path))
    store.append(_message(0))

    reloaded = ConversationStore(JsonFileStorage(path))
    assert [message.text for message in reloaded.messages()][-1] == "msg-00"

    path.write_text("garbage", encoding="utf-8")
    recovered = ConversationStore(JsonFileStorage(path))
    assert [message.text for message in recovered.messages()] == [SEED_GREETING]


def test_fallback_flag_round_trips_through_storage():
    storage = MemoryStorage()
    store = ConversationStore(storage)
    store.append(Message(sender=Sender.ASSISTANT, text="offline reply", is_fallback=True))

    reloaded = ConversationStore(storage)

    assert reloaded.messages()[-1].is_fallback is True
