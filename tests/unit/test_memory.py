from chat_orchestrator.agent.memory import ConversationMemory
from chat_orchestrator.types import Turn


def _exchange(memory: ConversationMemory, user_id: str, index: int) -> None:
    memory.append(
        user_id,
        Turn(role="user", content=f"question {index}"),
        Turn(role="assistant", content=f"answer {index}"),
    )


def test_history_is_bounded_and_drops_oldest_first() -> None:
    memory = ConversationMemory(max_turns=4)
    for index in range(3):
        _exchange(memory, "alice", index)

    history = memory.get("alice")

    assert [turn.text() for turn in history] == [
        "question 1",
        "answer 1",
        "question 2",
        "answer 2",
    ]


def test_limit_returns_most_recent_turns() -> None:
    memory = ConversationMemory()
    for index in range(3):
        _exchange(memory, "alice", index)

    assert [turn.text() for turn in memory.get("alice", limit=2)] == ["question 2", "answer 2"]
    assert memory.get("alice", limit=0) == []


def test_histories_are_isolated_per_user() -> None:
    memory = ConversationMemory()
    _exchange(memory, "alice", 1)
    _exchange(memory, "bob", 2)

    memory.clear("alice")

    assert memory.get("alice") == []
    assert len(memory.get("bob")) == 2
    assert memory.stats() == {"active_conversations": 1, "total_turns": 2}

    memory.clear()
    assert memory.stats() == {"active_conversations": 0, "total_turns": 0}
