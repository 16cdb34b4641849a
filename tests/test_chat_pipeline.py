from chat_pipeline import (
    DEMO_GOAL,
    DEMO_ROLES,
    EMPTY_NOTE_HINT,
    PERSONA,
    build_chat_messages,
    run_chat_turn,
    run_demo,
)
from fakes import FakeCompletion
from memory_store import MEMORY_HEADING, MemoryStore


class RecordingSelfPatch:
    def __init__(self, reply="已创建 PR：https://github.com/acme/site/pull/1"):
        self.reply = reply
        self.demands = []

    def run(self, demand):
        self.demands.append(demand)
        return self.reply


def _turn(history, memory, completion, self_patch=None):
    return run_chat_turn(
        history,
        memory=memory,
        completion=completion,
        self_patch=self_patch or RecordingSelfPatch(),
    )


def test_default_chat_uses_persona_without_memory_block():
    completion = FakeCompletion("你好呀")
    reply = _turn([{"role": "user", "content": "你好"}], MemoryStore(), completion)
    assert reply == "你好呀"
    system = completion.calls[0][0]
    assert system == {"role": "system", "content": PERSONA}
    assert completion.calls[0][1:] == [{"role": "user", "content": "你好"}]


def test_history_is_forwarded_in_order():
    completion = FakeCompletion("ok")
    history = [
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "b"},
        {"role": "user", "content": "c"},
    ]
    _turn(history, MemoryStore(), completion)
    assert completion.calls[0][1:] == history


def test_memory_note_is_stored_and_used_in_later_turns():
    memory = MemoryStore()
    completion = FakeCompletion("好的，记住了", "主账号是A")

    _turn([{"role": "user", "content": "记住：主账号是A"}], memory, completion)
    assert memory.notes() == ("主账号是A",)
    # the turn that wrote the note already sees it
    assert "1. 主账号是A" in completion.calls[0][0]["content"]

    reply = _turn([{"role": "user", "content": "我的主账号是哪个？"}], memory, completion)
    assert reply == "主账号是A"
    system = completion.calls[1][0]["content"]
    assert system.startswith(PERSONA)
    assert MEMORY_HEADING in system
    assert "1. 主账号是A" in system


def test_empty_note_gets_hint_without_model_call():
    memory = MemoryStore()
    completion = FakeCompletion()
    reply = _turn([{"role": "user", "content": "记住：   "}], memory, completion)
    assert reply == EMPTY_NOTE_HINT
    assert len(memory) == 0
    assert completion.calls == []


def test_auto_dev_is_delegated_and_skips_chat():
    completion = FakeCompletion()
    patcher = RecordingSelfPatch()
    reply = _turn([{"role": "user", "content": "/auto-dev 加一行提示文字"}], MemoryStore(), completion, patcher)
    assert reply == patcher.reply
    assert patcher.demands == ["加一行提示文字"]
    assert completion.calls == []


def test_only_last_user_turn_is_classified():
    completion = FakeCompletion("普通回复")
    patcher = RecordingSelfPatch()
    memory = MemoryStore()
    history = [
        {"role": "user", "content": "/auto-dev 旧需求"},
        {"role": "assistant", "content": "已创建 PR"},
        {"role": "user", "content": "谢谢"},
    ]
    assert _turn(history, memory, completion, patcher) == "普通回复"
    assert patcher.demands == []
    assert len(memory) == 0


def test_build_chat_messages_drops_malformed_turns():
    msgs = build_chat_messages(
        [{"role": "user", "content": "a"}, {"role": "tool", "content": "x"}, "junk", {"role": "user"}],
        MemoryStore(),
    )
    assert [m["role"] for m in msgs] == ["system", "user"]


def test_demo_runs_three_roles_then_summary():
    completion = FakeCompletion("选品建议", "内容建议", "风控建议", "最终方案")
    text = run_demo(completion)

    assert len(completion.calls) == 4
    for call, (_, role_label, task) in zip(completion.calls[:3], DEMO_ROLES):
        assert call[0] == {"role": "system", "content": PERSONA}
        assert role_label in call[1]["content"]
        assert task in call[1]["content"]
        assert DEMO_GOAL in call[1]["content"]
    summary_prompt = completion.calls[3][1]["content"]
    for output in ("选品建议", "内容建议", "风控建议"):
        assert output in summary_prompt

    assert text.startswith("【目标】\n" + DEMO_GOAL)
    assert "【各角色输出】" in text
    for name, _, _ in DEMO_ROLES:
        assert f"—— {name} ——" in text
    assert text.endswith("【总负责人给你的执行方案】\n最终方案\n")
