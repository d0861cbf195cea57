import anyio
import pytest

from screenbot.sessions import Session, SessionState, SessionStore



def make_session(candidate_id: int = 1) -> Session:
    return Session(candidate_id=candidate_id, challenge_code="4321", started_at=0, last_prompt_at=0)


def test_step_counter_follows_state():
    session = make_session()
    assert session.step == 0
    session.state = SessionState.QUESTION
    assert session.step == 1
    session.question_index = 2
    assert session.step == 3


@pytest.mark.anyio
async def test_put_get_evict():
    store = SessionStore()
    async with store.acquire(10) as slot:
        assert slot.session is None
        slot.put(make_session())
    assert 10 in store
    assert len(store) == 1
    async with store.acquire(10) as slot:
        assert slot.session.candidate_id == 1
        slot.evict()
    assert 10 not in store
    assert store.peek(10) is None


@pytest.mark.anyio
async def test_chat_for_finds_candidate_in_any_chat():
    store = SessionStore()
    async with store.acquire(101) as slot:
        slot.put(make_session(candidate_id=7))
    assert store.chat_for(7) == 101
    assert store.chat_for(8) is None
    async with store.acquire(101) as slot:
        slot.evict()
    assert store.chat_for(7) is None


@pytest.mark.anyio
async def test_slot_unusable_after_release():
    store = SessionStore()
    async with store.acquire(1) as slot:
        pass
    with pytest.raises(RuntimeError):
        slot.put(make_session())


@pytest.mark.anyio
async def test_locks_are_released_when_idle():
    store = SessionStore()
    async with store.acquire("chat"):
        pass
    assert store._locks == {}
    assert store._waiters == {}


@pytest.mark.anyio
async def test_same_key_is_serialized_in_arrival_order():
    store = SessionStore()
    order = []

    async def worker(name: str, delay: float) -> None:
        async with store.acquire("chat") as slot:
            order.append(f"{name}-in")
            current = slot.session
            count = current.question_index if current else 0
            await anyio.sleep(delay)
            session = current or make_session()
            session.question_index = count + 1
            slot.put(session)
            order.append(f"{name}-out")

    async with anyio.create_task_group() as tg:
        tg.start_soon(worker, "first", 0.05)
        await anyio.sleep(0.01)
        tg.start_soon(worker, "second", 0)

    assert order == ["first-in", "first-out", "second-in", "second-out"]
    assert store.peek("chat").question_index == 2


@pytest.mark.anyio
async def test_different_keys_do_not_block_each_other():
    store = SessionStore()
    order = []

    async def slow() -> None:
        async with store.acquire("a"):
            order.append("a-in")
            await anyio.sleep(0.05)
            order.append("a-out")

    async def fast() -> None:
        async with store.acquire("b"):
            order.append("b")

    async with anyio.create_task_group() as tg:
        tg.start_soon(slow)
        await anyio.sleep(0.01)
        tg.start_soon(fast)

    assert order == ["a-in", "b", "a-out"]
