import json

import pytest

from funnel.services.session_state import MemorySessionStore, RedisSessionStore, SessionState


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex


def populated_state() -> SessionState:
    state = SessionState()
    state.record_submission(100.0)
    state.put_token("leadForm", "tok", 90.0)
    state.remember_fingerprint("abc123")
    state.capture_utm({"utm_source": "facebook", "utm_medium": "", "referrer": ""})
    state.remember_lead({"email": "alice@example.com", "brand": "Acme"})
    state.mark_exit_intent_shown()
    return state


def test_capture_utm_first_bundle_wins():
    state = SessionState()
    assert state.capture_utm({"utm_source": "", "utm_campaign": ""}) is False
    assert state.capture_utm({"utm_source": "google", "utm_campaign": "spring"}) is True
    assert state.capture_utm({"utm_source": "tiktok"}) is False
    assert state.utm["utm_source"] == "google"


def test_exit_intent_shown_once():
    state = SessionState()
    assert state.mark_exit_intent_shown() is True
    assert state.mark_exit_intent_shown() is False


def test_prune_submissions_keeps_newer_than_cutoff():
    state = SessionState(submission_times=[10.0, 20.0, 30.0])
    state.prune_submissions(20.0)
    assert state.submission_times == [30.0]


def test_state_dict_round_trip():
    state = populated_state()
    restored = SessionState.from_dict(json.loads(json.dumps(state.to_dict())))
    assert restored == state


@pytest.mark.asyncio
async def test_memory_store_isolates_sessions():
    store = MemorySessionStore()
    await store.save("a", populated_state())

    assert (await store.load("a")).last_fingerprint == "abc123"
    assert await store.load("b") == SessionState()


@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    store = MemorySessionStore()
    await store.save("a", SessionState())

    state = await store.load("a")
    state.record_submission(1.0)
    assert (await store.load("a")).submission_times == []


@pytest.mark.asyncio
async def test_redis_store_round_trip_with_ttl():
    client = FakeRedis()
    store = RedisSessionStore(client, ttl_seconds=600)

    await store.save("sid", populated_state())
    assert client.expiry["funnel:session:sid"] == 600
    assert await store.load("sid") == populated_state()


@pytest.mark.asyncio
async def test_redis_store_corrupt_payload_yields_fresh_state():
    client = FakeRedis()
    client.data["funnel:session:sid"] = "{not json"
    store = RedisSessionStore(client, ttl_seconds=600)

    assert await store.load("sid") == SessionState()
