import json
import threading

import pytest

from core.errors import RejectionReason, SessionRejectedError, StoreNotReadyError
from core.storage import JsonDocument
from crud.verification_store import VerificationStore

WINDOW = 300000


def _reason(store: VerificationStore, subject_id: str, secret: str) -> RejectionReason:
    with pytest.raises(SessionRejectedError) as exc_info:
        store.redeem(subject_id, secret)
    return exc_info.value.reason


def test_redeem_is_single_use(sessions):
    secret = sessions.create("42", "7")

    assert sessions.redeem("42", secret) == "7"
    assert _reason(sessions, "42", secret) is RejectionReason.NOT_FOUND


def test_unknown_subject_is_not_found(sessions):
    assert _reason(sessions, "nobody", "whatever") is RejectionReason.NOT_FOUND


def test_wrong_secret_leaves_session_redeemable(sessions):
    secret = sessions.create("42", "7")

    assert _reason(sessions, "42", "forged") is RejectionReason.SECRET_MISMATCH
    assert _reason(sessions, "42", "forged-again") is RejectionReason.SECRET_MISMATCH
    assert sessions.redeem("42", secret) == "7"


def test_secret_is_bound_to_its_subject(sessions):
    secret = sessions.create("42", "7")

    assert _reason(sessions, "99", secret) is RejectionReason.NOT_FOUND
    assert sessions.redeem("42", secret) == "7"


def test_redeem_at_window_edge_succeeds(sessions, clock):
    secret = sessions.create("42", "7")
    clock.advance(WINDOW)

    assert sessions.redeem("42", secret) == "7"


def test_expired_session_is_deleted(sessions, clock):
    secret = sessions.create("42", "7")
    clock.advance(WINDOW + 1)

    assert _reason(sessions, "42", secret) is RejectionReason.EXPIRED
    assert _reason(sessions, "42", secret) is RejectionReason.NOT_FOUND
    assert sessions.pending_count() == 0


def test_create_invalidates_previous_secret(sessions):
    old = sessions.create("42", "7")
    new = sessions.create("42", "8")

    assert old != new
    assert _reason(sessions, "42", old) is RejectionReason.SECRET_MISMATCH
    assert sessions.redeem("42", new) == "8"


def test_sweep_removes_only_expired_sessions(sessions, clock):
    sessions.create("old", "7")
    clock.advance(WINDOW + 1)
    fresh = sessions.create("fresh", "7")

    assert sessions.sweep_expired() == 1
    assert sessions.pending_count() == 1
    assert sessions.redeem("fresh", fresh) == "7"
    assert sessions.sweep_expired() == 0


def test_state_survives_restart(sessions_path, sessions, clock):
    secret = sessions.create("42", "7")

    restarted = VerificationStore(JsonDocument(sessions_path), expiration_ms=WINDOW, clock=clock)
    restarted.load()

    assert restarted.redeem("42", secret) == "7"


def test_snapshot_is_fully_rewritten(sessions_path, sessions):
    secret = sessions.create("42", "7")
    sessions.create("43", "7")
    sessions.redeem("42", secret)

    with open(sessions_path, encoding="utf-8") as fh:
        data = json.load(fh)
    assert set(data) == {"43"}
    assert data["43"]["community_id"] == "7"


def test_cold_start_without_snapshot(tmp_path, clock):
    store = VerificationStore(JsonDocument(str(tmp_path / "missing" / "verified.json")), clock=clock)
    store.load()

    assert store.pending_count() == 0


def test_corrupt_snapshot_starts_fresh(sessions_path, clock):
    with open(sessions_path, "w", encoding="utf-8") as fh:
        fh.write("{not json")
    store = VerificationStore(JsonDocument(sessions_path), clock=clock)
    store.load()

    assert store.pending_count() == 0


def test_operations_before_load_are_refused(sessions_path):
    store = VerificationStore(JsonDocument(sessions_path))

    with pytest.raises(StoreNotReadyError):
        store.create("42", "7")
    with pytest.raises(StoreNotReadyError):
        store.redeem("42", "x")
    with pytest.raises(StoreNotReadyError):
        store.sweep_expired()


class _BrokenDocument(JsonDocument):
    def write(self, data: dict) -> None:
        raise OSError("disk full")


def test_persistence_failure_keeps_memory_state(tmp_path, clock):
    store = VerificationStore(_BrokenDocument(str(tmp_path / "v.json")), clock=clock)
    store.load()

    secret = store.create("42", "7")

    assert store.redeem("42", secret) == "7"


def test_concurrent_redeem_succeeds_once(sessions):
    secret = sessions.create("42", "7")
    results: list[str] = []
    barrier = threading.Barrier(8)

    def attempt() -> None:
        barrier.wait()
        try:
            results.append(sessions.redeem("42", secret))
        except SessionRejectedError:
            pass

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == ["7"]


def test_concurrent_creates_are_not_lost(sessions):
    def create_many(offset: int) -> None:
        for i in range(25):
            sessions.create(f"user-{offset}-{i}", "7")

    threads = [threading.Thread(target=create_many, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sessions.pending_count() == 100
