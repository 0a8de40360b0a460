import pytest

from errors import (
    InvalidCredentialsError,
    InvalidSessionError,
    LockedOutError,
    MissingInputError,
    ServerMisconfiguredError,
)
from services import admin_auth
from services.admin_auth import (
    LOCKOUT_DURATION,
    MAX_FAILED_ATTEMPTS,
    SESSION_TTL,
    AdminAuthenticator,
    LockoutTracker,
    SessionStore,
    client_id_from_headers,
    hash_secret,
    validate_secret,
)

from conftest import ADMIN_KEY


# ---------------------------------------------------------------------------
# LockoutTracker
# ---------------------------------------------------------------------------

@pytest.fixture
def tracker(clock):
    return LockoutTracker(clock=clock)


def test_threshold(tracker):
    for _ in range(MAX_FAILED_ATTEMPTS - 1):
        tracker.record_failed_attempt("1.2.3.4")
    assert tracker.is_locked_out("1.2.3.4") is False

    tracker.record_failed_attempt("1.2.3.4")
    assert tracker.is_locked_out("1.2.3.4") is True


def test_failures_during_lockout_do_not_extend_window(tracker, clock):
    for _ in range(MAX_FAILED_ATTEMPTS):
        tracker.record_failed_attempt("c")
    locked_until = tracker.locked_until("c")
    assert locked_until == clock.now + LOCKOUT_DURATION

    clock.advance(60)
    tracker.record_failed_attempt("c")
    assert tracker.locked_until("c") == locked_until
    assert tracker.failure_count("c") == MAX_FAILED_ATTEMPTS + 1


def test_expired_lockout_is_purged(tracker, clock):
    for _ in range(MAX_FAILED_ATTEMPTS + 1):
        tracker.record_failed_attempt("c")

    clock.advance(LOCKOUT_DURATION)
    assert tracker.is_locked_out("c") is False
    assert tracker.failure_count("c") == 0

    tracker.record_failed_attempt("c")
    assert tracker.failure_count("c") == 1


def test_failure_after_expired_lockout_starts_fresh_without_check(tracker, clock):
    for _ in range(MAX_FAILED_ATTEMPTS):
        tracker.record_failed_attempt("c")
    clock.advance(LOCKOUT_DURATION + 1)

    tracker.record_failed_attempt("c")
    assert tracker.failure_count("c") == 1
    assert tracker.is_locked_out("c") is False


def test_clear_removes_record(tracker):
    for _ in range(3):
        tracker.record_failed_attempt("c")
    tracker.clear_failed_attempts("c")
    assert tracker.failure_count("c") == 0

    tracker.record_failed_attempt("c")
    assert tracker.failure_count("c") == 1


def test_record_map_is_capped(clock):
    tracker = LockoutTracker(clock=clock, max_records=3)
    for i in range(1000):
        tracker.record_failed_attempt(f"10.0.{i // 256}.{i % 256}")
    assert len(tracker) == 3


def test_cap_evicts_accumulating_records_before_locked_ones(clock):
    tracker = LockoutTracker(clock=clock, max_records=2)
    for _ in range(MAX_FAILED_ATTEMPTS):
        tracker.record_failed_attempt("attacker")
    tracker.record_failed_attempt("a")
    tracker.record_failed_attempt("b")

    assert tracker.is_locked_out("attacker") is True
    assert tracker.failure_count("a") == 0
    assert tracker.failure_count("b") == 1


def test_clients_are_tracked_independently(tracker):
    for _ in range(MAX_FAILED_ATTEMPTS):
        tracker.record_failed_attempt("a")
    assert tracker.is_locked_out("a") is True
    assert tracker.is_locked_out("b") is False


# ---------------------------------------------------------------------------
# Secret comparison
# ---------------------------------------------------------------------------

def test_validate_secret():
    assert validate_secret("abcdef", "abcdef") is True
    assert validate_secret("abcdeg", "abcdef") is False
    assert validate_secret("abc", "abcdef") is False
    assert validate_secret("", "abcdef") is False


def test_validate_secret_uses_one_primitive_on_every_path(monkeypatch):
    calls = []
    real = admin_auth.hmac.compare_digest

    def spy(a, b):
        calls.append((len(a), len(b)))
        return real(a, b)

    monkeypatch.setattr(admin_auth.hmac, "compare_digest", spy)

    validate_secret("abc", "abcdef")
    validate_secret("xyz123", "abcdef")
    validate_secret("abcdef", "abcdef")

    assert calls == [(3, 3), (6, 6), (6, 6)]


def test_hash_secret_is_sha256_hex():
    digest = hash_secret("secret")
    assert len(digest) == 64
    assert digest != "secret"
    assert digest == hash_secret("secret")


# ---------------------------------------------------------------------------
# SessionStore
# ---------------------------------------------------------------------------

def test_session_expiry(clock):
    store = SessionStore(clock=clock)
    token = store.issue(hash_secret(ADMIN_KEY))

    clock.advance(SESSION_TTL - 0.001)
    assert store.validate(token) is True

    clock.advance(0.002)
    assert store.validate(token) is False


def test_tokens_are_unique_and_unknown_tokens_fail(clock):
    store = SessionStore(clock=clock)
    tokens = {store.issue("h") for _ in range(50)}
    assert len(tokens) == 50
    assert store.validate("not-a-token") is False


def test_cleanup_removes_only_expired(clock):
    store = SessionStore(clock=clock)
    old = store.issue("h")
    clock.advance(SESSION_TTL - 10)
    new = store.issue("h")
    clock.advance(10)

    assert store.cleanup() == 1
    assert len(store) == 1
    assert store.validate(new) is True
    assert store.validate(old) is False


def test_revoke(clock):
    store = SessionStore(clock=clock)
    token = store.issue("h")
    assert store.revoke(token) is True
    assert store.validate(token) is False
    assert store.revoke(token) is False


# ---------------------------------------------------------------------------
# Client identifier
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"x-forwarded-for": "1.2.3.4, 10.0.0.1"}, "1.2.3.4"),
        ({"x-forwarded-for": " 5.6.7.8 "}, "5.6.7.8"),
        ({"x-vercel-forwarded-for": "9.9.9.9, 1.1.1.1"}, "9.9.9.9"),
        ({"cf-connecting-ip": "2.2.2.2", "x-real-ip": "3.3.3.3"}, "2.2.2.2"),
        ({"x-real-ip": "3.3.3.3"}, "3.3.3.3"),
        ({"x-forwarded-for": ""}, "unknown"),
        ({}, "unknown"),
    ],
)
def test_client_id_from_headers(headers, expected):
    assert client_id_from_headers(headers) == expected


# ---------------------------------------------------------------------------
# AdminAuthenticator flow
# ---------------------------------------------------------------------------

def test_secret_login_issues_session(authenticator):
    result = authenticator.authenticate("c", secret=ADMIN_KEY)

    assert result["success"] is True
    assert result["expiresInMillis"] == 86_400_000
    assert authenticator.authenticate("c", session_token=result["sessionToken"]) == {"valid": True}


def test_success_clears_earlier_failures(authenticator):
    for _ in range(3):
        with pytest.raises(InvalidCredentialsError):
            authenticator.authenticate("c", secret="wrong")
    assert authenticator.lockout.failure_count("c") == 3

    authenticator.authenticate("c", secret=ADMIN_KEY)
    assert authenticator.lockout.failure_count("c") == 0

    with pytest.raises(InvalidCredentialsError):
        authenticator.authenticate("c", secret="wrong")
    assert authenticator.lockout.failure_count("c") == 1


def test_invalid_session_does_not_count_as_failure(authenticator):
    with pytest.raises(InvalidSessionError):
        authenticator.authenticate("c", session_token="bogus")
    assert authenticator.lockout.failure_count("c") == 0


def test_locked_out_client_rejected_before_secret_check(authenticator):
    for _ in range(MAX_FAILED_ATTEMPTS):
        with pytest.raises(InvalidCredentialsError):
            authenticator.authenticate("c", secret="wrong")

    with pytest.raises(LockedOutError):
        authenticator.authenticate("c", secret=ADMIN_KEY)
    assert len(authenticator.sessions) == 0


def test_missing_input(authenticator):
    with pytest.raises(MissingInputError):
        authenticator.authenticate("c")


def test_missing_server_secret(clock):
    authenticator = AdminAuthenticator(None, clock=clock)
    with pytest.raises(ServerMisconfiguredError):
        authenticator.authenticate("c", secret="anything")
    assert authenticator.lockout.failure_count("c") == 0


def test_authenticate_cleans_up_expired_sessions(authenticator, clock):
    authenticator.authenticate("c", secret=ADMIN_KEY)
    clock.advance(SESSION_TTL)
    with pytest.raises(MissingInputError):
        authenticator.authenticate("c")
    assert len(authenticator.sessions) == 0


def test_require_session(authenticator):
    token = authenticator.authenticate("c", secret=ADMIN_KEY)["sessionToken"]
    authenticator.require_session(token)

    with pytest.raises(InvalidSessionError):
        authenticator.require_session(None)

    authenticator.logout(token)
    with pytest.raises(InvalidSessionError):
        authenticator.require_session(token)
