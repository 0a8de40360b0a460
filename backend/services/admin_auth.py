"""Admin portal authentication: brute-force lockout plus session issuance.

Admins authenticate with one shared secret (ADMIN_KEY). After
MAX_FAILED_ATTEMPTS consecutive failures a client is locked out for
LOCKOUT_DURATION. A successful login clears the failures and mints an opaque
session token valid for SESSION_TTL.

All state is process memory owned by explicit store objects. Like the cache,
each uvicorn worker has its own sessions and lockout records, so this is a
single-instance design.

Clients are identified by forwarded-address headers, which anyone can forge
unless the service sits behind a proxy that overwrites X-Forwarded-For.
"""

import hashlib
import hmac
import logging
import secrets
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Mapping

from errors import (
    InvalidCredentialsError,
    InvalidSessionError,
    LockedOutError,
    MissingInputError,
    ServerMisconfiguredError,
)
from services.clock import Clock, system_clock

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = 15 * 60  # seconds
SESSION_TTL = 24 * 60 * 60  # seconds
MAX_LOCKOUT_RECORDS = 10_000

UNKNOWN_CLIENT = "unknown"


def validate_secret(candidate: str, expected: str) -> bool:
    """Constant-time secret comparison.

    On a length mismatch the candidate is compared against itself so the
    same primitive runs on every path, then False is returned.
    """
    candidate_bytes = candidate.encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(candidate_bytes) != len(expected_bytes):
        hmac.compare_digest(candidate_bytes, candidate_bytes)
        return False
    return hmac.compare_digest(candidate_bytes, expected_bytes)


def hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def client_id_from_headers(headers: Mapping[str, str]) -> str:
    """Best-effort client address from proxy headers, first match wins."""
    for header in ("x-forwarded-for", "x-vercel-forwarded-for"):
        value = headers.get(header)
        if value:
            first = value.split(",")[0].strip()
            if first:
                return first
    for header in ("cf-connecting-ip", "x-real-ip"):
        value = headers.get(header)
        if value and value.strip():
            return value.strip()
    return UNKNOWN_CLIENT


@dataclass
class LockoutRecord:
    failure_count: int = 0
    locked_until: float | None = None


class LockoutTracker:
    """Failed-attempt counter per client id.

    Records below the threshold never expire on their own, so the map is
    capped at ``max_records``. When full, the oldest record that is not
    locked out is evicted first.
    """

    def __init__(
        self,
        clock: Clock = system_clock,
        max_attempts: int = MAX_FAILED_ATTEMPTS,
        lockout_duration: float = LOCKOUT_DURATION,
        max_records: int = MAX_LOCKOUT_RECORDS,
    ):
        self._clock = clock
        self._max_attempts = max_attempts
        self._lockout_duration = lockout_duration
        self._max_records = max_records
        self._lock = threading.Lock()
        # Insertion order is first-failure order, used for eviction
        self._records: OrderedDict[str, LockoutRecord] = OrderedDict()

    def _evict_one(self) -> None:
        for client_id, record in self._records.items():
            if record.locked_until is None:
                del self._records[client_id]
                return
        self._records.popitem(last=False)

    def is_locked_out(self, client_id: str) -> bool:
        with self._lock:
            record = self._records.get(client_id)
            if record is None:
                return False
            if record.locked_until is not None and self._clock() >= record.locked_until:
                del self._records[client_id]
                return False
            return record.failure_count >= self._max_attempts

    def record_failed_attempt(self, client_id: str) -> None:
        with self._lock:
            now = self._clock()
            record = self._records.get(client_id)
            if record is None or (record.locked_until is not None and now >= record.locked_until):
                self._records.pop(client_id, None)
                while len(self._records) >= self._max_records:
                    self._evict_one()
                record = self._records[client_id] = LockoutRecord()
            record.failure_count += 1
            # The window is fixed by the triggering failure; later failures do not extend it.
            if record.failure_count >= self._max_attempts and record.locked_until is None:
                record.locked_until = now + self._lockout_duration
                logger.warning(
                    "Client %s locked out after %d failed attempts",
                    client_id,
                    record.failure_count,
                )

    def clear_failed_attempts(self, client_id: str) -> None:
        with self._lock:
            self._records.pop(client_id, None)

    def failure_count(self, client_id: str) -> int:
        with self._lock:
            record = self._records.get(client_id)
            return record.failure_count if record else 0

    def locked_until(self, client_id: str) -> float | None:
        with self._lock:
            record = self._records.get(client_id)
            return record.locked_until if record else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@dataclass(frozen=True)
class Session:
    token: str
    created_at: float
    secret_hash: str


class SessionStore:
    def __init__(self, clock: Clock = system_clock, ttl_seconds: float = SESSION_TTL):
        self._clock = clock
        self._ttl = ttl_seconds
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def issue(self, secret_hash: str) -> str:
        token = secrets.token_urlsafe(16)
        with self._lock:
            self._sessions[token] = Session(token=token, created_at=self._clock(), secret_hash=secret_hash)
        return token

    def validate(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.get(token)
            return session is not None and self._clock() - session.created_at < self._ttl

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def cleanup(self) -> int:
        """Remove expired sessions. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [t for t, s in self._sessions.items() if now - s.created_at >= self._ttl]
            for token in expired:
                del self._sessions[token]
        if expired:
            logger.debug("Removed %d expired admin sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class AdminAuthenticator:
    """Composes lockout, secret check and sessions into the login flow."""

    def __init__(
        self,
        expected_secret: str | None,
        lockout: LockoutTracker | None = None,
        sessions: SessionStore | None = None,
        clock: Clock = system_clock,
    ):
        self._expected_secret = expected_secret
        self.lockout = lockout if lockout is not None else LockoutTracker(clock=clock)
        self.sessions = sessions if sessions is not None else SessionStore(clock=clock)

    def authenticate(
        self,
        client_id: str,
        session_token: str | None = None,
        secret: str | None = None,
    ) -> dict:
        """Run the admin login flow and return the response payload.

        Raises an AuthError subclass on every failure path.
        """
        self.sessions.cleanup()

        if self.lockout.is_locked_out(client_id):
            raise LockedOutError()

        if session_token:
            # A valid session already proved the secret once, so lockout counters are untouched.
            if self.sessions.validate(session_token):
                return {"valid": True}
            raise InvalidSessionError()

        if secret:
            if not self._expected_secret:
                raise ServerMisconfiguredError("ADMIN_KEY environment variable is not configured")

            if validate_secret(secret, self._expected_secret):
                self.lockout.clear_failed_attempts(client_id)
                token = self.sessions.issue(hash_secret(self._expected_secret))
                logger.info("Admin session issued for client %s", client_id)
                return {
                    "success": True,
                    "sessionToken": token,
                    "expiresInMillis": int(self.sessions.ttl_seconds * 1000),
                }

            self.lockout.record_failed_attempt(client_id)
            logger.info("Failed admin login from client %s", client_id)
            raise InvalidCredentialsError()

        raise MissingInputError()

    def require_session(self, session_token: str | None) -> None:
        if not session_token or not self.sessions.validate(session_token):
            raise InvalidSessionError()

    def logout(self, session_token: str | None) -> None:
        if session_token:
            self.sessions.revoke(session_token)
