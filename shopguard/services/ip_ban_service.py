import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from shopguard.core.sliding_window import Clock, now_ms, purge_expired
from shopguard.models.banned_ip import BannedIP

logger = logging.getLogger("shopguard.security")

MINUTE_MS = 60 * 1000
YEAR_MS = 365 * 24 * 60 * MINUTE_MS


@dataclass(frozen=True)
class BanPolicy:
    max_attempts: int = 1
    attempt_window_ms: int = 10 * MINUTE_MS
    ban_duration_ms: int = YEAR_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.attempt_window_ms <= 0 or self.ban_duration_ms <= 0:
            raise ValueError("attempt window and ban duration must be positive")


DEFAULT_BAN_POLICY = BanPolicy()


@dataclass(frozen=True)
class BanStatus:
    banned: bool
    banned_until: int | None = None


@dataclass(frozen=True)
class BanEntry:
    identity: str
    banned_until: int
    attempts: int


@dataclass(frozen=True)
class AttemptResult:
    should_ban: bool
    attempts_remaining: int
    banned_until: int | None = None


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


class BanStore(Protocol):
    def is_banned(self, identity: str) -> BanStatus:
        ...

    def ban(self, identity: str, banned_until: int, attempts: int) -> None:
        ...

    def list_active(self) -> list[BanEntry]:
        ...

    def unban(self, identity: str) -> bool:
        ...


class InMemoryBanStore:
    """Process-local ban set, usable without any database access."""

    def __init__(self, *, clock: Clock = now_ms):
        self.clock = clock
        self._bans: dict[str, BanEntry] = {}
        self._lock = Lock()

    def is_banned(self, identity: str) -> BanStatus:
        now = self.clock()
        with self._lock:
            entry = self._bans.get(identity)
            if entry is None:
                return BanStatus(banned=False)
            if entry.banned_until <= now:
                del self._bans[identity]
                return BanStatus(banned=False)
            return BanStatus(banned=True, banned_until=entry.banned_until)

    def ban(self, identity: str, banned_until: int, attempts: int) -> None:
        with self._lock:
            self._bans[identity] = BanEntry(
                identity=identity, banned_until=banned_until, attempts=attempts
            )

    def list_active(self) -> list[BanEntry]:
        # Filters without deleting; only point lookups evict expired bans.
        now = self.clock()
        with self._lock:
            return [entry for entry in self._bans.values() if entry.banned_until > now]

    def unban(self, identity: str) -> bool:
        with self._lock:
            return self._bans.pop(identity, None) is not None


class SqlBanStore:
    """Durable ban set backed by the ``banned_ips`` table."""

    def __init__(self, session_factory: sessionmaker, *, clock: Clock = now_ms):
        self.session_factory = session_factory
        self.clock = clock

    def is_banned(self, identity: str) -> BanStatus:
        now = self.clock()
        db: Session = self.session_factory()
        try:
            row = db.execute(select(BannedIP).where(BannedIP.ip == identity)).scalar_one_or_none()
            if row is None:
                return BanStatus(banned=False)
            if row.banned_until <= now:
                db.delete(row)
                db.commit()
                return BanStatus(banned=False)
            return BanStatus(banned=True, banned_until=row.banned_until)
        finally:
            db.close()

    def ban(self, identity: str, banned_until: int, attempts: int) -> None:
        db: Session = self.session_factory()
        try:
            self._upsert(db, identity, banned_until, attempts)
            try:
                db.commit()
            except IntegrityError:
                # Another writer inserted this identity after our lookup.
                db.rollback()
                self._upsert(db, identity, banned_until, attempts)
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _upsert(db: Session, identity: str, banned_until: int, attempts: int) -> None:
        row = db.execute(select(BannedIP).where(BannedIP.ip == identity)).scalar_one_or_none()
        if row is None:
            db.add(BannedIP(ip=identity, banned_until=banned_until, attempts=attempts))
        else:
            row.banned_until = banned_until
            row.attempts = attempts

    def list_active(self) -> list[BanEntry]:
        now = self.clock()
        db: Session = self.session_factory()
        try:
            rows = db.execute(
                select(BannedIP)
                .where(BannedIP.banned_until > now)
                .order_by(BannedIP.banned_until.desc(), BannedIP.ip.asc())
            ).scalars().all()
            return [
                BanEntry(identity=row.ip, banned_until=row.banned_until, attempts=row.attempts)
                for row in rows
            ]
        finally:
            db.close()

    def unban(self, identity: str) -> bool:
        db: Session = self.session_factory()
        try:
            result = db.execute(delete(BannedIP).where(BannedIP.ip == identity))
            db.commit()
            return (result.rowcount or 0) > 0
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


@dataclass
class _AttemptRecord:
    count: int
    window_start: int


class AttemptTracker:
    """Sliding-window counter of unauthorized admin attempts per identity.

    Reaching ``policy.max_attempts`` inside one window promotes the identity into
    ``ban_store`` and drops the attempt record. With the default policy
    (``max_attempts=1``) the first attempt already bans.
    """

    def __init__(self, ban_store: BanStore, *, policy: BanPolicy = DEFAULT_BAN_POLICY, clock: Clock = now_ms):
        self.ban_store = ban_store
        self.policy = policy
        self.clock = clock
        self._records: dict[str, _AttemptRecord] = {}
        self._lock = Lock()

    def record_attempt(self, identity: str) -> AttemptResult:
        now = self.clock()
        window = self.policy.attempt_window_ms
        with self._lock:
            cutoff = now - window
            purge_expired(self._records, lambda record: record.window_start < cutoff)

            record = self._records.get(identity)
            if record is None or record.window_start + window < now:
                record = _AttemptRecord(count=1, window_start=now)
                self._records[identity] = record
            else:
                record.count += 1
            count = record.count

            if count < self.policy.max_attempts:
                remaining = self.policy.max_attempts - count
                logger.info(
                    json.dumps(
                        {
                            "event": "admin_attempt_recorded",
                            "identity": identity,
                            "count": count,
                            "attempts_remaining": remaining,
                        }
                    )
                )
                return AttemptResult(should_ban=False, attempts_remaining=remaining)

            del self._records[identity]

        banned_until = now + self.policy.ban_duration_ms
        self.ban_store.ban(identity, banned_until, count)
        logger.warning(
            json.dumps(
                {
                    "event": "ip_banned",
                    "identity": identity,
                    "attempts": count,
                    "banned_until": banned_until,
                    "banned_until_iso": _iso(banned_until),
                }
            )
        )
        return AttemptResult(should_ban=True, attempts_remaining=0, banned_until=banned_until)

    def forget(self, identity: str) -> bool:
        with self._lock:
            return self._records.pop(identity, None) is not None

    def tracked_count(self, identity: str) -> int:
        with self._lock:
            record = self._records.get(identity)
            return record.count if record else 0


class BanRealm:
    """A ban store together with the attempt tracker that feeds it.

    The application runs two realms: an in-memory one consulted by the admin
    access gate and a database one behind the admin API. Bans written to one
    realm are invisible to the other unless both share a store.
    """

    def __init__(self, name: str, store: BanStore, tracker: AttemptTracker):
        self.name = name
        self.store = store
        self.tracker = tracker

    @classmethod
    def build(cls, name: str, store: BanStore, *, policy: BanPolicy = DEFAULT_BAN_POLICY, clock: Clock = now_ms) -> "BanRealm":
        return cls(name, store, AttemptTracker(store, policy=policy, clock=clock))

    @property
    def policy(self) -> BanPolicy:
        return self.tracker.policy

    def check(self, identity: str) -> BanStatus:
        return self.store.is_banned(identity)

    def record_attempt(self, identity: str) -> AttemptResult:
        return self.tracker.record_attempt(identity)

    def list_active(self) -> list[BanEntry]:
        return self.store.list_active()

    def unban(self, identity: str) -> bool:
        existed = self.store.unban(identity)
        self.tracker.forget(identity)
        logger.info(
            json.dumps(
                {
                    "event": "ip_unbanned",
                    "realm": self.name,
                    "identity": identity,
                    "existed": existed,
                }
            )
        )
        return existed
