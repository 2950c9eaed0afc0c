"""
Session coordinator: the glue between socket events and the in-memory
proximity engine.

    updateLocation -> rate limit -> validate -> PresenceStore.upsert
                   -> detect (snapshot + ledger) -> updateUsers broadcast
                   -> encounter to both parties -> encounter persisted in background

Everything between the rate-limit check and the detector result is plain
synchronous code, so on the single event loop no other handler can observe
or mutate the store half-way through an update. The only awaits are
outbound emits and persistence calls, which run in worker threads.
"""
from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Set

from loguru import logger
from pydantic import ValidationError

from surelink.core import proximity_config as cfg
from surelink.core.errors import PersistenceFailure, RateLimitExceeded, SureLinkError
from surelink.core.logging import short_id
from surelink.realtime.tasks import PeriodicTask
from surelink.schemas.realtime import DailyStatsQuery, HistoryQuery, NearbyQuery
from surelink.services.chat_service import ChatService
from surelink.services.encounter_detector import EncounterMatch, detect
from surelink.services.encounter_ledger import EncounterLedger
from surelink.services.encounter_service import EncounterParty, EncounterService
from surelink.services.presence_store import PresenceStore, UserPresence
from surelink.services.rate_limiter import RateLimiter, RateLimitPolicy
from surelink.services.validation import (
    display_name_for,
    parse_location,
    sanitize_message,
    validate_message,
)
from surelink.utils.clock import now_ms

GENERIC_ERROR_MESSAGE = "エラーが発生しました"
INVALID_REQUEST_MESSAGE = "無効なリクエストです"
GENERAL_THROTTLE_MESSAGE = "リクエストが多すぎます。少しお待ちください。"


class Emitter(Protocol):
    """The subset of socketio.AsyncServer the coordinator talks to."""

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None, **kwargs) -> None:
        ...


class ConnectionPhase(str, Enum):
    connected = "connected"
    positioned = "positioned"


@dataclass
class ConnectionState:
    connection_id: str
    connected_at: float
    phase: ConnectionPhase = ConnectionPhase.connected
    events: int = 0


@dataclass
class ProximitySettings:
    threshold_meters: float = cfg.ENCOUNTER_THRESHOLD_METERS
    cooldown_ms: float = cfg.ENCOUNTER_COOLDOWN_MS
    stale_ms: float = cfg.PRESENCE_STALE_MS
    presence_sweep_interval_ms: float = cfg.PRESENCE_SWEEP_INTERVAL_MS
    ledger_sweep_interval_ms: float = cfg.LEDGER_SWEEP_INTERVAL_MS
    nearby_radius_meters: float = cfg.NEARBY_DEFAULT_RADIUS_METERS
    chat_history_limit: int = cfg.CHAT_HISTORY_LIMIT
    policies: Dict[str, RateLimitPolicy] = field(
        default_factory=lambda: {
            "chat": RateLimitPolicy(cfg.RATE_LIMIT_CHAT_MAX, cfg.RATE_LIMIT_CHAT_WINDOW_MS),
            "position": RateLimitPolicy(cfg.RATE_LIMIT_POSITION_MAX, cfg.RATE_LIMIT_POSITION_WINDOW_MS),
            "general": RateLimitPolicy(cfg.RATE_LIMIT_GENERAL_MAX, cfg.RATE_LIMIT_GENERAL_WINDOW_MS),
        }
    )

    @property
    def rate_window_ms(self) -> float:
        return max(p.window_ms for p in self.policies.values())


Handler = Callable[..., Awaitable[None]]


def guarded(event: str) -> Callable[[Handler], Handler]:
    """
    Handler boundary for one socket event.

    Known errors go back to the sender only; anything else is logged with
    its traceback and reported as a generic error. Events from connections
    that are not (or no longer) registered are dropped.
    """

    def decorator(fn: Handler) -> Handler:
        @functools.wraps(fn)
        async def wrapper(self: "SessionCoordinator", connection_id: str, *args, **kwargs) -> None:
            state = self._connections.get(connection_id)
            if state is None:
                logger.debug(f"Ignoring {event} from unknown connection {short_id(connection_id)}")
                return
            state.events += 1
            try:
                await fn(self, connection_id, *args, **kwargs)
            except RateLimitExceeded as e:
                logger.debug(f"Throttled {event} | id={short_id(connection_id)}")
                await self.send_error(connection_id, e.message, event)
            except SureLinkError as e:
                logger.info(f"Rejected {event} | id={short_id(connection_id)} reason={e.message}")
                await self.send_error(connection_id, e.message, event)
            except ValidationError:
                logger.info(f"Rejected {event} | id={short_id(connection_id)} reason=invalid payload")
                await self.send_error(connection_id, INVALID_REQUEST_MESSAGE, event)
            except Exception:
                logger.exception(f"Socket handler {event} failed | id={short_id(connection_id)}")
                await self.send_error(connection_id, GENERIC_ERROR_MESSAGE, event)

        return wrapper

    return decorator


class SessionCoordinator:
    def __init__(
        self,
        emitter: Emitter,
        store: Optional[PresenceStore] = None,
        ledger: Optional[EncounterLedger] = None,
        rate_limiter: Optional[RateLimiter] = None,
        chat_service: Optional[ChatService] = None,
        encounter_service: Optional[EncounterService] = None,
        settings: Optional[ProximitySettings] = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.emitter = emitter
        self.clock = clock
        self.store = store if store is not None else PresenceStore(clock)
        self.ledger = ledger if ledger is not None else EncounterLedger(clock)
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(clock)
        self.chat_service = chat_service
        self.encounter_service = encounter_service
        self.settings = settings or ProximitySettings()

        self._connections: Dict[str, ConnectionState] = {}
        self._pending: Set[asyncio.Task] = set()
        self._sweeps = [
            PeriodicTask("presence", self.settings.presence_sweep_interval_ms, self._sweep_presence),
            PeriodicTask(
                "encounter-ledger",
                self.settings.ledger_sweep_interval_ms,
                lambda: self.ledger.sweep(self.settings.cooldown_ms),
            ),
            PeriodicTask(
                "rate-limiter",
                self.settings.rate_window_ms,
                lambda: self.rate_limiter.sweep(self.settings.rate_window_ms),
            ),
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        for task in self._sweeps:
            task.start()
        logger.info("Session coordinator started")

    async def stop(self) -> None:
        for task in self._sweeps:
            await task.stop()
        await self.drain()
        logger.info("Session coordinator stopped")

    def run_sweeps(self) -> Dict[str, int]:
        """One synchronous pass of every background sweep."""
        return {
            "presence": self.store.evict_stale(self.settings.stale_ms),
            "ledger": self.ledger.sweep(self.settings.cooldown_ms),
            "rate_limiter": self.rate_limiter.sweep(self.settings.rate_window_ms),
        }

    async def _sweep_presence(self) -> None:
        if self.store.evict_stale(self.settings.stale_ms):
            await self.broadcast_users()

    # ------------------------------------------------------------------
    # Background persistence
    # ------------------------------------------------------------------

    def spawn(self, label: str, fn: Callable[..., Any], *args: Any) -> asyncio.Task:
        """Run a blocking persistence call in a worker thread, fire-and-forget."""
        task = asyncio.create_task(self._run_persistence(label, fn, *args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run_persistence(self, label: str, fn: Callable[..., Any], *args: Any) -> None:
        try:
            await asyncio.to_thread(fn, *args)
        except PersistenceFailure as e:
            logger.error(f"Persisting {label} failed: {e.message}")
        except Exception:
            logger.exception(f"Persisting {label} failed")

    async def drain(self) -> None:
        """Wait for every in-flight persistence task."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------

    @property
    def online_count(self) -> int:
        return len(self._connections)

    def users_payload(self) -> Dict[str, dict]:
        return {cid: p.to_wire() for cid, p in self.store.snapshot().items()}

    async def broadcast_users(self) -> None:
        await self.emitter.emit("updateUsers", self.users_payload())

    async def broadcast_online_count(self) -> None:
        count = self.online_count
        await self.emitter.emit("onlineCount", count)
        logger.debug(f"Online count broadcasted | count={count}")

    async def send_error(self, connection_id: str, message: str, event: Optional[str] = None) -> None:
        payload = {"message": message}
        if event:
            payload["event"] = event
        await self.emitter.emit("error", payload, to=connection_id)

    def _check_rate(self, connection_id: str, event_type: str) -> bool:
        policy = self.settings.policies[event_type]
        return self.rate_limiter.allow(connection_id, event_type, policy.max_requests, policy.window_ms)

    def _require_general_quota(self, connection_id: str) -> None:
        if not self._check_rate(connection_id, "general"):
            raise RateLimitExceeded("general", GENERAL_THROTTLE_MESSAGE)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, connection_id: str) -> None:
        # presence entry is created lazily by the first position update
        self._connections[connection_id] = ConnectionState(connection_id, connected_at=self.clock())
        logger.info(f"Client connected | id={short_id(connection_id)} total={self.online_count}")

        await self.broadcast_online_count()
        if self.chat_service is not None:
            await self.send_chat_history(connection_id)

    @guarded("chatHistory")
    async def send_chat_history(self, connection_id: str) -> None:
        history = await asyncio.to_thread(self.chat_service.get_history, self.settings.chat_history_limit)
        await self.emitter.emit("chatHistory", history, to=connection_id)
        logger.debug(f"Chat history sent | id={short_id(connection_id)} count={len(history)}")

    async def disconnect(self, connection_id: str) -> None:
        state = self._connections.pop(connection_id, None)
        if state is None:
            return

        self.rate_limiter.reset(connection_id)
        self.store.remove(connection_id)

        duration_s = round((self.clock() - state.connected_at) / 1000)
        logger.info(
            f"Client disconnected | id={short_id(connection_id)} duration={duration_s}s "
            f"events={state.events} total={self.online_count}"
        )

        await self.broadcast_users()
        await self.broadcast_online_count()

    # ------------------------------------------------------------------
    # Position updates
    # ------------------------------------------------------------------

    @guarded("updateLocation")
    async def update_location(self, connection_id: str, payload: Any) -> None:
        if not self._check_rate(connection_id, "position"):
            return

        position, nickname = parse_location(payload)
        me = self.store.upsert(connection_id, position, display_name_for(connection_id, nickname))
        self._connections[connection_id].phase = ConnectionPhase.positioned

        matches = detect(
            connection_id,
            self.store,
            self.ledger,
            self.settings.threshold_meters,
            self.settings.cooldown_ms,
        )
        users = self.users_payload()

        await self.emitter.emit("updateUsers", users)
        for match in matches:
            await self._notify_encounter(me, match)

    async def _notify_encounter(self, me: UserPresence, match: EncounterMatch) -> None:
        distance = round(match.distance_meters, 1)
        await self.emitter.emit("encounter", {"user": match.display_name, "distance": distance}, to=me.connection_id)
        await self.emitter.emit("encounter", {"user": me.display_name, "distance": distance}, to=match.connection_id)

        if self.encounter_service is not None:
            self.spawn(
                "encounter",
                self.encounter_service.save_encounter,
                EncounterParty(me.connection_id, me.display_name, me.position.latitude, me.position.longitude),
                EncounterParty(
                    match.connection_id,
                    match.display_name,
                    match.position.latitude,
                    match.position.longitude,
                ),
                match.distance_meters,
            )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    @guarded("chatMessage")
    async def chat_message(self, connection_id: str, payload: Any) -> None:
        if not self._check_rate(connection_id, "chat"):
            raise RateLimitExceeded("chat")

        clean = sanitize_message(validate_message(payload))
        await self.emitter.emit("chatMessage", clean)
        logger.info(f"Message broadcasted | user={clean['user']} id={short_id(connection_id)}")

        if self.chat_service is not None:
            self.spawn("chat message", self.chat_service.save_message, clean["user"], clean["text"])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @guarded("getNearbyUsers")
    async def nearby_users(self, connection_id: str, payload: Any = None) -> None:
        self._require_general_quota(connection_id)
        query = NearbyQuery.model_validate(
            {"radius": self.settings.nearby_radius_meters, **(payload if isinstance(payload, dict) else {})}
        )
        nearby = self.store.nearby(connection_id, query.radius)
        await self.emitter.emit(
            "nearbyUsers",
            [
                {"userId": u.connection_id, "nickname": u.display_name, "distance": u.distance_meters}
                for u in nearby
            ],
            to=connection_id,
        )

    @guarded("getEncounterHistory")
    async def encounter_history(self, connection_id: str, payload: Any = None) -> None:
        self._require_general_quota(connection_id)
        query = HistoryQuery.model_validate(payload or {})
        history = []
        if self.encounter_service is not None:
            history = await asyncio.to_thread(self.encounter_service.get_history, connection_id, query.limit)
        await self.emitter.emit("encounterHistory", history, to=connection_id)

    @guarded("getEncounterStats")
    async def encounter_stats(self, connection_id: str, payload: Any = None) -> None:
        self._require_general_quota(connection_id)
        stats = {"total": 0, "today": 0, "week": 0, "uniqueUsers": 0}
        if self.encounter_service is not None:
            stats = await asyncio.to_thread(self.encounter_service.get_stats, connection_id)
        await self.emitter.emit("encounterStats", stats, to=connection_id)

    @guarded("getHeatmapData")
    async def heatmap_data(self, connection_id: str, payload: Any = None) -> None:
        self._require_general_quota(connection_id)
        points = []
        if self.encounter_service is not None:
            points = await asyncio.to_thread(self.encounter_service.get_heatmap_data, connection_id)
        await self.emitter.emit("heatmapData", points, to=connection_id)

    @guarded("getDailyStats")
    async def daily_stats(self, connection_id: str, payload: Any = None) -> None:
        self._require_general_quota(connection_id)
        query = DailyStatsQuery.model_validate(payload or {})
        days = []
        if self.encounter_service is not None:
            days = await asyncio.to_thread(self.encounter_service.get_daily_stats, connection_id, query.days)
        await self.emitter.emit("dailyStats", days, to=connection_id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        now = self.clock()
        states = list(self._connections.values())
        avg_ms = sum(now - s.connected_at for s in states) / len(states) if states else 0
        return {
            "online": len(states),
            "socket": {
                "total": len(states),
                "averageDurationMs": round(avg_ms),
                "totalEvents": sum(s.events for s in states),
            },
            "location": {"usersWithLocation": self.store.count()},
            "encounters": {"activeCooldowns": len(self.ledger)},
        }
