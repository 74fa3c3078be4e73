"""
Session lifecycle and the fixed-rate update loop

상태 머신:
- UNINITIALIZED -> RUNNING          (start)
- RUNNING -> RESETTING -> RUNNING   (license fault)
- RUNNING -> TERMINATED             (shutdown or fatal fault)
"""

from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple

from .engine import (
    NUITRACK_CONFIG,
    TICK_ORDER,
    EngineEvent,
    EngineFatalError,
    FaultKind,
    Subsystem,
    TrackingEngine,
)
from .geometry import ProjectionModel
from .presence import PresenceTracker


class NuitrackSession:
    """
    Engine handle + subsystem handles + projection model + roster.

    open() either leaves everything live or raises with nothing held;
    close() releases the engine and clears the roster.
    """

    def __init__(self,
                 engine_factory: Callable[[], TrackingEngine],
                 presence: PresenceTracker,
                 handlers: Dict[EngineEvent, Callable],
                 config: Iterable[Tuple[str, str]] = NUITRACK_CONFIG):
        self._engine_factory = engine_factory
        self._presence = presence
        self._handlers = dict(handlers)
        self._config = tuple(config)

        self._engine: Optional[TrackingEngine] = None
        self.projection: Optional[ProjectionModel] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def presence(self) -> PresenceTracker:
        return self._presence

    def open(self):
        if self._engine is not None:
            raise RuntimeError("session already open")

        engine = self._engine_factory()
        try:
            projection = self._bring_up(engine)
        except EngineFatalError:
            engine.release()
            raise
        except Exception as e:
            engine.release()
            raise EngineFatalError(f"Nuitrack open failed: {type(e).__name__}: {e}") from e

        self._engine = engine
        self.projection = projection

    def _bring_up(self, engine: TrackingEngine) -> ProjectionModel:
        self._check(engine, engine.init(), "init")

        for key, value in self._config:
            self._check(engine, engine.set_config_value(key, value), f"config {key}")

        for subsystem in TICK_ORDER:
            self._check(engine, engine.create(subsystem), f"create {subsystem.value}")

        for event, callback in self._handlers.items():
            engine.connect(event, callback)
        engine.connect(EngineEvent.USER_APPEARED, self._presence.on_appear)
        engine.connect(EngineEvent.USER_LOST, self._presence.on_disappear)

        self._check(engine, engine.run(), "run")

        projection = engine.projection_model()
        if projection is None:
            raise EngineFatalError("engine did not report a depth projection model")
        return projection

    def advance(self, subsystem: Subsystem) -> FaultKind:
        if self._engine is None:
            raise RuntimeError("session is not open")
        return self._engine.advance(subsystem)

    def last_error(self) -> str:
        return self._engine.last_error() if self._engine is not None else ""

    def close(self):
        engine, self._engine = self._engine, None
        self.projection = None
        self._presence.reset()
        if engine is not None:
            engine.release()

    @staticmethod
    def _check(engine: TrackingEngine, fault: FaultKind, stage: str):
        if fault is FaultKind.NONE:
            return
        detail = f"Nuitrack {stage} failed ({fault.value}): {engine.last_error()}"
        # no reset path during start-up, any fault here is fatal
        raise EngineFatalError(detail, fault)


class LoopState(Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    RESETTING = "resetting"
    TERMINATED = "terminated"


class UpdateLoop:
    """
    Fixed-period driver. The only place that decides reset vs abort.

    create_timer(period, callback) -> handle with cancel()
    destroy_timer(handle)
    """

    def __init__(self, session: NuitrackSession,
                 create_timer: Callable,
                 destroy_timer: Callable,
                 period: float,
                 logger):
        self._session = session
        self._create_timer = create_timer
        self._destroy_timer = destroy_timer
        self._period = period
        self._logger = logger

        self._timer = None
        self.state = LoopState.UNINITIALIZED
        self.reset_count = 0

    @property
    def timer(self):
        return self._timer

    @property
    def session(self) -> NuitrackSession:
        return self._session

    def start(self):
        if self.state is not LoopState.UNINITIALIZED:
            raise RuntimeError(f"cannot start from state {self.state.value}")

        try:
            self._session.open()
        except EngineFatalError:
            self.state = LoopState.TERMINATED
            raise

        self._arm()
        self.state = LoopState.RUNNING
        self._logger.info("Initialized nuitrack session")

    def tick(self):
        if self.state is not LoopState.RUNNING:
            return

        for subsystem in TICK_ORDER:
            try:
                fault = self._session.advance(subsystem)
                detail = self._session.last_error() if fault is not FaultKind.NONE else ""
            except Exception as e:
                # a handler blew up inside the engine callback
                fault = FaultKind.FATAL
                detail = f"{type(e).__name__}: {e}"
                cause = e
            else:
                cause = None

            if fault is FaultKind.LICENSE:
                self._logger.warning(f"Resetting because license was not acquired ({subsystem.value}): {detail}")
                self.reset()
                return

            if fault is FaultKind.FATAL:
                self._logger.error(f"Nuitrack update failed ({subsystem.value}): {detail}")
                self.shutdown()
                raise EngineFatalError(f"update {subsystem.value} failed: {detail}") from cause

    def reset(self):
        """Tear everything down and bring it back up. No backoff, no retry cap."""
        self.state = LoopState.RESETTING
        self._disarm()
        self._session.close()

        try:
            self._session.open()
        except EngineFatalError:
            self.state = LoopState.TERMINATED
            raise

        self._arm()
        self.state = LoopState.RUNNING
        self.reset_count += 1
        self._logger.info(f"Reset nuitrack session (reset #{self.reset_count})")

    def shutdown(self):
        # timer first so no tick can run against a released engine
        self._disarm()
        self._session.close()
        self.state = LoopState.TERMINATED

    def _arm(self):
        self._timer = self._create_timer(self._period, self.tick)

    def _disarm(self):
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            self._destroy_timer(timer)
