"""Pygame shell for the device diagnostics suite.

Keys: Enter start, P pause/resume, S skip, R retry, C manual continue,
F finish the current touch stage early, N simulated proximity "near" reading,
Esc quit.  Touches and the left mouse button feed the active touch engine.

Deterministic timing, scoring and suite state live in the core modules; this
file only draws snapshots and forwards input.

Without an injected transport, ``run`` wires the in-process ``LoopbackBus``:
reports and confirmations stay inside this process and ``DIAG_BUS_URL`` is
only recorded as the bus address.  Talking to a real robot bridge means
passing a ``Transport`` implementation for it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import pygame

from .clock import RealClock, SystemWallClock
from .config import DiagnosticsConfig, load_config
from .confirmation import ConfirmationGateway
from .diagnostic_core import Phase, TestSnapshot
from .display_defect import DisplayDefectPayload
from .geometry import sample_ideal_shape, start_point
from .input_capture import TouchInputAdapter
from .persistence import record_suite_run
from .proximity_sensor import ProximitySensorPayload
from .report import ReportPublisher
from .results import SuiteResult, pass_fail_checks
from .runner import SuiteConfig, SuiteRunner, SuiteSnapshot, default_engine_factories
from .shape_tracing import ShapeTracingPayload
from .suite import InvalidTransition, StepStatus, SuiteState, SuiteStatus
from .touch_aggregator import TouchTestPayload
from .transport import ConnectionEvent, LoopbackBus, ReconnectSupervisor, Transport

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

_STATUS_COLOURS: dict[StepStatus, tuple[int, int, int]] = {
    StepStatus.PENDING: (120, 130, 150),
    StepStatus.ACTIVE: (90, 170, 255),
    StepStatus.COMPLETED: (90, 210, 120),
    StepStatus.ERROR: (235, 90, 90),
}


@dataclass(slots=True)
class PublishState:
    attempted: bool = False
    success: bool | None = None
    run_id: int | None = None


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def surface(self) -> pygame.Surface:
        return self._surface

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def quit(self) -> None:
        self._running = False


class SuiteScreen:
    def __init__(
        self,
        app: App,
        *,
        runner: SuiteRunner,
        transport: Transport,
        publish_state: PublishState,
    ) -> None:
        self._app = app
        self._runner = runner
        self._transport = transport
        self._publish = publish_state
        self._input = TouchInputAdapter()
        self._engine_id: int | None = None

        self._small_font = pygame.font.Font(None, 24)
        self._big_font = pygame.font.Font(None, 56)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN:
            self._handle_key(event.key)
            return
        self._input.handle_event(event, self._runner.touch_sink(), self._app.surface.get_size())

    def _handle_key(self, key: int) -> None:
        if key == pygame.K_ESCAPE:
            self._app.quit()
            return
        try:
            if key in (pygame.K_RETURN, pygame.K_KP_ENTER):
                self._runner.start()
            elif key == pygame.K_p:
                if self._runner.status is SuiteStatus.PAUSED:
                    self._runner.resume()
                else:
                    self._runner.pause()
            elif key == pygame.K_s:
                self._runner.skip()
            elif key == pygame.K_r:
                self._publish.attempted = False
                self._publish.success = None
                self._publish.run_id = None
                self._runner.retry()
            elif key == pygame.K_c:
                self._runner.manual_continue()
            elif key == pygame.K_f:
                if not self._runner.finish_stage():
                    logger.info("Nothing to finish early")
            elif key == pygame.K_n:
                self._runner.report_proximity(near=True)
        except InvalidTransition as exc:
            # A key that does not apply right now; the suite state is unchanged.
            logger.info("Ignored key %s: %s", pygame.key.name(key), exc)

    def update(self) -> None:
        self._runner.update()
        engine = self._runner.active_engine
        if id(engine) != self._engine_id:
            # Contacts held across a step change belong to the old engine.
            self._engine_id = id(engine)
            self._input.reset()

    def render(self) -> None:
        surface = self._app.surface
        snap = self._runner.snapshot()
        engine = snap.engine

        if engine is not None and isinstance(engine.payload, DisplayDefectPayload):
            surface.fill(engine.payload.rgb)
            if engine.payload.colour is not None:
                return
        else:
            surface.fill((12, 14, 22))

        self._render_header(surface, snap)
        if snap.status is SuiteStatus.TERMINAL:
            self._render_report(surface)
        elif engine is not None:
            self._render_engine(surface, engine)
        else:
            self._render_centered(surface, "Press Enter to start the diagnostic suite.")

    def _render_header(self, surface: pygame.Surface, snap: SuiteSnapshot) -> None:
        x = 20
        for step_id, status in snap.step_statuses:
            label = self._small_font.render(step_id, True, _STATUS_COLOURS[status])
            surface.blit(label, (x, 12))
            x += label.get_width() + 24

        bus = "bus: connected" if self._transport.connected else "bus: disconnected"
        text = f"{snap.status.value}  |  {bus}"
        if snap.awaiting_key is not None:
            text += f"  |  waiting for {snap.awaiting_key}_confirmed (C to continue)"
        info = self._small_font.render(text, True, (190, 195, 210))
        surface.blit(info, (20, 38))

    def _render_engine(self, surface: pygame.Surface, snap: TestSnapshot) -> None:
        title = self._app.font.render(snap.title, True, (235, 235, 245))
        surface.blit(title, (20, 70))
        for i, line in enumerate(snap.prompt.splitlines()):
            surface.blit(self._small_font.render(line, True, (200, 205, 220)), (20, 108 + i * 24))
        if snap.time_remaining_s is not None and snap.phase in (Phase.COUNTDOWN, Phase.RUNNING):
            remaining = self._big_font.render(f"{snap.time_remaining_s:0.0f}s", True, (235, 235, 245))
            surface.blit(remaining, remaining.get_rect(topright=(surface.get_width() - 20, 64)))

        p = snap.payload
        if isinstance(p, ShapeTracingPayload):
            self._render_shape(surface, p)
        elif isinstance(p, TouchTestPayload):
            lines = [
                f"Active touches: {p.active_touches}",
                f"Total touches: {p.total_touches}",
                f"Max simultaneous: {p.max_simultaneous}",
            ]
            for i, line in enumerate(lines):
                surface.blit(self._app.font.render(line, True, (220, 225, 240)), (40, 160 + i * 40))
        elif isinstance(p, ProximitySensorPayload):
            state = "ACTIVATED" if p.sensor_activated else "waiting"
            colour = (90, 210, 120) if p.sensor_activated else (200, 205, 220)
            self._render_centered(surface, f"Sensor: {state}", colour=colour)

    def _render_shape(self, surface: pygame.Surface, p: ShapeTracingPayload) -> None:
        ideal = sample_ideal_shape(p.shape, center=p.center, size=p.size)
        outline = [(pt.x, pt.y) for pt in ideal]
        pygame.draw.lines(surface, (110, 120, 160), True, outline, 3)
        start = start_point(p.shape, center=p.center, size=p.size)
        pygame.draw.circle(surface, (90, 210, 120), (int(start.x), int(start.y)), 8)
        if len(p.trace) >= 2:
            pygame.draw.lines(surface, (90, 170, 255), False, [(t.x, t.y) for t in p.trace], 3)

    def _render_report(self, surface: pygame.Surface) -> None:
        results: SuiteResult = self._runner.results
        snap = self._runner.snapshot()
        head = self._app.font.render(f"Overall score: {snap.composite_score}%", True, (235, 235, 245))
        surface.blit(head, (20, 70))
        y = 120
        for check in pass_fail_checks(results):
            colour = (90, 210, 120) if check.passed else (235, 90, 90)
            line = self._small_font.render(f"{check.name}: {'PASS' if check.passed else 'FAIL'}", True, colour)
            surface.blit(line, (40, y))
            y += 28

        if self._publish.success is True:
            status = "Report published"
        elif self._publish.success is False:
            status = "Report not published (bus disconnected)"
        else:
            status = "Publishing..."
        surface.blit(self._small_font.render(status, True, (190, 195, 210)), (20, y + 12))

    def _render_centered(
        self, surface: pygame.Surface, text: str, *, colour: tuple[int, int, int] = (200, 205, 220)
    ) -> None:
        img = self._app.font.render(text, True, colour)
        surface.blit(img, img.get_rect(center=surface.get_rect().center))


def _terminal_handler(
    *,
    publisher: ReportPublisher,
    config: DiagnosticsConfig,
    publish_state: PublishState,
) -> Callable[[SuiteState], None]:
    def on_terminal(state: SuiteState) -> None:
        if publish_state.attempted:
            return
        publish_state.attempted = True
        publish_state.success = publisher.publish(state.results)
        if config.db_path is None:
            return
        publish_state.run_id = record_suite_run(
            db_path=config.db_path,
            suite=state.results,
            hardware_id=config.hardware_id,
            app_version=APP_VERSION,
            published=bool(publish_state.success),
            step_statuses=state.statuses(),
        )
        logger.info("Stored suite run %d in %s", publish_state.run_id, config.db_path)

    return on_terminal


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    transport: Transport | None = None,
    config: DiagnosticsConfig | None = None,
) -> int:
    cfg = config if config is not None else load_config()

    real_clock = RealClock()
    supervisor: ReconnectSupervisor | None = None
    if transport is None:
        bus = LoopbackBus()
        sup = ReconnectSupervisor(bus, url=cfg.bus_url, clock=real_clock, delay_s=cfg.reconnect_delay_s)
        bus.on(ConnectionEvent.ERROR, lambda _detail: sup.request_reconnect())
        sup.connect()
        supervisor = sup
        transport = bus

    pygame.init()
    pygame.display.set_caption("Device Diagnostics")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    publish_state = PublishState()
    publisher = ReportPublisher(transport, config=cfg, wall_clock=SystemWallClock())
    gateway = ConfirmationGateway(transport, type_name=cfg.confirmation_type)
    runner = SuiteRunner(
        clock=real_clock,
        gateway=gateway,
        engine_factories=default_engine_factories(wall_clock=SystemWallClock()),
        config=SuiteConfig(confirmation_topic=cfg.confirmation_topic),
        on_step_completed=publisher.publish_test if cfg.publish_each_test else None,
        on_terminal=_terminal_handler(
            publisher=publisher,
            config=cfg,
            publish_state=publish_state,
        ),
    )

    screen = SuiteScreen(app, runner=runner, transport=transport, publish_state=publish_state)

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    app.quit()
                    continue
                screen.handle_event(event)

            if supervisor is not None:
                supervisor.update()
            screen.update()
            screen.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        runner.teardown()
        pygame.quit()

    return 0
