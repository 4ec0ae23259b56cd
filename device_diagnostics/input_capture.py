"""pygame event translation for the touch engines.

Finger events carry coordinates normalised to 0..1; they are scaled to the
surface size before reaching the sink.  A held left mouse button acts as one
extra contact with id ``MOUSE_CONTACT_ID``.  SDL also synthesises mouse events
from touches; those are ignored so a finger is never counted twice.
"""

from __future__ import annotations

import pygame

from .diagnostic_core import TouchSink

MOUSE_CONTACT_ID = -1


class TouchInputAdapter:
    def __init__(self) -> None:
        self._fingers: set[int] = set()
        self._mouse_down = False

    @property
    def active_contacts(self) -> int:
        return len(self._fingers) + (1 if self._mouse_down else 0)

    def reset(self) -> None:
        self._fingers.clear()
        self._mouse_down = False

    def handle_event(self, event: pygame.event.Event, sink: TouchSink | None, size: tuple[int, int]) -> bool:
        """Forward ``event`` to ``sink``. Returns True if the event was a contact event."""

        et = event.type
        if et in (pygame.FINGERDOWN, pygame.FINGERMOTION, pygame.FINGERUP):
            self._handle_finger(event, sink, size)
            return True
        if et in (pygame.MOUSEBUTTONDOWN, pygame.MOUSEBUTTONUP, pygame.MOUSEMOTION):
            if getattr(event, "touch", False):
                return True
            self._handle_mouse(event, sink)
            return True
        return False

    def _handle_finger(self, event: pygame.event.Event, sink: TouchSink | None, size: tuple[int, int]) -> None:
        contact = int(event.finger_id)
        w, h = size
        x = float(event.x) * float(w)
        y = float(event.y) * float(h)

        if event.type == pygame.FINGERDOWN:
            self._fingers.add(contact)
            if sink is not None:
                sink.touch_begin(contact, x, y)
        elif event.type == pygame.FINGERMOTION:
            if contact in self._fingers and sink is not None:
                sink.touch_move(contact, x, y)
        else:
            self._fingers.discard(contact)
            if sink is not None:
                sink.touch_end(contact)

    def _handle_mouse(self, event: pygame.event.Event, sink: TouchSink | None) -> None:
        if event.type == pygame.MOUSEMOTION:
            if self._mouse_down and sink is not None:
                x, y = event.pos
                sink.touch_move(MOUSE_CONTACT_ID, float(x), float(y))
            return

        if getattr(event, "button", None) != 1:
            return
        if event.type == pygame.MOUSEBUTTONDOWN:
            self._mouse_down = True
            if sink is not None:
                x, y = event.pos
                sink.touch_begin(MOUSE_CONTACT_ID, float(x), float(y))
        else:
            self._mouse_down = False
            if sink is not None:
                sink.touch_end(MOUSE_CONTACT_ID)
