"""
CHIP-8 Peripheral / Device Layer
=================================
Headless collaborators for the interpreter core:

  Framebuffer  — 64×32 monochrome bitmap, XOR pixel toggling with wrap
  Keypad       — 16-key hex keypad, held-key table + wait-for-key latch
  Buzzer       — tone source that records on/off state

These carry all the behaviour the engine depends on.  The pygame front
end (display.py) reads the Framebuffer, feeds the Keypad, and replaces
the Buzzer with an audible tone.
"""

from __future__ import annotations
import threading
from typing import Callable, Optional

import numpy as np

from chip8 import SCREEN_W, SCREEN_H

NUM_KEYS = 16


# ---------------------------------------------------------------------------
#  Device base class
# ---------------------------------------------------------------------------

class Device:
    """Abstract peripheral."""

    def __init__(self, name: str):
        self.name = name

    def reset(self):
        """Return the device to its power-on state."""
        pass


# ---------------------------------------------------------------------------
#  Framebuffer
# ---------------------------------------------------------------------------

class Framebuffer(Device):
    """64×32 monochrome bitmap.

    ``pixels`` is the live buffer the engine draws into.  ``render()``
    publishes a copy as ``frame`` so a reader on another thread always
    sees a complete frame.
    """

    def __init__(self, width: int = SCREEN_W, height: int = SCREEN_H):
        super().__init__("Framebuffer")
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width), dtype=np.uint8)
        self.frame = self.pixels.copy()
        self.frame_count: int = 0
        self._lock = threading.Lock()

    def toggle_pixel(self, x: int, y: int) -> bool:
        """XOR one pixel.  Coordinates wrap modulo the screen size.
        Returns True if the pixel went from lit to unlit."""
        x %= self.width
        y %= self.height
        self.pixels[y, x] ^= 1
        return not self.pixels[y, x]

    def clear(self):
        self.pixels.fill(0)

    def render(self):
        with self._lock:
            self.frame = self.pixels.copy()
            self.frame_count += 1

    def latest_frame(self) -> np.ndarray:
        with self._lock:
            return self.frame

    def reset(self):
        self.clear()
        with self._lock:
            self.frame = self.pixels.copy()
            self.frame_count = 0

    def lit_count(self) -> int:
        return int(self.pixels.sum())

    def to_text(self, on: str = "#", off: str = ".") -> str:
        """Render the live buffer as text, one line per row."""
        return "\n".join(
            "".join(on if px else off for px in row) for row in self.pixels)


# ---------------------------------------------------------------------------
#  Keypad
# ---------------------------------------------------------------------------
# Logical key layout:
#   1 2 3 C
#   4 5 6 D
#   7 8 9 E
#   A 0 B F

class Keypad(Device):
    """Hex keypad with a one-shot wait-for-key latch.

    ``wait_for_key(reg)`` records which register the next key press goes
    to.  The next ``press()`` hands (reg, key) to ``on_key`` exactly once
    and clears the latch.  ``lock`` guards the latch, the held table and
    the delivery; the engine holds it across each cycle batch.
    """

    def __init__(self):
        super().__init__("Keypad")
        self.held: list[bool] = [False] * NUM_KEYS
        self.pending_register: Optional[int] = None
        self.lock = threading.RLock()

        # Callbacks
        self.on_key: Optional[Callable[[int, int], None]] = None  # (reg, key)

    def is_held(self, key: int) -> bool:
        """Keys outside 0..15 are never held."""
        return 0 <= key < NUM_KEYS and self.held[key]

    def wait_for_key(self, register: int):
        with self.lock:
            self.pending_register = register & 0xF

    @property
    def waiting(self) -> bool:
        return self.pending_register is not None

    def press(self, key: int):
        """A logical key went down.  Keys outside 0..15 are ignored."""
        if not 0 <= key < NUM_KEYS:
            return
        with self.lock:
            self.held[key] = True
            reg = self.pending_register
            if reg is not None:
                self.pending_register = None
                if self.on_key:
                    self.on_key(reg, key)

    def release(self, key: int):
        if not 0 <= key < NUM_KEYS:
            return
        with self.lock:
            self.held[key] = False

    def reset(self):
        with self.lock:
            self.held = [False] * NUM_KEYS
            self.pending_register = None


# ---------------------------------------------------------------------------
#  Buzzer
# ---------------------------------------------------------------------------

class Buzzer(Device):
    """Silent tone source — tracks whether the tone is on."""

    def __init__(self):
        super().__init__("Buzzer")
        self.active: bool = False
        self.frequency: int = 0
        self.starts: int = 0     # off → on transitions

    def start(self, frequency: int):
        if not self.active:
            self.starts += 1
        self.active = True
        self.frequency = frequency

    def stop(self):
        self.active = False

    def reset(self):
        self.active = False
        self.frequency = 0
        self.starts = 0
