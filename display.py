"""
CHIP-8 pygame Front End
========================
Rasterizes the Framebuffer in a pygame window, translates host keys to
the 16 logical CHIP-8 keys, and plays the sound-timer tone.  The window
runs in a background thread so the driver loop owns the main thread.

Usage (programmatic):
    from display import Chip8Window, PygameTone
    sys_emu = Chip8System(tone=PygameTone())
    win = Chip8Window(sys_emu)
    win.start()                       # launches background thread
    sys_emu.run_realtime(stop_event=win.closed)
    win.stop()

Usage (CLI):
    chip8 roms/BLINKY --scale 10
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Optional

import numpy as np

if TYPE_CHECKING:
    from system import Chip8System

DEFAULT_SCALE = 10

# Host key name (pygame.key.name) → logical key.
#   1 2 3 4        1 2 3 C
#   Q W E R   →    4 5 6 D
#   A S D F        7 8 9 E
#   Z X C V        A 0 B F
KEYMAP = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}

COLOR_OFF = (0, 0, 0)
COLOR_ON = (255, 255, 255)


def frame_to_rgb(frame: np.ndarray, on=COLOR_ON, off=COLOR_OFF) -> np.ndarray:
    """(H, W) 0/1 bitmap → (W, H, 3) uint8 array for pygame.surfarray."""
    lut = np.array([off, on], dtype=np.uint8)
    return lut[frame.T & 1]


def square_wave(frequency: int, sample_rate: int, channels: int = 1,
                amplitude: int = 0x3FFF) -> np.ndarray:
    """One period of a signed 16-bit square wave, looped by the mixer."""
    period = max(2, int(round(sample_rate / frequency)))
    samples = np.where(np.arange(period) < period // 2,
                       amplitude, -amplitude).astype(np.int16)
    if channels > 1:
        samples = np.repeat(samples[:, None], channels, axis=1)
    return samples


class PygameTone:
    """Tone source backed by pygame.mixer.  start()/stop() are idempotent."""

    def __init__(self, volume: float = 0.1, sample_rate: int = 44100):
        self.volume = volume
        self.sample_rate = sample_rate
        self.active: bool = False
        self.enabled: bool = True
        self._sound = None
        self._frequency: Optional[int] = None

    def _make_sound(self, frequency: int):
        import pygame

        if not pygame.mixer.get_init():
            pygame.mixer.init(self.sample_rate, -16, 1, 1024)
        rate, _fmt, channels = pygame.mixer.get_init()
        sound = pygame.sndarray.make_sound(
            square_wave(frequency, rate, channels))
        sound.set_volume(self.volume)
        return sound

    def start(self, frequency: int):
        if self.active or not self.enabled:
            return
        if self._sound is None or frequency != self._frequency:
            import pygame
            try:
                self._sound = self._make_sound(frequency)
            except pygame.error as e:
                print(f"[tone] audio unavailable: {e}", file=sys.stderr)
                self.enabled = False
                return
            self._frequency = frequency
        self._sound.play(loops=-1)
        self.active = True

    def stop(self):
        if not self.active:
            return
        self._sound.stop()
        self.active = False


class Chip8Window:
    """Background-threaded pygame window for a Chip8System."""

    def __init__(self, sys_emu: "Chip8System", scale: int = DEFAULT_SCALE,
                 title: str = "CHIP-8", fps: int = 60):
        self.sys = sys_emu
        self.scale = max(1, scale)
        self.title = title
        self.fps = fps
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self.closed = threading.Event()   # set when the user closes the window

    # -- public API -------------------------------------------------------

    def start(self):
        """Start the window thread.  Returns once the window is open."""
        self.closed.clear()
        self._started.clear()
        self._thread = threading.Thread(target=self._run, daemon=True,
                                        name="chip8-display")
        self._thread.start()
        self._started.wait(timeout=5.0)

    def stop(self):
        """Signal the window thread to shut down and wait for it."""
        self.closed.set()
        if self._thread is not None:
            self._thread.join(timeout=3.0)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -- internals --------------------------------------------------------

    def handle_key(self, key_name: str, down: bool) -> bool:
        """Forward a host key to the keypad.  Returns True if it was mapped."""
        key = KEYMAP.get(key_name.lower())
        if key is None:
            return False
        if down:
            self.sys.press_key(key)
        else:
            self.sys.release_key(key)
        return True

    def _run(self):
        """Main window loop (runs in background thread)."""
        import pygame

        fb = self.sys.fb
        pygame.init()
        pygame.display.set_caption(self.title)
        screen = pygame.display.set_mode(
            (fb.width * self.scale, fb.height * self.scale))
        surface = pygame.Surface((fb.width, fb.height))
        clock = pygame.time.Clock()

        self._started.set()

        try:
            while not self.closed.is_set():
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self.closed.set()
                    elif event.type == pygame.KEYDOWN:
                        if event.key == pygame.K_ESCAPE:
                            self.closed.set()
                        else:
                            self.handle_key(pygame.key.name(event.key), True)
                    elif event.type == pygame.KEYUP:
                        self.handle_key(pygame.key.name(event.key), False)

                pygame.surfarray.blit_array(
                    surface, frame_to_rgb(fb.latest_frame()))
                screen.blit(pygame.transform.scale(surface, screen.get_size()),
                            (0, 0))
                pygame.display.flip()
                clock.tick(self.fps)
        except pygame.error as e:
            print(f"\n[display] error: {e}", file=sys.stderr)
            self.closed.set()
        finally:
            pygame.quit()
