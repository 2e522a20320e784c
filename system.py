"""
CHIP-8 System
==============
Wires together:
  - one MachineState (chip8.py), created and owned here
  - the Chip8 execution engine bound to it
  - the Framebuffer, Keypad and a tone source (devices.py)

and provides the driver loop that calls ``run_cycles`` once per frame.
There is no module-level machine: every system is an explicit object.
"""

from __future__ import annotations
import random
import threading
import time
from typing import Optional

from chip8 import (
    Chip8, MachineState, ToneSource, PROGRAM_BASE, MEM_SIZE,
    DEFAULT_CYCLES_PER_FRAME, DEFAULT_TONE_HZ,
)
from devices import Framebuffer, Keypad, Buzzer

DEFAULT_FPS = 60


class Chip8System:
    """A complete CHIP-8 machine: state, engine and devices."""

    def __init__(self, cycles_per_frame: int = DEFAULT_CYCLES_PER_FRAME,
                 seed: Optional[int] = None,
                 tone: Optional[ToneSource] = None,
                 tone_frequency: int = DEFAULT_TONE_HZ,
                 display: Optional[Framebuffer] = None,
                 keypad: Optional[Keypad] = None):
        self.cycles_per_frame = cycles_per_frame
        self.state = MachineState()
        self.fb = display or Framebuffer()
        self.keypad = keypad or Keypad()
        self.tone = tone or Buzzer()
        self.cpu = Chip8(self.state, self.fb, self.keypad, self.tone,
                         rng=random.Random(seed),
                         tone_frequency=tone_frequency)
        self.rom: bytes = b""
        self.frames: int = 0

    # -- Loading --

    def load_rom(self, data: bytes | bytearray):
        """Copy a program image to 0x200.  Images that run past the end of
        memory are rejected here, not in the core."""
        if PROGRAM_BASE + len(data) > MEM_SIZE:
            raise ValueError(f"Program too large: {len(data)} bytes "
                             f"(max {MEM_SIZE - PROGRAM_BASE})")
        self.rom = bytes(data)
        self.state.load_program(self.rom)

    def load_rom_file(self, path: str) -> int:
        with open(path, "rb") as f:
            data = f.read()
        self.load_rom(data)
        return len(data)

    def reset(self):
        """Power-cycle the machine and reload the current program."""
        self.keypad.reset()
        self.cpu.reset()
        self.tone.stop()
        self.fb.reset()
        self.frames = 0
        if self.rom:
            self.state.load_program(self.rom)

    # -- Driver --

    def run_frame(self):
        """One driver tick: ``cycles_per_frame`` instructions + timers."""
        self.cpu.run_cycles(self.cycles_per_frame)
        self.frames += 1

    def run_frames(self, count: int) -> int:
        """Run *count* frames back to back.  Returns frames run."""
        for _ in range(count):
            self.run_frame()
        return count

    def run_realtime(self, fps: int = DEFAULT_FPS,
                     stop_event: Optional[threading.Event] = None,
                     max_frames: Optional[int] = None) -> int:
        """Run frames at *fps* until *stop_event* is set or *max_frames* have
        run.  Engine faults propagate.  Returns frames run."""
        interval = 1.0 / fps
        ran = 0
        next_t = time.monotonic()
        while stop_event is None or not stop_event.is_set():
            if max_frames is not None and ran >= max_frames:
                break
            self.run_frame()
            ran += 1
            next_t += interval
            delay = next_t - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            else:
                next_t = time.monotonic()   # fell behind: don't try to catch up
        return ran

    # -- Input --

    def press_key(self, key: int):
        self.keypad.press(key)

    def release_key(self, key: int):
        self.keypad.release(key)

    # -- Status --

    @property
    def halted(self) -> bool:
        return self.cpu.halted

    @property
    def paused(self) -> bool:
        return self.state.paused

    def dump_state(self) -> str:
        lines = [f"CHIP-8 system  frames={self.frames}  "
                 f"speed={self.cycles_per_frame}/frame  rom={len(self.rom)} bytes"]
        lines.append(self.cpu.dump_regs())
        if self.keypad.waiting:
            lines.append(f"  waiting for key -> V{self.keypad.pending_register:X}")
        held = [f"{k:X}" for k in range(16) if self.keypad.held[k]]
        lines.append(f"  keys held: {' '.join(held) or '-'}")
        lines.append(f"  tone: {'on' if getattr(self.tone, 'active', False) else 'off'}")
        if self.cpu.fault is not None:
            lines.append(f"  fault: {self.cpu.fault}")
        return "\n".join(lines)
