"""
CHIP-8 Interpreter Core
========================
A fetch/decode/execute engine for the base CHIP-8 instruction set:
16 × 8-bit V registers, a 16-bit I register, 4 KiB of memory, a 16-level
call stack, delay/sound timers and a 64×32 monochrome display.

The engine owns no I/O.  It talks to three collaborators through narrow
contracts (see the Protocol classes below):

  - a display surface   — toggle_pixel(x, y) -> erased?, clear(), render()
  - an input source     — is_held(key), wait_for_key(register)
  - a tone source       — start(frequency), stop()

Every instruction is two bytes, big-endian.  Dispatch is a table keyed by
(group, sub-selector) so each opcode is a small, independently testable
handler.
"""

from __future__ import annotations
import random
from typing import Callable, NamedTuple, Optional, Protocol

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE     = 4096
MEM_MASK     = MEM_SIZE - 1
NUM_REGS     = 16
STACK_DEPTH  = 16
PROGRAM_BASE = 0x200
FONT_BASE    = 0x000
GLYPH_BYTES  = 5

SCREEN_W = 64
SCREEN_H = 32

SPRITE_WIDTH = 8
FLAG = 0xF                  # VF: carry, borrow and collision output

DEFAULT_CYCLES_PER_FRAME = 10
DEFAULT_TONE_HZ = 440

# Built-in hex digit glyphs, 4×5 pixels, one byte per row.
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u8(v: int) -> int:
    """Mask to unsigned 8 bits."""
    return v & 0xFF

def u16(v: int) -> int:
    """Mask to unsigned 16 bits."""
    return v & 0xFFFF

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for engine-generated faults."""
    pass

class DecodeError(Chip8Error):
    def __init__(self, word: int, pc: int, message: str = ""):
        self.word = word
        self.pc = pc
        super().__init__(message or
                         f"Unknown instruction {word:#06x} @ {pc:#05x}")

class StackError(Chip8Error):
    def __init__(self, pc: int, message: str):
        self.pc = pc
        super().__init__(f"{message} @ {pc:#05x}")

class HaltError(Chip8Error):
    pass

# ---------------------------------------------------------------------------
#  Collaborator contracts
# ---------------------------------------------------------------------------

class DisplaySurface(Protocol):
    def toggle_pixel(self, x: int, y: int) -> bool: ...
    def clear(self) -> None: ...
    def render(self) -> None: ...


class InputSource(Protocol):
    lock: object
    pending_register: Optional[int]
    on_key: Optional[Callable[[int, int], None]]

    def is_held(self, key: int) -> bool: ...
    def wait_for_key(self, register: int) -> None: ...
    def reset(self) -> None: ...


class ToneSource(Protocol):
    def start(self, frequency: int) -> None: ...
    def stop(self) -> None: ...

# ---------------------------------------------------------------------------
#  Machine state
# ---------------------------------------------------------------------------

class MachineState:
    """Register file, memory, timers, PC, call stack and pause flag.

    Register and memory writes made through this class are truncated to
    their natural width; overflow never raises.
    """

    def __init__(self):
        self.mem = bytearray(MEM_SIZE)
        self.v = bytearray(NUM_REGS)
        self._i: int = 0
        self._pc: int = PROGRAM_BASE
        self.stack: list[int] = []
        self.delay_timer: int = 0
        self.sound_timer: int = 0
        self.paused: bool = False
        self.load_font()

    # -- Property shortcuts --

    @property
    def i(self) -> int:
        return self._i

    @i.setter
    def i(self, value: int):
        self._i = u16(value)

    @property
    def pc(self) -> int:
        return self._pc

    @pc.setter
    def pc(self, value: int):
        self._pc = u16(value)

    def set_reg(self, idx: int, value: int):
        self.v[idx & 0xF] = u8(value)

    # -- Memory access (addresses wrap at 4 KiB) --

    def read8(self, addr: int) -> int:
        return self.mem[addr & MEM_MASK]

    def write8(self, addr: int, value: int):
        self.mem[addr & MEM_MASK] = u8(value)

    def read16(self, addr: int) -> int:
        """Big-endian instruction word at *addr*."""
        return (self.read8(addr) << 8) | self.read8(addr + 1)

    # -- Loading --

    def load_font(self):
        self.mem[FONT_BASE:FONT_BASE + len(FONT)] = FONT

    def load_program(self, data: bytes | bytearray, addr: int = PROGRAM_BASE):
        """Copy a program image verbatim into memory starting at *addr*."""
        for off, b in enumerate(data):
            self.mem[(addr + off) & MEM_MASK] = b

    def reset(self):
        self.mem[:] = bytes(MEM_SIZE)
        self.v[:] = bytes(NUM_REGS)
        self._i = 0
        self._pc = PROGRAM_BASE
        self.stack.clear()
        self.delay_timer = 0
        self.sound_timer = 0
        self.paused = False
        self.load_font()

    def tick_timers(self):
        """Decrement both timers by one, floored at zero."""
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

# ---------------------------------------------------------------------------
#  Decoding
# ---------------------------------------------------------------------------

class Instruction(NamedTuple):
    word: int
    group: int   # bits 15..12
    x: int       # bits 11..8
    y: int       # bits 7..4
    n: int       # bits 3..0
    kk: int      # bits 7..0
    nnn: int     # bits 11..0


def decode(word: int) -> Instruction:
    """Split a 16-bit instruction word into its fixed fields."""
    word = u16(word)
    return Instruction(
        word=word,
        group=(word >> 12) & 0xF,
        x=(word >> 8) & 0xF,
        y=(word >> 4) & 0xF,
        n=word & 0xF,
        kk=word & 0xFF,
        nnn=word & 0xFFF,
    )


def sub_selector(ins: Instruction) -> Optional[int]:
    """Secondary dispatch key inside groups that multiplex operations."""
    g = ins.group
    if g == 0x0:
        return ins.nnn if ins.nnn in (0x0E0, 0x0EE) else None
    if g in (0x5, 0x8, 0x9):
        return ins.n
    if g in (0xE, 0xF):
        return ins.kk
    return None

# ---------------------------------------------------------------------------
#  Execution engine
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 execution engine bound to one MachineState."""

    def __init__(self, state: MachineState, display: DisplaySurface,
                 keypad: InputSource, tone: ToneSource,
                 rng: Optional[random.Random] = None,
                 tone_frequency: int = DEFAULT_TONE_HZ):
        self.state = state
        self.display = display
        self.keypad = keypad
        self.tone = tone
        self.rng = rng or random.Random()
        self.tone_frequency = tone_frequency

        self.halted: bool = False
        self.fault: Optional[Chip8Error] = None
        self.cycle_count: int = 0

        # Callbacks
        self.on_trace: Optional[Callable[[int, int], None]] = None  # (pc, word)

        self.keypad.on_key = self._deliver_key

        self._ops: dict[tuple[int, Optional[int]],
                        Callable[[Instruction], None]] = {
            (0x0, 0x0E0): self._op_cls,
            (0x0, 0x0EE): self._op_ret,
            (0x0, None):  self._op_sys,
            (0x1, None):  self._op_jp,
            (0x2, None):  self._op_call,
            (0x3, None):  self._op_se_imm,
            (0x4, None):  self._op_sne_imm,
            (0x5, 0x0):   self._op_se_reg,
            (0x6, None):  self._op_ld_imm,
            (0x7, None):  self._op_add_imm,
            (0x8, 0x0):   self._op_ld_reg,
            (0x8, 0x1):   self._op_or,
            (0x8, 0x2):   self._op_and,
            (0x8, 0x3):   self._op_xor,
            (0x8, 0x4):   self._op_add,
            (0x8, 0x5):   self._op_sub,
            (0x8, 0x6):   self._op_shr,
            (0x8, 0x7):   self._op_subn,
            (0x8, 0xE):   self._op_shl,
            (0x9, 0x0):   self._op_sne_reg,
            (0xA, None):  self._op_ld_i,
            (0xB, None):  self._op_jp_v0,
            (0xC, None):  self._op_rnd,
            (0xD, None):  self._op_drw,
            (0xE, 0x9E):  self._op_skp,
            (0xE, 0xA1):  self._op_sknp,
            (0xF, 0x07):  self._op_ld_vx_dt,
            (0xF, 0x0A):  self._op_ld_vx_k,
            (0xF, 0x15):  self._op_ld_dt_vx,
            (0xF, 0x18):  self._op_ld_st_vx,
            (0xF, 0x1E):  self._op_add_i,
            (0xF, 0x29):  self._op_ld_f,
            (0xF, 0x33):  self._op_ld_b,
            (0xF, 0x55):  self._op_store_regs,
            (0xF, 0x65):  self._op_load_regs,
        }

    # -- Decode --

    def lookup(self, word: int, pc: int) -> tuple[Instruction, Callable[[Instruction], None]]:
        """Decode *word* fetched from *pc* and find its handler."""
        ins = decode(word)
        handler = self._ops.get((ins.group, sub_selector(ins)))
        if handler is None:
            raise DecodeError(ins.word, pc)
        return ins, handler

    # =====================================================================
    #  STEP: one fetch/decode/execute
    # =====================================================================

    def step(self) -> bool:
        """Execute one instruction.  Returns False when paused."""
        if self.halted:
            raise HaltError("CPU is halted")
        s = self.state
        if s.paused:
            return False

        addr = s.pc
        word = s.read16(addr)
        s.pc = addr + 2

        try:
            ins, handler = self.lookup(word, addr)
            if self.on_trace:
                self.on_trace(addr, word)
            handler(ins)
        except Chip8Error as e:
            s.pc = addr
            self.halted = True
            self.fault = e
            raise

        self.cycle_count += 1
        return True

    def run_cycles(self, n: int = DEFAULT_CYCLES_PER_FRAME):
        """Run one driver batch: up to *n* instructions, then one timer
        tick, tone report and redraw.  Paused batches skip execution but
        still tick, report and redraw."""
        if self.halted:
            raise HaltError("CPU is halted")
        with self.keypad.lock:
            for _ in range(n):
                if self.state.paused:
                    break
                self.step()
            self.state.tick_timers()
        self.report_tone()
        self.display.render()

    def report_tone(self):
        if self.state.sound_timer > 0:
            self.tone.start(self.tone_frequency)
        else:
            self.tone.stop()

    def reset(self):
        self.state.reset()
        self.halted = False
        self.fault = None
        self.cycle_count = 0
        self.keypad.reset()
        self.display.clear()

    # -- Wait-for-key delivery (called by the keypad under its lock) --

    def _deliver_key(self, register: int, key: int):
        self.state.set_reg(register, key)
        self.state.paused = False

    # =====================================================================
    #  Control flow
    # =====================================================================

    def _op_cls(self, ins: Instruction):
        self.display.clear()

    def _op_ret(self, ins: Instruction):
        s = self.state
        if not s.stack:
            raise StackError(s.pc - 2, "Return with empty call stack")
        s.pc = s.stack.pop()

    def _op_sys(self, ins: Instruction):
        # 0nnn: native machine-code call on the COSMAC VIP; ignored.
        pass

    def _op_jp(self, ins: Instruction):
        self.state.pc = ins.nnn

    def _op_call(self, ins: Instruction):
        s = self.state
        if len(s.stack) >= STACK_DEPTH:
            raise StackError(s.pc - 2, "Call stack overflow")
        s.stack.append(s.pc)
        s.pc = ins.nnn

    def _op_jp_v0(self, ins: Instruction):
        self.state.pc = ins.nnn + self.state.v[0]

    # =====================================================================
    #  Skips
    # =====================================================================

    def _skip_if(self, cond: bool):
        if cond:
            self.state.pc += 2

    def _op_se_imm(self, ins: Instruction):
        self._skip_if(self.state.v[ins.x] == ins.kk)

    def _op_sne_imm(self, ins: Instruction):
        self._skip_if(self.state.v[ins.x] != ins.kk)

    def _op_se_reg(self, ins: Instruction):
        v = self.state.v
        self._skip_if(v[ins.x] == v[ins.y])

    def _op_sne_reg(self, ins: Instruction):
        v = self.state.v
        self._skip_if(v[ins.x] != v[ins.y])

    def _op_skp(self, ins: Instruction):
        self._skip_if(self.keypad.is_held(self.state.v[ins.x]))

    def _op_sknp(self, ins: Instruction):
        self._skip_if(not self.keypad.is_held(self.state.v[ins.x]))

    # =====================================================================
    #  Immediate / load
    # =====================================================================

    def _op_ld_imm(self, ins: Instruction):
        self.state.v[ins.x] = ins.kk

    def _op_add_imm(self, ins: Instruction):
        self.state.set_reg(ins.x, self.state.v[ins.x] + ins.kk)

    def _op_ld_i(self, ins: Instruction):
        self.state.i = ins.nnn

    def _op_add_i(self, ins: Instruction):
        self.state.i += self.state.v[ins.x]

    def _op_rnd(self, ins: Instruction):
        self.state.v[ins.x] = self.rng.randint(0, 0xFF) & ins.kk

    # =====================================================================
    #  ALU (group 8)
    #  Operands are read before VF is written; the result is stored last,
    #  so with X = F the result wins over the flag.
    # =====================================================================

    def _op_ld_reg(self, ins: Instruction):
        self.state.v[ins.x] = self.state.v[ins.y]

    def _op_or(self, ins: Instruction):
        v = self.state.v
        v[ins.x] = v[ins.x] | v[ins.y]

    def _op_and(self, ins: Instruction):
        v = self.state.v
        v[ins.x] = v[ins.x] & v[ins.y]

    def _op_xor(self, ins: Instruction):
        v = self.state.v
        v[ins.x] = v[ins.x] ^ v[ins.y]

    def _op_add(self, ins: Instruction):
        v = self.state.v
        a, b = v[ins.x], v[ins.y]
        r = a + b
        v[FLAG] = 1 if r > 0xFF else 0
        v[ins.x] = u8(r)

    def _op_sub(self, ins: Instruction):
        v = self.state.v
        a, b = v[ins.x], v[ins.y]
        v[FLAG] = 1 if a > b else 0      # strictly greater: no borrow
        v[ins.x] = u8(a - b)

    def _op_subn(self, ins: Instruction):
        v = self.state.v
        a, b = v[ins.x], v[ins.y]
        v[FLAG] = 1 if b > a else 0
        v[ins.x] = u8(b - a)

    def _op_shr(self, ins: Instruction):
        v = self.state.v
        a = v[ins.x]
        v[FLAG] = a & 0x01
        v[ins.x] = a >> 1

    def _op_shl(self, ins: Instruction):
        v = self.state.v
        a = v[ins.x]
        v[FLAG] = a & 0x80              # 0x00 or 0x80, not normalized
        v[ins.x] = u8(a << 1)

    # =====================================================================
    #  Draw
    # =====================================================================

    def _op_drw(self, ins: Instruction):
        s = self.state
        x0 = s.v[ins.x]
        y0 = s.v[ins.y]
        rows = bytes(s.read8(s.i + r) for r in range(ins.n))
        collided = False
        for row, sprite in enumerate(rows):
            for col in range(SPRITE_WIDTH):
                if sprite & (0x80 >> col):
                    if self.display.toggle_pixel(x0 + col, y0 + row):
                        collided = True
        s.v[FLAG] = 1 if collided else 0

    # =====================================================================
    #  Timers / misc (group F)
    # =====================================================================

    def _op_ld_vx_dt(self, ins: Instruction):
        self.state.v[ins.x] = self.state.delay_timer

    def _op_ld_vx_k(self, ins: Instruction):
        self.state.paused = True
        self.keypad.wait_for_key(ins.x)

    def _op_ld_dt_vx(self, ins: Instruction):
        self.state.delay_timer = self.state.v[ins.x]

    def _op_ld_st_vx(self, ins: Instruction):
        self.state.sound_timer = self.state.v[ins.x]

    def _op_ld_f(self, ins: Instruction):
        self.state.i = FONT_BASE + (self.state.v[ins.x] & 0xF) * GLYPH_BYTES

    def _op_ld_b(self, ins: Instruction):
        s = self.state
        val = s.v[ins.x]
        s.write8(s.i,     val // 100)
        s.write8(s.i + 1, (val // 10) % 10)
        s.write8(s.i + 2, val % 10)

    def _op_store_regs(self, ins: Instruction):
        s = self.state
        for r in range(ins.x + 1):
            s.write8(s.i + r, s.v[r])

    def _op_load_regs(self, ins: Instruction):
        s = self.state
        for r in range(ins.x + 1):
            s.v[r] = s.read8(s.i + r)

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        s = self.state
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"V{r:X} = {s.v[r]:#04x}" for r in range(row, row + 4)))
        lines.append(f"  I = {s.i:#06x}  PC = {s.pc:#06x}  "
                     f"DT = {s.delay_timer}  ST = {s.sound_timer}")
        stack = " ".join(f"{a:#05x}" for a in s.stack) or "-"
        lines.append(f"  STACK[{len(s.stack)}] = {stack}")
        state = "halted" if self.halted else ("paused" if s.paused else "running")
        lines.append(f"  {state}  cycles = {self.cycle_count}")
        return "\n".join(lines)
