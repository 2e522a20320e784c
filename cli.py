#!/usr/bin/env python3
"""
CHIP-8 Interpreter / Monitor CLI
=================================
Command-line front end for the CHIP-8 system.

Provides:
  - ROM loading and windowed execution (pygame)
  - Headless execution with a text dump of the screen
  - Run / step execution and instruction tracing
  - Register and memory inspection
  - Disassembly and assembly

Usage:
  chip8 ROM [--speed N] [--fps N] [--scale N] [--seed N] [--no-sound]
  chip8 ROM --headless --frames N
  chip8 ROM --monitor
  chip8 --assemble SRC OUT [--listing]
  chip8 ROM --disasm
"""

from __future__ import annotations
import argparse
import cmd
import os
import shlex
import sys

from chip8 import (
    Chip8Error, HaltError, PROGRAM_BASE, MEM_SIZE, DEFAULT_CYCLES_PER_FRAME,
    decode,
)
from asm import assemble, AsmError
from system import Chip8System, DEFAULT_FPS
from display import DEFAULT_SCALE

# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

ALU_NAMES = {
    0x0: "LD", 0x1: "OR", 0x2: "AND", 0x3: "XOR", 0x4: "ADD",
    0x5: "SUB", 0x6: "SHR", 0x7: "SUBN", 0xE: "SHL",
}

F_NAMES = {
    0x07: "LD V{x:X}, DT", 0x0A: "LD V{x:X}, K", 0x15: "LD DT, V{x:X}",
    0x18: "LD ST, V{x:X}", 0x1E: "ADD I, V{x:X}", 0x29: "LD F, V{x:X}",
    0x33: "LD B, V{x:X}", 0x55: "LD [I], V{x:X}", 0x65: "LD V{x:X}, [I]",
}


def disasm(word: int) -> str:
    """Disassemble one instruction word.  Unknown words render as DW."""
    ins = decode(word)
    g, x, y, n, kk, nnn = ins.group, ins.x, ins.y, ins.n, ins.kk, ins.nnn

    if word == 0x00E0:
        return "CLS"
    if word == 0x00EE:
        return "RET"
    if g == 0x0:
        return f"SYS {nnn:#05x}"
    if g == 0x1:
        return f"JP {nnn:#05x}"
    if g == 0x2:
        return f"CALL {nnn:#05x}"
    if g == 0x3:
        return f"SE V{x:X}, {kk:#04x}"
    if g == 0x4:
        return f"SNE V{x:X}, {kk:#04x}"
    if g == 0x5 and n == 0:
        return f"SE V{x:X}, V{y:X}"
    if g == 0x6:
        return f"LD V{x:X}, {kk:#04x}"
    if g == 0x7:
        return f"ADD V{x:X}, {kk:#04x}"
    if g == 0x8 and n in ALU_NAMES:
        return f"{ALU_NAMES[n]} V{x:X}, V{y:X}"
    if g == 0x9 and n == 0:
        return f"SNE V{x:X}, V{y:X}"
    if g == 0xA:
        return f"LD I, {nnn:#05x}"
    if g == 0xB:
        return f"JP V0, {nnn:#05x}"
    if g == 0xC:
        return f"RND V{x:X}, {kk:#04x}"
    if g == 0xD:
        return f"DRW V{x:X}, V{y:X}, {n}"
    if g == 0xE and kk == 0x9E:
        return f"SKP V{x:X}"
    if g == 0xE and kk == 0xA1:
        return f"SKNP V{x:X}"
    if g == 0xF and kk in F_NAMES:
        return F_NAMES[kk].format(x=x)
    return f"DW {ins.word:#06x}"


def disasm_range(mem: bytes | bytearray, start: int,
                 count: int) -> list[tuple[int, int, str]]:
    """Disassemble *count* words from *start*.  Returns (addr, word, text)."""
    out = []
    for k in range(count):
        addr = (start + 2 * k) % len(mem)
        word = (mem[addr] << 8) | mem[(addr + 1) % len(mem)]
        out.append((addr, word, disasm(word)))
    return out


def print_trace(pc: int, word: int):
    print(f"  {pc:03X}: {word:04X}  {disasm(word)}")

# ---------------------------------------------------------------------------
#  Debug monitor
# ---------------------------------------------------------------------------

class Chip8CLI(cmd.Cmd):
    intro = (
        "\n"
        "╔══════════════════════════════════════════════════════════╗\n"
        "║              CHIP-8 Monitor  v1.0                        ║\n"
        "║   Type 'help' for commands.  'quit' to exit.             ║\n"
        "╚══════════════════════════════════════════════════════════╝\n"
    )
    prompt = "C8> "

    def __init__(self, system: Chip8System):
        super().__init__()
        self.sys = system

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _parse_addr(self, s: str) -> int:
        s = s.strip().lower()
        if s == "pc":
            return self.sys.state.pc
        if s == "i":
            return self.sys.state.i
        return int(s, 0)

    # ================================================================
    #  Commands
    # ================================================================

    def do_load(self, arg):
        """Load a ROM file at 0x200: load <file>"""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: load <file>")
            return
        try:
            n = self.sys.load_rom_file(parts[0])
            print(f"Loaded {n} bytes from '{parts[0]}' at {PROGRAM_BASE:#x}")
        except (OSError, ValueError) as e:
            print(f"Error: {e}")

    def do_reset(self, arg):
        """Reset the machine and reload the current ROM."""
        self.sys.reset()
        print("System reset.")

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            addr = self.sys.state.pc
            word = self.sys.state.read16(addr)
            try:
                if not self.sys.cpu.step():
                    print("CPU is waiting for a key ('press <k>').")
                    break
            except HaltError:
                print(f"CPU is halted: {self.sys.cpu.fault}")
                break
            except Chip8Error as e:
                print(f"Fault: {e}")
                break
            if self.sys.cpu.on_trace is None:
                print_trace(addr, word)

    def do_run(self, arg):
        """Run N frames (default 60): run [frames]"""
        frames = self._parse_int(arg) if arg.strip() else 60
        try:
            self.sys.run_frames(frames)
        except Chip8Error as e:
            print(f"Fault: {e}")
            return
        print(f"Ran {frames} frames.  PC={self.sys.state.pc:#05x}"
              + ("  (waiting for key)" if self.sys.paused else ""))

    def do_regs(self, arg):
        """Show registers, timers and stack."""
        print(self.sys.cpu.dump_regs())

    def do_status(self, arg):
        """Show system status."""
        print(self.sys.dump_state())

    def do_dump(self, arg):
        """Hex dump memory: dump <addr> [length]"""
        parts = arg.split()
        if not parts:
            print("Usage: dump <addr> [length]")
            return
        try:
            addr = self._parse_addr(parts[0])
            length = self._parse_int(parts[1]) if len(parts) > 1 else 64
        except ValueError as e:
            print(f"Error: {e}")
            return
        mem = self.sys.state.mem
        for off in range(0, length, 16):
            a = (addr + off) % MEM_SIZE
            row = [mem[(a + k) % MEM_SIZE] for k in range(min(16, length - off))]
            hexs = " ".join(f"{b:02X}" for b in row)
            asc = "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in row)
            print(f"  {a:03X}: {hexs:<47s}  {asc}")

    def do_disasm(self, arg):
        """Disassemble: disasm [addr] [count]"""
        parts = arg.split()
        try:
            addr = self._parse_addr(parts[0]) if parts else self.sys.state.pc
            count = self._parse_int(parts[1]) if len(parts) > 1 else 10
        except ValueError as e:
            print(f"Error: {e}")
            return
        for a, word, text in disasm_range(self.sys.state.mem, addr, count):
            mark = ">" if a == self.sys.state.pc else " "
            print(f" {mark}{a:03X}: {word:04X}  {text}")

    def do_screen(self, arg):
        """Print the display as text."""
        print(self.sys.fb.to_text())

    def do_press(self, arg):
        """Press a logical key (0-F): press <k>"""
        try:
            self.sys.press_key(int(arg.strip(), 16))
        except ValueError:
            print("Usage: press <0-F>")

    def do_release(self, arg):
        """Release a logical key (0-F): release <k>"""
        try:
            self.sys.release_key(int(arg.strip(), 16))
        except ValueError:
            print("Usage: release <0-F>")

    def do_trace(self, arg):
        """Toggle instruction tracing: trace on|off"""
        on = arg.strip().lower() in ("on", "1", "yes")
        self.sys.cpu.on_trace = print_trace if on else None
        print(f"Trace {'on' if on else 'off'}.")

    def do_quit(self, arg):
        """Exit the monitor."""
        print("Goodbye.")
        return True
    do_q = do_quit

    def do_EOF(self, arg):
        print()
        return True

    def default(self, line):
        print(f"Unknown command: {line.split()[0]}  (type 'help')")

    def emptyline(self):
        pass

# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def run_windowed(sys_emu: Chip8System, scale: int, fps: int) -> int:
    try:
        from display import Chip8Window
        import pygame  # noqa: F401
    except ImportError as e:
        print(f"[display] pygame not available: {e}", file=sys.stderr)
        print("[display] Install with: pip install pygame", file=sys.stderr)
        return 1
    win = Chip8Window(sys_emu, scale=scale, fps=fps)
    win.start()
    try:
        sys_emu.run_realtime(fps, stop_event=win.closed)
    except KeyboardInterrupt:
        print()
    finally:
        sys_emu.tone.stop()
        win.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chip8",
        description="CHIP-8 interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  chip8 roms/BLINKY\n"
               "  chip8 roms/BLINKY --speed 20 --scale 12\n"
               "  chip8 roms/IBM --headless --frames 120\n"
               "  chip8 roms/PONG --monitor\n"
               "  chip8 --assemble demo.asm demo.ch8 --listing\n"
    )
    parser.add_argument("rom", nargs="?", default=None,
                        help="Program image to load at 0x200")
    parser.add_argument("--speed", type=int, default=DEFAULT_CYCLES_PER_FRAME,
                        metavar="N",
                        help="Instructions per frame (default: "
                             f"{DEFAULT_CYCLES_PER_FRAME})")
    parser.add_argument("--fps", type=int, default=DEFAULT_FPS,
                        help=f"Frames per second (default: {DEFAULT_FPS})")
    parser.add_argument("--scale", type=int,
                        default=int(os.environ.get("CHIP8_SCALE", DEFAULT_SCALE)),
                        metavar="N",
                        help=f"Pixel scale factor (default: {DEFAULT_SCALE}, "
                             "env CHIP8_SCALE)")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for the RND instruction")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window and print the screen")
    parser.add_argument("--frames", type=int, default=60, metavar="N",
                        help="Frames to run in headless mode (default: 60)")
    parser.add_argument("--monitor", action="store_true",
                        help="Enter the debug monitor")
    parser.add_argument("--trace", action="store_true",
                        help="Print every executed instruction")
    parser.add_argument("--no-sound", action="store_true",
                        help="Disable the tone")
    parser.add_argument("--disasm", action="store_true",
                        help="Disassemble the ROM and exit")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC to OUT and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        src_path, out_path = args.assemble
        with open(src_path, "r") as f:
            source = f.read()
        try:
            code = assemble(source, PROGRAM_BASE, listing=args.listing)
        except AsmError as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1
        with open(out_path, "wb") as f:
            f.write(code)
        print(f"Assembled {src_path} → {out_path} ({len(code)} bytes)")
        return 0

    tone = None
    if not (args.headless or args.monitor or args.disasm or args.no_sound):
        from display import PygameTone
        tone = PygameTone()

    sys_emu = Chip8System(cycles_per_frame=args.speed, seed=args.seed,
                          tone=tone)
    if args.rom:
        try:
            n = sys_emu.load_rom_file(args.rom)
        except (OSError, ValueError) as e:
            print(f"[chip8] cannot load '{args.rom}': {e}", file=sys.stderr)
            return 1
        print(f"[chip8] loaded {n} bytes from '{args.rom}'")

    if args.disasm:
        if not args.rom:
            print("[chip8] --disasm needs a ROM", file=sys.stderr)
            return 1
        count = (len(sys_emu.rom) + 1) // 2
        for a, word, text in disasm_range(sys_emu.state.mem, PROGRAM_BASE, count):
            print(f"  {a:03X}: {word:04X}  {text}")
        return 0

    if args.trace:
        sys_emu.cpu.on_trace = print_trace

    if args.monitor:
        cli = Chip8CLI(sys_emu)
        try:
            cli.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return 0

    if not args.rom:
        print("[chip8] no ROM given (see --help)", file=sys.stderr)
        return 1

    try:
        if args.headless:
            sys_emu.run_frames(args.frames)
            print(sys_emu.fb.to_text())
            return 0
        return run_windowed(sys_emu, args.scale, args.fps)
    except Chip8Error as e:
        print(f"[chip8] fault: {e}", file=sys.stderr)
        print(sys_emu.cpu.dump_regs(), file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
