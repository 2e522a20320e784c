"""
CHIP-8 Interpreter Core Test Suite
===================================
Covers fetch/decode, every instruction group, the sprite blit contract,
timers, wait-for-key pause/resume and fault handling.
"""

import random
import unittest

from chip8 import (
    Chip8, MachineState, DecodeError, StackError, HaltError, FONT,
    PROGRAM_BASE, STACK_DEPTH, FLAG, decode, sub_selector,
)
from devices import Framebuffer, Keypad, Buzzer
from system import Chip8System


def words(*ws: int) -> bytes:
    return b"".join(w.to_bytes(2, "big") for w in ws)


def make_system(*ws: int, seed: int = 0) -> Chip8System:
    """System with the given instruction words loaded at 0x200."""
    sys_emu = Chip8System(seed=seed)
    sys_emu.load_rom(words(*ws))
    return sys_emu


def run_steps(sys_emu: Chip8System, n: int):
    for _ in range(n):
        sys_emu.cpu.step()


def execute(sys_emu: Chip8System, word: int):
    """Place *word* at PC and execute it."""
    s = sys_emu.state
    s.mem[s.pc] = word >> 8
    s.mem[s.pc + 1] = word & 0xFF
    sys_emu.cpu.step()


# =========================================================================
#  Fetch / decode / machine state
# =========================================================================

class TestDecode(unittest.TestCase):

    def test_fields(self):
        ins = decode(0xD123)
        self.assertEqual(ins.group, 0xD)
        self.assertEqual(ins.x, 0x1)
        self.assertEqual(ins.y, 0x2)
        self.assertEqual(ins.n, 0x3)
        self.assertEqual(ins.kk, 0x23)
        self.assertEqual(ins.nnn, 0x123)

    def test_sub_selectors(self):
        self.assertEqual(sub_selector(decode(0x00E0)), 0x0E0)
        self.assertIsNone(sub_selector(decode(0x0123)))
        self.assertEqual(sub_selector(decode(0x8AB6)), 0x6)
        self.assertEqual(sub_selector(decode(0xF233)), 0x33)
        self.assertIsNone(sub_selector(decode(0x6A42)))

    def test_fetch_is_big_endian(self):
        sys_emu = make_system(0x6A42)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.v[0xA], 0x42)

    def test_pc_advances_before_dispatch(self):
        sys_emu = make_system(0x1300)          # JP 0x300
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x300)

    def test_plain_instruction_advances_pc_by_two(self):
        sys_emu = make_system(0x6000, 0x6100)
        run_steps(sys_emu, 2)
        self.assertEqual(sys_emu.state.pc, 0x204)


class TestMachineState(unittest.TestCase):

    def test_initial_state(self):
        s = MachineState()
        self.assertEqual(s.pc, PROGRAM_BASE)
        self.assertEqual(s.i, 0)
        self.assertEqual(list(s.v), [0] * 16)
        self.assertEqual(s.stack, [])
        self.assertFalse(s.paused)

    def test_font_loaded_at_zero(self):
        s = MachineState()
        self.assertEqual(bytes(s.mem[0:5]), bytes([0xF0, 0x90, 0x90, 0x90, 0xF0]))
        self.assertEqual(bytes(s.mem[75:80]), bytes([0xF0, 0x80, 0xF0, 0x80, 0x80]))
        self.assertEqual(bytes(s.mem[:len(FONT)]), FONT)

    def test_program_loaded_at_0x200(self):
        s = MachineState()
        s.load_program(b"\x12\x34\x56")
        self.assertEqual(bytes(s.mem[0x200:0x203]), b"\x12\x34\x56")
        self.assertEqual(s.mem[0x1FF], 0)

    def test_writes_truncate(self):
        s = MachineState()
        s.set_reg(3, 0x1FF)
        self.assertEqual(s.v[3], 0xFF)
        s.write8(0x300, 0x123)
        self.assertEqual(s.mem[0x300], 0x23)
        s.i = 0x12345
        self.assertEqual(s.i, 0x2345)
        s.pc = 0x10002
        self.assertEqual(s.pc, 0x0002)

    def test_memory_addresses_wrap(self):
        s = MachineState()
        s.write8(0x1005, 0xAB)
        self.assertEqual(s.mem[0x005], 0xAB)
        self.assertEqual(s.read8(0x1005), 0xAB)

    def test_timer_floor(self):
        s = MachineState()
        s.delay_timer = 1
        s.sound_timer = 0
        s.tick_timers()
        self.assertEqual(s.delay_timer, 0)
        s.tick_timers()
        self.assertEqual(s.delay_timer, 0)
        self.assertEqual(s.sound_timer, 0)

    def test_reset(self):
        s = MachineState()
        s.load_program(b"\xFF\xFF")
        s.v[1] = 9
        s.stack.append(0x204)
        s.paused = True
        s.reset()
        self.assertEqual(s.mem[0x200], 0)
        self.assertEqual(s.v[1], 0)
        self.assertEqual(s.stack, [])
        self.assertFalse(s.paused)
        self.assertEqual(bytes(s.mem[:len(FONT)]), FONT)


# =========================================================================
#  ALU (group 8)
# =========================================================================

PAIRS = [(0, 0), (1, 2), (5, 5), (200, 55), (200, 56), (255, 255),
         (128, 128), (0, 255), (255, 0), (17, 42)]


class TestALU(unittest.TestCase):

    def setUp(self):
        self.sys = make_system()
        self.v = self.sys.state.v

    def test_ld_or_and_xor(self):
        self.v[1], self.v[2] = 0b1100, 0b1010
        execute(self.sys, 0x8121)
        self.assertEqual(self.v[1], 0b1110)
        self.v[1] = 0b1100
        execute(self.sys, 0x8122)
        self.assertEqual(self.v[1], 0b1000)
        self.v[1] = 0b1100
        execute(self.sys, 0x8123)
        self.assertEqual(self.v[1], 0b0110)
        execute(self.sys, 0x8120)
        self.assertEqual(self.v[1], 0b1010)

    def test_add_carry(self):
        for a, b in PAIRS:
            with self.subTest(a=a, b=b):
                self.v[1], self.v[2] = a, b
                execute(self.sys, 0x8124)
                self.assertEqual(self.v[1], (a + b) % 256)
                self.assertEqual(self.v[FLAG], 1 if a + b > 255 else 0)

    def test_sub_flag_is_strictly_greater(self):
        for a, b in PAIRS:
            with self.subTest(a=a, b=b):
                self.v[1], self.v[2] = a, b
                execute(self.sys, 0x8125)
                self.assertEqual(self.v[1], (a - b) % 256)
                self.assertEqual(self.v[FLAG], 1 if a > b else 0)

    def test_subn(self):
        for a, b in PAIRS:
            with self.subTest(a=a, b=b):
                self.v[1], self.v[2] = a, b
                execute(self.sys, 0x8127)
                self.assertEqual(self.v[1], (b - a) % 256)
                self.assertEqual(self.v[FLAG], 1 if b > a else 0)

    def test_shr(self):
        self.v[1] = 0x03
        execute(self.sys, 0x8106)
        self.assertEqual(self.v[1], 0x01)
        self.assertEqual(self.v[FLAG], 1)
        self.v[1] = 0x80
        execute(self.sys, 0x8106)
        self.assertEqual(self.v[1], 0x40)
        self.assertEqual(self.v[FLAG], 0)

    def test_shl_flag_not_normalized(self):
        self.v[1] = 0x81
        execute(self.sys, 0x810E)
        self.assertEqual(self.v[1], 0x02)
        self.assertEqual(self.v[FLAG], 0x80)
        self.v[1] = 0x01
        execute(self.sys, 0x810E)
        self.assertEqual(self.v[1], 0x02)
        self.assertEqual(self.v[FLAG], 0)

    def test_result_written_after_flag(self):
        self.v[FLAG], self.v[2] = 200, 100
        execute(self.sys, 0x8F24)            # ADD VF, V2
        self.assertEqual(self.v[FLAG], 44)

    def test_add_immediate_wraps_without_flag(self):
        self.v[3] = 0xFF
        self.v[FLAG] = 7
        execute(self.sys, 0x7302)
        self.assertEqual(self.v[3], 0x01)
        self.assertEqual(self.v[FLAG], 7)


# =========================================================================
#  Skips and control flow
# =========================================================================

class TestSkips(unittest.TestCase):

    def _pc_after(self, word: int, vx: int, vy: int = 0) -> int:
        sys_emu = make_system(word)
        sys_emu.state.v[1] = vx
        sys_emu.state.v[2] = vy
        sys_emu.cpu.step()
        return sys_emu.state.pc

    def test_se_immediate(self):
        self.assertEqual(self._pc_after(0x3142, 0x42), 0x204)
        self.assertEqual(self._pc_after(0x3142, 0x41), 0x202)

    def test_sne_immediate(self):
        self.assertEqual(self._pc_after(0x4142, 0x42), 0x202)
        self.assertEqual(self._pc_after(0x4142, 0x41), 0x204)

    def test_se_register(self):
        self.assertEqual(self._pc_after(0x5120, 7, 7), 0x204)
        self.assertEqual(self._pc_after(0x5120, 7, 8), 0x202)

    def test_sne_register(self):
        self.assertEqual(self._pc_after(0x9120, 7, 7), 0x202)
        self.assertEqual(self._pc_after(0x9120, 7, 8), 0x204)


class TestControlFlow(unittest.TestCase):

    def test_call_return_round_trip(self):
        # 200: CALL 206 / 202: LD V0,1 / 204: JP 204 / 206: RET
        sys_emu = make_system(0x2206, 0x6001, 0x1204, 0x00EE)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x206)
        self.assertEqual(sys_emu.state.stack, [0x202])
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x202)
        self.assertEqual(sys_emu.state.stack, [])
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.v[0], 1)

    def test_indexed_jump(self):
        sys_emu = make_system(0xB300)
        sys_emu.state.v[0] = 4
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x304)

    def test_sys_is_ignored(self):
        sys_emu = make_system(0x0123)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x202)
        self.assertFalse(sys_emu.halted)

    def test_return_on_empty_stack_is_fatal(self):
        sys_emu = make_system(0x00EE)
        sys_emu.state.v[5] = 9
        with self.assertRaises(StackError) as cm:
            sys_emu.cpu.step()
        self.assertEqual(cm.exception.pc, 0x200)
        self.assertTrue(sys_emu.halted)
        self.assertEqual(sys_emu.state.pc, 0x200)
        self.assertEqual(sys_emu.state.v[5], 9)
        with self.assertRaises(HaltError):
            sys_emu.cpu.step()

    def test_call_depth_limit(self):
        sys_emu = make_system(0x2200)          # CALL 0x200, forever
        run_steps(sys_emu, STACK_DEPTH)
        self.assertEqual(len(sys_emu.state.stack), STACK_DEPTH)
        with self.assertRaises(StackError):
            sys_emu.cpu.step()
        self.assertEqual(len(sys_emu.state.stack), STACK_DEPTH)

    def test_cls_clears_display(self):
        sys_emu = make_system(0x00E0)
        sys_emu.fb.toggle_pixel(3, 4)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.fb.lit_count(), 0)


# =========================================================================
#  Loads, I register, random
# =========================================================================

class TestLoads(unittest.TestCase):

    def test_ld_immediate_and_i(self):
        sys_emu = make_system(0x6A42, 0xA2F0)
        run_steps(sys_emu, 2)
        self.assertEqual(sys_emu.state.v[0xA], 0x42)
        self.assertEqual(sys_emu.state.i, 0x2F0)

    def test_add_i_no_flag_and_wraps_16_bits(self):
        sys_emu = make_system(0xF11E)
        sys_emu.state.i = 0xFFFF
        sys_emu.state.v[1] = 2
        sys_emu.state.v[FLAG] = 0
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.i, 0x0001)
        self.assertEqual(sys_emu.state.v[FLAG], 0)

    def test_font_glyph_address(self):
        sys_emu = make_system(0xF129)
        sys_emu.state.v[1] = 0x1A               # low nibble → glyph A
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.i, 0xA * 5)

    def test_bcd(self):
        for val, digits in [(255, (2, 5, 5)), (7, (0, 0, 7)), (120, (1, 2, 0))]:
            with self.subTest(val=val):
                sys_emu = make_system(0xF133)
                sys_emu.state.v[1] = val
                sys_emu.state.i = 0x300
                sys_emu.cpu.step()
                self.assertEqual(tuple(sys_emu.state.mem[0x300:0x303]), digits)

    def test_block_store_and_load(self):
        sys_emu = make_system(0xF355, 0x6000, 0x6100, 0x6200, 0x6300, 0xF365)
        for r in range(5):
            sys_emu.state.v[r] = 10 + r
        sys_emu.state.i = 0x300
        sys_emu.cpu.step()
        self.assertEqual(list(sys_emu.state.mem[0x300:0x305]), [10, 11, 12, 13, 0])
        self.assertEqual(sys_emu.state.i, 0x300)
        run_steps(sys_emu, 5)
        self.assertEqual(list(sys_emu.state.v[0:5]), [10, 11, 12, 13, 14])

    def test_block_store_wraps_memory(self):
        sys_emu = make_system(0xF155)
        sys_emu.state.v[0], sys_emu.state.v[1] = 0xAA, 0xBB
        sys_emu.state.i = 0xFFF
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.mem[0xFFF], 0xAA)
        self.assertEqual(sys_emu.state.mem[0x000], 0xBB)

    def test_rnd_masks_with_immediate(self):
        sys_emu = make_system(0xC1F0, seed=5)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.v[1],
                         random.Random(5).randint(0, 255) & 0xF0)

    def test_rnd_zero_mask(self):
        sys_emu = make_system(0xC100, 0xC100, 0xC100, seed=1)
        for _ in range(3):
            sys_emu.state.v[1] = 0xFF
            sys_emu.cpu.step()
            self.assertEqual(sys_emu.state.v[1], 0)


# =========================================================================
#  Draw
# =========================================================================

class TestDraw(unittest.TestCase):

    def _draw(self, x: int, y: int, sprite: bytes, sys_emu=None) -> Chip8System:
        sys_emu = sys_emu or make_system()
        s = sys_emu.state
        s.mem[0x300:0x300 + len(sprite)] = sprite
        s.i = 0x300
        s.v[1], s.v[2] = x, y
        execute(sys_emu, 0xD120 | len(sprite))
        return sys_emu

    def test_glyph_zero(self):
        sys_emu = make_system(0xF029, 0xD005)
        run_steps(sys_emu, 2)
        fb = sys_emu.fb
        self.assertEqual(fb.lit_count(), 14)
        self.assertEqual(list(fb.pixels[0, 0:5]), [1, 1, 1, 1, 0])
        self.assertEqual(list(fb.pixels[1, 0:5]), [1, 0, 0, 1, 0])
        self.assertEqual(sys_emu.state.v[FLAG], 0)

    def test_draw_twice_erases_and_flags(self):
        sys_emu = self._draw(10, 5, b"\x3C\x42")
        self.assertEqual(sys_emu.fb.lit_count(), 6)
        self.assertEqual(sys_emu.state.v[FLAG], 0)
        self._draw(10, 5, b"\x3C\x42", sys_emu)
        self.assertEqual(sys_emu.fb.lit_count(), 0)
        self.assertEqual(sys_emu.state.v[FLAG], 1)

    def test_single_collision_sets_flag_to_one(self):
        sys_emu = self._draw(0, 0, b"\x80")
        self._draw(0, 0, b"\xFF", sys_emu)
        self.assertEqual(sys_emu.state.v[FLAG], 1)
        self.assertEqual(sys_emu.fb.lit_count(), 7)

    def test_flag_reset_before_draw(self):
        sys_emu = make_system()
        sys_emu.state.v[FLAG] = 1
        self._draw(0, 0, b"\x80", sys_emu)
        self.assertEqual(sys_emu.state.v[FLAG], 0)

    def test_wraps_horizontally(self):
        sys_emu = self._draw(62, 30, b"\xFF")
        row = sys_emu.fb.pixels[30]
        lit = [x for x in range(64) if row[x]]
        self.assertEqual(lit, [0, 1, 2, 3, 4, 5, 62, 63])

    def test_wraps_vertically(self):
        sys_emu = self._draw(0, 30, b"\x80" * 5)
        col = sys_emu.fb.pixels[:, 0]
        lit = [y for y in range(32) if col[y]]
        self.assertEqual(lit, [0, 1, 2, 30, 31])

    def test_multi_wrap_uses_modulo(self):
        sys_emu = self._draw(0xFF, 0xFF, b"\xC0")   # 255 % 64 = 63, 255 % 32 = 31
        self.assertEqual(sys_emu.fb.pixels[31, 63], 1)
        self.assertEqual(sys_emu.fb.pixels[31, 0], 1)
        self.assertEqual(sys_emu.fb.lit_count(), 2)

    def test_zero_height_draws_nothing(self):
        sys_emu = make_system(0xD120)
        sys_emu.state.v[FLAG] = 1
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.fb.lit_count(), 0)
        self.assertEqual(sys_emu.state.v[FLAG], 0)


# =========================================================================
#  Timers and tone
# =========================================================================

class TestTimers(unittest.TestCase):

    def test_delay_timer_round_trip(self):
        sys_emu = make_system(0xF115, 0xF207, 0x1204)
        sys_emu.state.v[1] = 30
        run_steps(sys_emu, 2)
        self.assertEqual(sys_emu.state.delay_timer, 30)
        self.assertEqual(sys_emu.state.v[2], 30)

    def test_one_tick_per_batch(self):
        sys_emu = make_system(0x1200)               # JP 0x200 forever
        sys_emu.state.delay_timer = 5
        sys_emu.cpu.run_cycles(10)
        self.assertEqual(sys_emu.cpu.cycle_count, 10)
        self.assertEqual(sys_emu.state.delay_timer, 4)

    def test_timer_floors_at_zero(self):
        sys_emu = make_system(0x1200)
        sys_emu.state.delay_timer = 1
        sys_emu.cpu.run_cycles(1)
        self.assertEqual(sys_emu.state.delay_timer, 0)
        sys_emu.cpu.run_cycles(1)
        self.assertEqual(sys_emu.state.delay_timer, 0)

    def test_tone_follows_sound_timer(self):
        sys_emu = make_system(0xF118, 0x1202)
        sys_emu.state.v[1] = 2
        buzzer = sys_emu.tone
        sys_emu.cpu.run_cycles(2)
        self.assertEqual(sys_emu.state.sound_timer, 1)
        self.assertTrue(buzzer.active)
        self.assertEqual(buzzer.frequency, 440)
        sys_emu.cpu.run_cycles(2)
        self.assertEqual(sys_emu.state.sound_timer, 0)
        self.assertFalse(buzzer.active)
        sys_emu.cpu.run_cycles(2)
        self.assertFalse(buzzer.active)
        self.assertEqual(buzzer.starts, 1)

    def test_batch_redraws_once(self):
        sys_emu = make_system(0x1200)
        sys_emu.cpu.run_cycles(10)
        sys_emu.cpu.run_cycles(10)
        self.assertEqual(sys_emu.fb.frame_count, 2)


# =========================================================================
#  Input: skips and wait-for-key
# =========================================================================

class TestInput(unittest.TestCase):

    def test_skp_sknp(self):
        sys_emu = make_system(0xE19E, 0x0000, 0xE1A1)
        sys_emu.state.v[1] = 5
        sys_emu.press_key(5)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x204)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x206)
        sys_emu.release_key(5)
        sys_emu.state.pc = 0x200
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x202)

    def test_key_value_above_fifteen_never_held(self):
        # VX = 0x15 names no key, even with key 5 held
        sys_emu = make_system(0xE19E, 0x0000, 0xE1A1)
        sys_emu.state.v[1] = 0x15
        sys_emu.press_key(5)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x202)
        sys_emu.state.pc = 0x204
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.state.pc, 0x208)

    def test_reset_clears_pending_wait(self):
        sys_emu = make_system(0xF30A)
        sys_emu.keypad.press(7)
        sys_emu.cpu.step()
        self.assertEqual(sys_emu.keypad.pending_register, 3)
        sys_emu.cpu.reset()
        self.assertIsNone(sys_emu.keypad.pending_register)
        self.assertFalse(sys_emu.keypad.is_held(7))
        self.assertFalse(sys_emu.state.paused)

    def test_wait_for_key_pauses_and_resumes(self):
        sys_emu = make_system(0xF30A, 0x6407, 0x1204)
        sys_emu.cpu.step()
        self.assertTrue(sys_emu.state.paused)
        self.assertEqual(sys_emu.keypad.pending_register, 3)

        sys_emu.cpu.run_cycles(10)
        self.assertEqual(sys_emu.state.pc, 0x202)
        self.assertEqual(sys_emu.state.v[4], 0)
        self.assertFalse(sys_emu.cpu.step())

        sys_emu.press_key(0xB)
        self.assertEqual(sys_emu.state.v[3], 0xB)
        self.assertFalse(sys_emu.state.paused)
        self.assertIsNone(sys_emu.keypad.pending_register)

        sys_emu.cpu.run_cycles(1)
        self.assertEqual(sys_emu.state.v[4], 7)

    def test_key_delivered_once(self):
        sys_emu = make_system(0xF30A, 0x1202)
        sys_emu.cpu.step()
        sys_emu.press_key(0x2)
        sys_emu.release_key(0x2)
        sys_emu.press_key(0x9)
        self.assertEqual(sys_emu.state.v[3], 0x2)

    def test_timers_tick_while_paused(self):
        sys_emu = make_system(0xF00A)
        sys_emu.state.delay_timer = 3
        sys_emu.cpu.run_cycles(10)
        self.assertTrue(sys_emu.state.paused)
        self.assertEqual(sys_emu.cpu.cycle_count, 1)
        sys_emu.cpu.run_cycles(10)
        self.assertEqual(sys_emu.state.delay_timer, 1)

    def test_wait_for_key_stops_batch_early(self):
        sys_emu = make_system(0x6101, 0xF00A, 0x6102)
        sys_emu.cpu.run_cycles(10)
        self.assertEqual(sys_emu.cpu.cycle_count, 2)
        self.assertEqual(sys_emu.state.v[1], 1)


# =========================================================================
#  Decode faults
# =========================================================================

class TestDecodeErrors(unittest.TestCase):

    BAD_WORDS = [0x5121, 0x8008, 0x800F, 0x9123, 0xE0FF, 0xE19F, 0xF0FF, 0xF100]

    def test_unknown_words_halt(self):
        for word in self.BAD_WORDS:
            with self.subTest(word=hex(word)):
                sys_emu = make_system(0x6105, word)
                sys_emu.cpu.step()
                with self.assertRaises(DecodeError) as cm:
                    sys_emu.cpu.step()
                self.assertEqual(cm.exception.word, word)
                self.assertEqual(cm.exception.pc, 0x202)
                self.assertTrue(sys_emu.halted)
                self.assertIs(sys_emu.cpu.fault, cm.exception)
                self.assertEqual(sys_emu.state.pc, 0x202)
                self.assertEqual(sys_emu.state.v[1], 5)

    def test_run_cycles_surfaces_fault_then_stays_halted(self):
        sys_emu = make_system(0x6105, 0xF0FF)
        sys_emu.state.delay_timer = 5
        with self.assertRaises(DecodeError):
            sys_emu.cpu.run_cycles(10)
        self.assertEqual(sys_emu.cpu.cycle_count, 1)
        with self.assertRaises(HaltError):
            sys_emu.cpu.run_cycles(10)

    def test_message_names_word_and_pc(self):
        err = DecodeError(0xF0FF, 0x20A)
        self.assertIn("0xf0ff", str(err))
        self.assertIn("0x20a", str(err))

    def test_reset_clears_halt(self):
        sys_emu = make_system(0xF0FF)
        with self.assertRaises(DecodeError):
            sys_emu.cpu.step()
        sys_emu.reset()
        self.assertFalse(sys_emu.halted)
        self.assertIsNone(sys_emu.cpu.fault)


# =========================================================================
#  Engine wiring
# =========================================================================

class TestEngine(unittest.TestCase):

    def test_trace_callback(self):
        sys_emu = make_system(0x6001, 0x6102)
        seen = []
        sys_emu.cpu.on_trace = lambda pc, word: seen.append((pc, word))
        run_steps(sys_emu, 2)
        self.assertEqual(seen, [(0x200, 0x6001), (0x202, 0x6102)])

    def test_engine_over_explicit_state(self):
        state = MachineState()
        state.load_program(words(0x6A07))
        cpu = Chip8(state, Framebuffer(), Keypad(), Buzzer(),
                    rng=random.Random(0))
        cpu.step()
        self.assertEqual(state.v[0xA], 7)

    def test_dump_regs(self):
        sys_emu = make_system(0x6A07)
        sys_emu.cpu.step()
        text = sys_emu.cpu.dump_regs()
        self.assertIn("VA = 0x07", text)
        self.assertIn("PC = 0x0202", text)
        self.assertIn("running", text)


if __name__ == "__main__":
    unittest.main()
