"""
CHIP-8 Assembler
=================
Translates assembly text in the conventional CHIP-8 mnemonic syntax into
a program image.

Supports:
  - Labels (terminated with ':')
  - All 35 base instructions
  - Immediate literals (decimal, hex with 0x prefix, binary with 0b)
  - Comments (';' to end of line)
  - .org, .db, .dw directives

Usage:
  from asm import assemble
  image = assemble(source_text)          # assembled for 0x200
"""

from __future__ import annotations

from chip8 import PROGRAM_BASE

# ---------------------------------------------------------------------------
#  Fixed encodings
# ---------------------------------------------------------------------------

# Two-register ALU ops (group 8): mnemonic → low nibble
ALU_SUB = {
    "or": 0x1, "and": 0x2, "xor": 0x3, "sub": 0x5,
    "shr": 0x6, "subn": 0x7, "shl": 0xE,
}

# LD forms with a special left or right operand (group F): → low byte
LD_FROM_SPECIAL = {"dt": 0x07, "k": 0x0A, "[i]": 0x65}   # ld vx, <special>
LD_TO_SPECIAL   = {"dt": 0x15, "st": 0x18, "f": 0x29, "b": 0x33, "[i]": 0x55}

# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def _is_reg(tok: str) -> bool:
    tok = tok.strip().lower()
    return (len(tok) == 2 and tok[0] == "v"
            and tok[1] in "0123456789abcdef")

def _parse_reg(tok: str) -> int:
    """Parse 'V0'-'VF' (either case). Returns register index."""
    if not _is_reg(tok):
        raise ValueError(f"Invalid register: {tok!r}")
    return int(tok.strip()[1], 16)

def _parse_imm(tok: str) -> int:
    """Parse an immediate value (decimal, 0x hex or 0b binary)."""
    return int(tok.strip(), 0)

def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]

def _split_mnemonic(text: str) -> tuple[str, str]:
    """Split 'MNEM operands' → (mnem, operands_str)."""
    parts = text.split(None, 1)
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]

# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def assemble(source: str, base_addr: int = PROGRAM_BASE,
             listing: bool = False) -> bytearray:
    """
    Two-pass assembler.
    Pass 1: collect labels, compute sizes.
    Pass 2: emit bytes with resolved addresses.
    If listing=True, print an address/hex/source listing to stdout.
    """
    cleaned: list[tuple[int, str]] = []
    for i, raw in enumerate(source.split("\n"), 1):
        stripped = raw.split(";", 1)[0].strip()
        if stripped:
            cleaned.append((i, stripped))

    # ---- Pass 1: label collection and size computation ----
    labels: dict[str, int] = {}
    sizes: list[tuple[int, str, int]] = []  # (line_no, text, size_bytes)
    pc = base_addr

    for lineno, text in cleaned:
        # A label may share its line with an instruction: "loop: jp loop"
        if ":" in text:
            lbl, text = text.split(":", 1)
            lbl = lbl.strip()
            text = text.strip()
            if not lbl.isidentifier():
                raise AsmError(lineno, f"Bad label: {lbl!r}")
            if lbl in labels:
                raise AsmError(lineno, f"Duplicate label: {lbl}")
            labels[lbl] = pc
            if not text:
                continue

        lower = text.lower()
        if lower.startswith(".org"):
            try:
                target = _parse_imm(text[4:])
            except ValueError:
                raise AsmError(lineno, f"Bad .org address: {text[4:].strip()!r}")
            if target < pc:
                raise AsmError(lineno, f".org {target:#x} is behind {pc:#x}")
            sizes.append((lineno, text, target - pc))
            pc = target
            continue
        if lower.startswith(".db"):
            n = len(_split_ops(text[3:]))
        elif lower.startswith(".dw"):
            n = 2 * len(_split_ops(text[3:]))
        else:
            n = 2
        sizes.append((lineno, text, n))
        pc += n

    # ---- Pass 2: emit bytes ----
    code = bytearray()
    pc = base_addr
    listing_lines = []  # (addr, hex_bytes, source_text)

    for lineno, text, sz in sizes:
        start_pc = pc
        lower = text.lower()
        try:
            if lower.startswith(".org"):
                emitted = bytearray(sz)     # zero padding
            elif lower.startswith(".db"):
                emitted = bytearray(
                    _resolve(tok, labels) & 0xFF for tok in _split_ops(text[3:]))
            elif lower.startswith(".dw"):
                emitted = bytearray()
                for tok in _split_ops(text[3:]):
                    v = _resolve(tok, labels) & 0xFFFF
                    emitted += bytes((v >> 8, v & 0xFF))
            else:
                word = _encode(text, labels)
                emitted = bytearray((word >> 8, word & 0xFF))
        except (ValueError, IndexError, KeyError) as e:
            raise AsmError(lineno, f"{e} in {text!r}")

        if listing and not lower.startswith(".org"):
            hexstr = " ".join(f"{b:02X}" for b in emitted[:8])
            if len(emitted) > 8:
                hexstr += " ..."
            listing_lines.append((start_pc, hexstr, text))
        code.extend(emitted)
        pc += sz

    if listing:
        addr_labels: dict[int, list[str]] = {}
        for lbl, addr in labels.items():
            addr_labels.setdefault(addr, []).append(lbl)
        for addr, hexstr, src in listing_lines:
            for lbl in addr_labels.pop(addr, []):
                print(f"              {lbl}:")
            print(f"  {addr:03X}  {hexstr:<10s}  {src}")

    return code


def _resolve(tok: str, labels: dict[str, int]) -> int:
    """Resolve a token that is either an immediate or a label reference."""
    tok = tok.strip()
    if tok in labels:
        return labels[tok]
    try:
        return _parse_imm(tok)
    except ValueError:
        raise KeyError(f"Unknown label or bad number: {tok!r}")


def _addr(tok: str, labels: dict[str, int]) -> int:
    v = _resolve(tok, labels)
    if not 0 <= v <= 0xFFF:
        raise ValueError(f"Address {v:#x} out of range")
    return v


def _byte(tok: str, labels: dict[str, int]) -> int:
    v = _resolve(tok, labels)
    if not -0x80 <= v <= 0xFF:
        raise ValueError(f"Byte {v} out of range")
    return v & 0xFF


def _encode(text: str, labels: dict[str, int]) -> int:
    """Encode one instruction line to a 16-bit word."""
    mnem, rest = _split_mnemonic(text)
    m = mnem.lower()
    ops = _split_ops(rest)
    lops = [o.lower() for o in ops]

    if m == "cls":
        return 0x00E0
    if m == "ret":
        return 0x00EE
    if m == "sys":
        return 0x0000 | _addr(ops[0], labels)
    if m == "jp":
        if len(ops) == 2:
            if lops[0] != "v0":
                raise ValueError("indexed jump must use V0")
            return 0xB000 | _addr(ops[1], labels)
        return 0x1000 | _addr(ops[0], labels)
    if m == "call":
        return 0x2000 | _addr(ops[0], labels)

    if m in ("se", "sne"):
        x = _parse_reg(ops[0])
        if _is_reg(ops[1]):
            base = 0x5000 if m == "se" else 0x9000
            return base | (x << 8) | (_parse_reg(ops[1]) << 4)
        base = 0x3000 if m == "se" else 0x4000
        return base | (x << 8) | _byte(ops[1], labels)

    if m == "ld":
        dst, src = lops[0], lops[1]
        if dst == "i":
            return 0xA000 | _addr(ops[1], labels)
        if dst in LD_TO_SPECIAL:
            return 0xF000 | (_parse_reg(ops[1]) << 8) | LD_TO_SPECIAL[dst]
        x = _parse_reg(ops[0])
        if src in LD_FROM_SPECIAL:
            return 0xF000 | (x << 8) | LD_FROM_SPECIAL[src]
        if _is_reg(src):
            return 0x8000 | (x << 8) | (_parse_reg(ops[1]) << 4)
        return 0x6000 | (x << 8) | _byte(ops[1], labels)

    if m == "add":
        if lops[0] == "i":
            return 0xF01E | (_parse_reg(ops[1]) << 8)
        x = _parse_reg(ops[0])
        if _is_reg(ops[1]):
            return 0x8004 | (x << 8) | (_parse_reg(ops[1]) << 4)
        return 0x7000 | (x << 8) | _byte(ops[1], labels)

    if m in ALU_SUB:
        x = _parse_reg(ops[0])
        y = _parse_reg(ops[1]) if len(ops) > 1 else 0
        return 0x8000 | (x << 8) | (y << 4) | ALU_SUB[m]

    if m == "rnd":
        return 0xC000 | (_parse_reg(ops[0]) << 8) | _byte(ops[1], labels)
    if m == "drw":
        n = _resolve(ops[2], labels)
        if not 0 <= n <= 0xF:
            raise ValueError(f"Sprite height {n} out of range")
        return (0xD000 | (_parse_reg(ops[0]) << 8)
                | (_parse_reg(ops[1]) << 4) | n)
    if m == "skp":
        return 0xE09E | (_parse_reg(ops[0]) << 8)
    if m == "sknp":
        return 0xE0A1 | (_parse_reg(ops[0]) << 8)

    raise ValueError(f"Unknown mnemonic: {mnem!r}")
