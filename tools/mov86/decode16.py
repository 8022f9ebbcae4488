"""
decode16.py - 8086 MOV Instruction Decoder

Table-driven decoder for the data-movement subset of the 8086 instruction
set: register/memory to/from register, immediate to register, immediate to
register/memory, accumulator to/from memory and segment register moves.
Handles all four ModR/M addressing modes, including the mod=00 r/m=110
direct address form.

Part of the mov86 project
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Iterator, Optional

from decode_errors import (TruncatedInstruction, UnsupportedAddressingMode,
                           UnsupportedOpcode)

log = logging.getLogger(__name__)

# ─── Register and effective-address tables ───────────────────────

REG8_NAMES  = ['al', 'cl', 'dl', 'bl', 'ah', 'ch', 'dh', 'bh']
REG16_NAMES = ['ax', 'cx', 'dx', 'bx', 'sp', 'bp', 'si', 'di']
SREG_NAMES  = ['es', 'cs', 'ss', 'ds']

# 16-bit ModR/M effective address components, indexed by r/m
EA_BASES = [
    ('bx', 'si'), ('bx', 'di'), ('bp', 'si'), ('bp', 'di'),
    ('si', None),  ('di', None),  ('bp', None),  ('bx', None),
]
# With mod=00 this r/m value is [disp16], not [bp]
RM_DIRECT = 0b110

D_BIT = 0b10
W_BIT = 0b01


def register_name(reg: int, wide: bool) -> str:
    """Register mnemonic for a 3-bit reg field and width flag."""
    return (REG16_NAMES if wide else REG8_NAMES)[reg & 7]


def ea_expression(rm: int) -> str:
    """Base/index expression for an r/m field, e.g. 'bx + si'."""
    base, index = EA_BASES[rm & 7]
    return f'{base} + {index}' if index else base


# ─── Operand types ───────────────────────────────────────────────

class OpType(Enum):
    NONE = auto()
    REG8 = auto()      # 8-bit register (AL, CL, DL, BL, AH, CH, DH, BH)
    REG16 = auto()     # 16-bit register (AX, CX, DX, BX, SP, BP, SI, DI)
    SREG = auto()      # Segment register (ES, CS, SS, DS)
    MEM = auto()       # Memory operand [base+index+disp]
    DIRECT = auto()    # Absolute address [addr16]
    IMM8 = auto()      # 8-bit immediate, sign-extended
    IMM16 = auto()     # 16-bit immediate


class AddressingMode(IntEnum):
    """ModR/M mod field."""
    NO_DISP = 0
    DISP8 = 1
    DISP16 = 2
    REGISTER = 3


class OpcodeClass(Enum):
    REG_MEM_TO_FROM_REG = auto()    # 100010dw
    IMM_TO_REG = auto()             # 1011wrrr
    IMM_TO_REG_MEM = auto()         # 1100011w
    MEM_TO_ACC = auto()             # 1010000w
    ACC_TO_MEM = auto()             # 1010001w
    SREG_TO_FROM_REG_MEM = auto()   # 100011d0


@dataclass
class Operand:
    type: OpType = OpType.NONE
    reg: int = 0           # Register index
    base: str = ''         # Effective address expression (MEM only)
    disp: int = 0          # Displacement, absolute address or immediate value
    size: int = 0          # Operand size in bytes (1 or 2)

    @property
    def is_memory(self) -> bool:
        return self.type in (OpType.MEM, OpType.DIRECT)


# ─── Instruction representation ──────────────────────────────────

@dataclass
class Instruction:
    offset: int = 0         # File offset of this instruction
    length: int = 0         # Total instruction length in bytes
    raw: bytes = b''        # Raw instruction bytes
    opclass: Optional[OpcodeClass] = None

    mnemonic: str = ''      # Instruction mnemonic
    op1: Optional[Operand] = None   # Destination
    op2: Optional[Operand] = None   # Source
    explicit_size: bool = False     # Source needs BYTE/WORD to be unambiguous


# ─── Opcode classification ───────────────────────────────────────

# (mask, value, family); first match wins
OPCODE_TABLE = [
    (0b11111100, 0b10001000, OpcodeClass.REG_MEM_TO_FROM_REG),
    (0b11110000, 0b10110000, OpcodeClass.IMM_TO_REG),
    (0b11111110, 0b11000110, OpcodeClass.IMM_TO_REG_MEM),
    (0b11111110, 0b10100000, OpcodeClass.MEM_TO_ACC),
    (0b11111110, 0b10100010, OpcodeClass.ACC_TO_MEM),
    (0b11111101, 0b10001100, OpcodeClass.SREG_TO_FROM_REG_MEM),
]


def classify(opcode: int) -> Optional[OpcodeClass]:
    """Return the MOV family of a first byte, or None if unsupported."""
    for mask, value, opclass in OPCODE_TABLE:
        if opcode & mask == value:
            return opclass
    return None


# ─── Byte cursor ─────────────────────────────────────────────────

class EndOfStream(Exception):
    """A read asked for more bytes than the buffer has left."""

    def __init__(self, requested: int, available: int):
        super().__init__(f'need {requested} byte(s), {available} left')
        self.requested = requested
        self.available = available


class ByteCursor:
    """Forward-only reader over an in-memory buffer."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def has_more(self) -> bool:
        return self.pos < len(self.data)

    def peek_byte(self) -> int:
        if not self.has_more():
            raise EndOfStream(1, 0)
        return self.data[self.pos]

    def next_byte(self) -> int:
        b = self.peek_byte()
        self.pos += 1
        return b

    def read_value(self, width: int, signed: bool = False) -> int:
        """Read a 1- or 2-byte little-endian value.

        Nothing is consumed unless all `width` bytes are present.
        """
        if self.remaining < width:
            raise EndOfStream(width, self.remaining)
        raw = bytes(self.next_byte() for _ in range(width))
        return int.from_bytes(raw, 'little', signed=signed)


# ─── Decoder ─────────────────────────────────────────────────────

class Decoder:
    """8086 MOV decoder over a byte buffer."""

    def __init__(self, data: bytes, base_offset: int = 0):
        self.cursor = ByteCursor(data)
        self.base = base_offset
        self._handlers = {
            OpcodeClass.REG_MEM_TO_FROM_REG: self._mov_reg_mem,
            OpcodeClass.IMM_TO_REG: self._mov_imm_reg,
            OpcodeClass.IMM_TO_REG_MEM: self._mov_imm_rm,
            OpcodeClass.MEM_TO_ACC: self._mov_acc,
            OpcodeClass.ACC_TO_MEM: self._mov_acc,
            OpcodeClass.SREG_TO_FROM_REG_MEM: self._mov_sreg,
        }

    @property
    def pos(self) -> int:
        return self.cursor.pos

    def _u8(self) -> int:
        return self.cursor.read_value(1)

    def _s8(self) -> int:
        return self.cursor.read_value(1, signed=True)

    def _u16(self) -> int:
        return self.cursor.read_value(2)

    def _s16(self) -> int:
        return self.cursor.read_value(2, signed=True)

    def _immediate(self, wide: bool) -> Operand:
        if wide:
            return Operand(type=OpType.IMM16, disp=self._s16(), size=2)
        return Operand(type=OpType.IMM8, disp=self._s8(), size=1)

    def _read_modrm(self) -> tuple:
        """Read the ModR/M byte. Returns (modrm, mode, reg, rm)."""
        modrm = self._u8()
        return modrm, AddressingMode(modrm >> 6), (modrm >> 3) & 7, modrm & 7

    def _rm_operand(self, mod: AddressingMode, rm: int, wide: bool,
                    trailing: int = 0) -> Operand:
        """Decode the r/m operand.

        `trailing` is the number of immediate bytes that follow the
        displacement; the whole remainder of the encoding is checked
        before anything is read.
        """
        size = 2 if wide else 1
        if mod == AddressingMode.REGISTER:
            disp_len = 0
        elif mod == AddressingMode.NO_DISP:
            disp_len = 2 if rm == RM_DIRECT else 0
        else:
            disp_len = int(mod)     # DISP8 -> 1, DISP16 -> 2
        if self.cursor.remaining < disp_len + trailing:
            raise EndOfStream(disp_len + trailing, self.cursor.remaining)

        if mod == AddressingMode.REGISTER:
            return Operand(type=OpType.REG16 if wide else OpType.REG8,
                           reg=rm, size=size)
        elif mod == AddressingMode.NO_DISP and rm == RM_DIRECT:
            # Special: [disp16]
            return Operand(type=OpType.DIRECT, disp=self._u16(), size=size)

        disp = 0
        if mod == AddressingMode.DISP8:
            disp = self._s8()
        elif mod == AddressingMode.DISP16:
            disp = self._s16()
        return Operand(type=OpType.MEM, base=ea_expression(rm),
                       disp=disp, size=size)

    def _decode_modrm(self, wide: bool) -> tuple:
        """Decode ModR/M byte. Returns (reg_operand, rm_operand, mode)."""
        _, mod, reg, rm = self._read_modrm()
        reg_op = Operand(type=OpType.REG16 if wide else OpType.REG8,
                         reg=reg, size=2 if wide else 1)
        return reg_op, self._rm_operand(mod, rm, wide), mod

    # ─── Family handlers ───

    def _mov_reg_mem(self, inst: Instruction, opcode: int):
        reg, rm, _ = self._decode_modrm(bool(opcode & W_BIT))
        if opcode & D_BIT:
            inst.op1, inst.op2 = reg, rm
        else:
            inst.op1, inst.op2 = rm, reg

    def _mov_imm_reg(self, inst: Instruction, opcode: int):
        wide = bool(opcode & 0b1000)
        inst.op1 = Operand(type=OpType.REG16 if wide else OpType.REG8,
                           reg=opcode & 7, size=2 if wide else 1)
        inst.op2 = self._immediate(wide)

    def _mov_imm_rm(self, inst: Instruction, opcode: int):
        wide = bool(opcode & W_BIT)
        modrm, mod, reg, rm = self._read_modrm()
        if reg != 0:
            # C6/C7 /0 is the only defined form
            raise UnsupportedOpcode(inst.offset, opcode, modrm=modrm)
        if mod == AddressingMode.REGISTER:
            raise UnsupportedAddressingMode(inst.offset, int(mod))
        inst.op1 = self._rm_operand(mod, rm, wide, trailing=2 if wide else 1)
        inst.op2 = self._immediate(wide)
        inst.explicit_size = True

    def _mov_acc(self, inst: Instruction, opcode: int):
        wide = bool(opcode & W_BIT)
        size = 2 if wide else 1
        acc = Operand(type=OpType.REG16 if wide else OpType.REG8, reg=0, size=size)
        mem = Operand(type=OpType.DIRECT, disp=self._u16(), size=size)
        if inst.opclass == OpcodeClass.MEM_TO_ACC:
            inst.op1, inst.op2 = acc, mem
        else:
            inst.op1, inst.op2 = mem, acc

    def _mov_sreg(self, inst: Instruction, opcode: int):
        modrm, mod, reg, rm_field = self._read_modrm()
        if reg & 0b100:
            raise UnsupportedOpcode(inst.offset, opcode, modrm=modrm)
        rm = self._rm_operand(mod, rm_field, wide=True)
        sreg = Operand(type=OpType.SREG, reg=reg, size=2)
        if opcode & D_BIT:
            inst.op1, inst.op2 = sreg, rm
        else:
            inst.op1, inst.op2 = rm, sreg

    # ─── Public API ───

    def decode_one(self) -> Optional[Instruction]:
        """Decode a single instruction at the current position.

        Returns None once the buffer is exhausted. Raises a DecodeError
        subclass for anything that cannot be decoded; the cursor is then
        left wherever the failing read stopped.
        """
        if not self.cursor.has_more():
            return None

        start = self.cursor.pos
        inst = Instruction(offset=self.base + start, mnemonic='mov')

        opcode = self.cursor.next_byte()
        inst.opclass = classify(opcode)
        if inst.opclass is None:
            raise UnsupportedOpcode(inst.offset, opcode)

        try:
            self._handlers[inst.opclass](inst, opcode)
        except EndOfStream as e:
            consumed = self.cursor.pos - start
            raise TruncatedInstruction(
                inst.offset,
                bytes_available=consumed + e.available,
                bytes_required=consumed + e.requested) from None

        inst.length = self.cursor.pos - start
        inst.raw = self.cursor.data[start:self.cursor.pos]
        log.debug('%s at 0x%04X (%d bytes)',
                  inst.opclass.name, inst.offset, inst.length)
        return inst

    def instructions(self) -> Iterator[Instruction]:
        """Yield instructions in order until the buffer is consumed."""
        while True:
            inst = self.decode_one()
            if inst is None:
                return
            yield inst

    def decode_all(self) -> list:
        """Decode the entire data buffer."""
        return list(self.instructions())
