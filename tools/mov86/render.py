"""
render.py - NASM-style text for decoded MOV instructions

Output conventions:
    MOV CX, BX                  ; registers upper-case
    MOV AX, [BX + SI - 37]      ; negative displacement as '-' and magnitude
    MOV BP, [5]                 ; direct address, unsigned decimal
    MOV [BX], BYTE 66           ; immediate to memory carries its size

Part of the mov86 project
"""

from typing import TextIO

from decode16 import Instruction, OpType, Operand, SREG_NAMES, register_name

BITS_DIRECTIVE = 'bits 16'

SIZE_NAMES = {1: 'BYTE', 2: 'WORD'}


def _reg(op: Operand) -> str:
    if op.type == OpType.SREG:
        return SREG_NAMES[op.reg].upper()
    return register_name(op.reg, wide=op.type == OpType.REG16).upper()

def _displacement(disp: int) -> str:
    """Offset suffix for a memory expression; empty when zero."""
    if disp < 0:
        return f' - {-disp}'
    elif disp > 0:
        return f' + {disp}'
    return ''

def _mem(op: Operand) -> str:
    if op.type == OpType.DIRECT:
        return f'[{op.disp & 0xFFFF}]'
    return f'[{op.base.upper()}{_displacement(op.disp)}]'

def render_operand(op: Operand, explicit_size: bool = False) -> str:
    """Text for one operand. `explicit_size` prefixes immediates with BYTE/WORD."""
    if op.type in (OpType.REG8, OpType.REG16, OpType.SREG):
        return _reg(op)
    elif op.is_memory:
        return _mem(op)
    elif op.type in (OpType.IMM8, OpType.IMM16):
        if explicit_size:
            return f'{SIZE_NAMES[op.size]} {op.disp}'
        return str(op.disp)
    raise ValueError(f'cannot render operand of type {op.type.name}')

def render(inst: Instruction) -> str:
    """One assembly line: 'MOV <destination>, <source>'."""
    dst = render_operand(inst.op1)
    src = render_operand(inst.op2, explicit_size=inst.explicit_size)
    return f'{inst.mnemonic.upper()} {dst}, {src}'

def render_annotated(inst: Instruction) -> str:
    """Offset, raw bytes and text, for debug listings."""
    hex_str = ' '.join(f'{b:02X}' for b in inst.raw)
    return f'{inst.offset:06X}  {hex_str:<18s} {render(inst)}'


class Listing:
    """Writes a disassembly listing to a text stream."""

    def __init__(self, out: TextIO, source_name: str):
        self.out = out
        self.source_name = source_name
        self.count = 0

    def _emit(self, line: str):
        self.out.write(line + '\n')

    def header(self):
        """Comment naming the input, then the 16-bit directive."""
        self._emit(f'; {self.source_name}')
        self._emit(BITS_DIRECTIVE)

    def instruction(self, inst: Instruction) -> str:
        line = render(inst)
        self._emit(line)
        self.count += 1
        return line
