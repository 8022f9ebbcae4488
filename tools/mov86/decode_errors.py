"""
decode_errors.py - Decode failures raised by the 8086 MOV decoder

Every failure carries the file offset of the instruction that could not be
decoded. The driver catches DecodeError once and stops; nothing here is
meant to be recovered from mid-stream.

Part of the mov86 project
"""

from typing import Optional


class DecodeError(Exception):
    """Base class for anything that stops the decode loop."""

    def __init__(self, offset: int, message: str):
        super().__init__(message)
        self.offset = offset


class UnsupportedOpcode(DecodeError):
    """First byte (or a required opcode extension) matches no known MOV form."""

    def __init__(self, offset: int, byte: int, modrm: Optional[int] = None):
        if modrm is None:
            message = (f'unsupported opcode 0b{byte >> 2:06b} (byte 0x{byte:02X}) '
                       f'at offset 0x{offset:04X}')
        else:
            # opcode is known, the reg field of ModR/M names an undefined form
            message = (f'unsupported opcode extension /{(modrm >> 3) & 7} '
                       f'(ModR/M byte 0x{modrm:02X}) after opcode 0x{byte:02X} '
                       f'at offset 0x{offset:04X}')
        super().__init__(offset, message)
        self.byte = byte
        self.modrm = modrm


class TruncatedInstruction(DecodeError):
    """Buffer ended before the selected encoding was complete."""

    def __init__(self, offset: int, bytes_available: int, bytes_required: int):
        super().__init__(
            offset,
            f'truncated instruction at offset 0x{offset:04X}: '
            f'{bytes_required} bytes required, {bytes_available} available')
        self.bytes_available = bytes_available
        self.bytes_required = bytes_required


class UnsupportedAddressingMode(DecodeError):
    """Addressing mode the selected family decoder does not implement."""

    def __init__(self, offset: int, mode: int):
        super().__init__(
            offset,
            f'unsupported addressing mode 0b{mode:02b} at offset 0x{offset:04X}')
        self.mode = mode
