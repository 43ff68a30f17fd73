# coding: utf-8
"""@brief Module implementing a fake OpenBLT bootloader, answering XCP packets in memory
"""
import struct
from typing import Dict, List, Optional, Set

from domain.xcp.xcp_commands import (PID_RES, PID_ERR, CommandConnect, CommandDisconnect, CommandSetMta, CommandProgramStart,
                                     CommandProgramClear, CommandProgram, CommandProgramMax, CommandProgramReset)

ERR_CMD_UNKNOWN = 0x20
ERR_SEQUENCE = 0x29
ERR_ACCESS_DENIED = 0x24

class EmulatedXcpSlave:
    """@brief XCP slave emulation, with its flash storage in memory

    An instance is callable and can thus directly be used as a MockStreamDevice response handler.
    """
    def __init__(self, flash_size: int = 0x10000, max_cto: int = 8, max_cto_pgm: int = 8, big_endian: bool = False,
                 replies_to_reset: bool = True, silent_connect_count: int = 0):
        """@brief Constructor
        @param flash_size The size of the emulated flash (starting at address 0)
        @param max_cto The maximum command packet size advertised in reply to CONNECT
        @param max_cto_pgm The maximum command packet size advertised in reply to PROGRAM_START
        @param big_endian Advertise (and use) the Motorola byte order
        @param replies_to_reset Answer PROGRAM_RESET before resetting (OpenBLT may reset without answering)
        @param silent_connect_count Number of CONNECT commands ignored before answering (emulating a target still running its application)
        """
        self.flash = bytearray(b'\x00' * flash_size)
        self.max_cto = max_cto
        self.max_cto_pgm = max_cto_pgm
        self.byte_order = '>' if big_endian else '<'
        self.replies_to_reset = replies_to_reset
        self.silent_connect_count = silent_connect_count
        self.mta = None
        self.connected = False
        self.programming = False
        self.was_reset = False
        self.commands_history: List[int] = []
        self.erased_ranges: List[tuple] = []
        self.rejected_commands: Dict[int, int] = {}  # command code -> XCP error code to reply with
        self.silent_commands: Set[int] = set()

    def __call__(self, request: bytes) -> Optional[bytes]:
        command_id = request[0]
        self.commands_history.append(command_id)
        if command_id in self.silent_commands:
            return None
        if command_id in self.rejected_commands:
            return bytes([PID_ERR, self.rejected_commands[command_id]])
        if command_id == CommandConnect.COMMAND_ID:
            return self._connect()
        if not self.connected:
            return None     # An unconnected slave ignores everything but CONNECT
        if command_id == CommandDisconnect.COMMAND_ID:
            self.connected = False
            self.programming = False
            return bytes([PID_RES])
        if command_id == CommandSetMta.COMMAND_ID:
            self.mta = struct.unpack(self.byte_order + 'I', request[4:8])[0]
            return bytes([PID_RES])
        if command_id == CommandProgramStart.COMMAND_ID:
            self.programming = True
            return bytes([PID_RES, 0x00, 0x00, self.max_cto_pgm, 0x00, 0x00, 0x00])
        if command_id == CommandProgramReset.COMMAND_ID:
            self.was_reset = True
            self.connected = False
            self.programming = False
            return bytes([PID_RES]) if self.replies_to_reset else None
        if not self.programming:
            return bytes([PID_ERR, ERR_SEQUENCE])
        if command_id == CommandProgramClear.COMMAND_ID:
            length = struct.unpack(self.byte_order + 'I', request[4:8])[0]
            return self._erase(length)
        if command_id == CommandProgram.COMMAND_ID:
            length = request[1]
            if length == 0:
                self.programming = False    # End of the programming sequence
                return bytes([PID_RES])
            return self._write(request[2:2 + length])
        if command_id == CommandProgramMax.COMMAND_ID:
            return self._write(request[1:])
        return bytes([PID_ERR, ERR_CMD_UNKNOWN])

    def _connect(self) -> Optional[bytes]:
        if self.silent_connect_count > 0:
            self.silent_connect_count -= 1
            return None
        self.connected = True
        resource_pgm = 0x10
        comm_mode_basic = 0x01 if self.byte_order == '>' else 0x00
        max_dto = struct.pack(self.byte_order + 'H', 8)
        return bytes([PID_RES, resource_pgm, comm_mode_basic, self.max_cto]) + max_dto + b'\x01\x01'

    def _erase(self, length: int) -> bytes:
        if self.mta is None or self.mta + length > len(self.flash):
            return bytes([PID_ERR, ERR_ACCESS_DENIED])
        self.flash[self.mta:self.mta + length] = b'\xff' * length
        self.erased_ranges.append((self.mta, length))
        return bytes([PID_RES])

    def _write(self, data: bytes) -> bytes:
        if self.mta is None or self.mta + len(data) > len(self.flash):
            return bytes([PID_ERR, ERR_ACCESS_DENIED])
        self.flash[self.mta:self.mta + len(data)] = data
        self.mta += len(data)   # Memory transfer address is auto-incremented
        return bytes([PID_RES])
