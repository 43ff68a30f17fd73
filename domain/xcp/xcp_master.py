#!/usr/bin/env python3
# coding: utf-8
"""@brief XCP master, driving an OpenBLT bootloader through the XCP programming command subset
"""

from logging import getLogger
from typing import Callable

from domain.common import to_hex_string
from domain.deadline_clock import DeadlineClock
from domain.mcu_addressing import MCULogicalAddress
from domain.xcp.packet_transport import XcpPacketTransport, TransportTarget, ReceiveTimeoutError, XCP_MASTER_TX_MAX_DATA, open_stream_device
from domain.xcp.xcp_commands import (XcpCommand, ProtocolRejectedError, SlaveInfo, ProgrammingSessionInfo, BYTE_ORDER_INTEL,
                                     CommandConnect, CommandDisconnect, CommandSetMta, CommandProgramStart, CommandProgramClear,
                                     CommandProgram, CommandProgramMax, CommandProgramReset)

logger = getLogger(__name__)

XCP_MIN_CTO_PGM = 2     # A PROGRAM command with at least one data byte must fit in one packet

class XcpMaster:
    """@brief Class representing the XCP master side of the communication with a bootloader
    """
    def __init__(self, transport: XcpPacketTransport):
        """@brief Constructor
        @param transport A connected packet transport to the slave
        """
        self.transport = transport
        self.byte_order = BYTE_ORDER_INTEL
        self.slave_info = None
        self.max_cto_pgm = None

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()

    def is_connected(self) -> bool:
        return self.transport.is_connected()

    def execute(self, command: XcpCommand):
        """@brief Request execution of a specific command on the slave
        @param command The command to execute
        @return The outcome of the command (can be None or the instance of an object encapsulating data)
        """
        assert isinstance(command, XcpCommand)  # command provided as argument should implement the XcpCommand interface
        logger.debug('Sending command: ' + str(command))
        try:
            response = self.transport.exchange(command.get_as_buffer(byte_order=self.byte_order), timeout_ms=command.get_reply_timeout())
        except ReceiveTimeoutError:
            if command.is_reply_optional():
                logger.debug(f'No reply to {command}, which is acceptable for this command')
                return None
            raise
        reply_bytes = response.payload  # Copy out of the transport's buffer, the next exchange overwrites it
        logger.debug('Response buffer: ' + to_hex_string(reply_bytes))
        outcome = command.parse_reply(reply_bytes, byte_order=self.byte_order)
        if outcome is not None:
            logger.debug('parse_reply outcome: ' + str(outcome))
        return outcome

    def connect(self) -> SlaveInfo:
        """@brief Open an XCP session with the slave
        @return The properties advertised by the slave

        @note The slave's byte order is used for all subsequent commands
        """
        slave_info = self.execute(CommandConnect())
        if not slave_info.supports_programming():
            logger.warning('Slave does not advertise the programming resource, trying anyway')
        self.slave_info = slave_info
        self.byte_order = slave_info.byte_order
        logger.info(f'Connected to XCP slave: {slave_info}')
        return slave_info

    def start_programming_session(self) -> ProgrammingSessionInfo:
        """@brief Switch the slave to programming mode
        @return The programming session properties advertised by the slave
        """
        session_info = self.execute(CommandProgramStart())
        if session_info.max_cto_pgm < XCP_MIN_CTO_PGM:
            raise ProtocolRejectedError(f'Slave advertised an unusable MAX_CTO_PGM of {session_info.max_cto_pgm}')
        self.max_cto_pgm = min(session_info.max_cto_pgm, XCP_MASTER_TX_MAX_DATA)
        logger.debug(f'Programming session started: {session_info}')
        return session_info

    def clear_memory(self, start_address: MCULogicalAddress, length: int) -> None:
        """@brief Erase a range of the slave's non-volatile memory
        @param start_address The first address to erase
        @param length The number of bytes to erase
        """
        self.execute(CommandSetMta(start_address))
        self.execute(CommandProgramClear(length))

    def program_data(self, start_address: MCULogicalAddress, data: bytes) -> None:
        """@brief Write a block of data into the slave's non-volatile memory
        @param start_address The address where the first byte of @p data is written
        @param data The bytes to write

        @note The block is split into as many PROGRAM_MAX commands as possible, the remaining bytes (if any) are written
              with PROGRAM commands, all of them being sent after a single SET_MTA. The slave auto-increments its
              memory transfer address as it programs data
        """
        if self.max_cto_pgm is None:
            raise RuntimeError('No programming session, invoke start_programming_session() first')
        if len(data) == 0:
            return
        self.execute(CommandSetMta(start_address))
        program_max_size = self.max_cto_pgm - 1
        program_size = self.max_cto_pgm - 2
        offset = 0
        while len(data) - offset >= program_max_size:
            self.execute(CommandProgramMax(data[offset:offset + program_max_size], max_cto_pgm=self.max_cto_pgm))
            offset += program_max_size
        while offset < len(data):
            chunk = data[offset:offset + program_size]
            self.execute(CommandProgram(chunk, max_cto_pgm=self.max_cto_pgm))
            offset += len(chunk)

    def stop_programming_session(self) -> None:
        """@brief Tell the slave that the programming sequence is over (PROGRAM command without data)
        """
        self.execute(CommandProgram(b'', max_cto_pgm=self.max_cto_pgm if self.max_cto_pgm is not None else XCP_MIN_CTO_PGM))

    def reset_and_disconnect(self) -> None:
        """@brief Ask the slave to reset (and thus start the new firmware)

        @note The slave may reset before replying, so a missing reply is not an error
        """
        self.execute(CommandProgramReset())
        self.max_cto_pgm = None

    def disconnect(self) -> None:
        """@brief Close the XCP session, without resetting the slave
        """
        self.execute(CommandDisconnect())
        self.max_cto_pgm = None

    def close(self) -> None:
        """@brief Release the underlying transport
        """
        self.transport.close()

def create_xcp_master_connector(target: TransportTarget, clock: DeadlineClock = None,
                                device_factory: Callable = open_stream_device) -> Callable[[], XcpMaster]:
    """@brief Create a function that opens a new connection to a slave
    @param target The remote peer address
    @param clock The time source used for reply deadlines
    @param device_factory A function taking a pyserial URL and returning an opened pyserial-like device
    @return A function without argument, returning an XcpMaster with its transport connected to @p target
    """
    def _connect() -> XcpMaster:
        transport = XcpPacketTransport(clock=clock, device_factory=device_factory)
        transport.connect(target)
        return XcpMaster(transport=transport)
    _connect.target = target
    return _connect
