#!/usr/bin/env python3
# coding: utf-8
"""@brief Encoders/decoders for the XCP commands used to reprogram an OpenBLT bootloader

See ASAM MCD-1 XCP, Part 2 (Protocol Layer Specification) for the command set.
"""

import abc
import struct
from logging import getLogger

from domain.mcu_addressing import MCULogicalAddress

logger = getLogger(__name__)

PID_RES = 0xff  # Positive response packet identifier
PID_ERR = 0xfe  # Error packet identifier

BYTE_ORDER_INTEL = '<'
BYTE_ORDER_MOTOROLA = '>'

# Reply timeouts (in ms), named after the timeouts of the XCP standard
XCP_MASTER_TIMEOUT_T1 = 1000    # Standard command timeout
XCP_MASTER_TIMEOUT_T3 = 2000    # Program start timeout
XCP_MASTER_TIMEOUT_T4 = 10000   # Erase timeout
XCP_MASTER_TIMEOUT_T5 = 1000    # Write and reset timeout
XCP_MASTER_TIMEOUT_T6 = 50      # Connect timeout (kept short, as the connect command is repeated until the slave answers)

XCP_ERRORS = {
    0x00: ('ERR_CMD_SYNCH', 'Command processor synchronization'),
    0x10: ('ERR_CMD_BUSY', 'Command was not executed'),
    0x11: ('ERR_DAQ_ACTIVE', 'Command rejected because DAQ is running'),
    0x12: ('ERR_PGM_ACTIVE', 'Command rejected because PGM is running'),
    0x20: ('ERR_CMD_UNKNOWN', 'Unknown command or not implemented optional command'),
    0x21: ('ERR_CMD_SYNTAX', 'Command syntax invalid'),
    0x22: ('ERR_OUT_OF_RANGE', 'Command syntax valid but command parameter(s) out of range'),
    0x23: ('ERR_WRITE_PROTECTED', 'The memory location is write protected'),
    0x24: ('ERR_ACCESS_DENIED', 'The memory location is not accessible'),
    0x25: ('ERR_ACCESS_LOCKED', 'Access denied, Seed & Key are required'),
    0x26: ('ERR_PAGE_NOT_VALID', 'Selected page is not available'),
    0x27: ('ERR_MODE_NOT_VALID', 'Selected page mode is not available'),
    0x28: ('ERR_SEGMENT_NOT_VALID', 'Selected segment is not valid'),
    0x29: ('ERR_SEQUENCE', 'Sequence error'),
    0x2a: ('ERR_DAQ_CONFIG', 'DAQ configuration is not valid'),
    0x30: ('ERR_MEMORY_OVERFLOW', 'Memory overflow error'),
    0x31: ('ERR_GENERIC', 'Generic error'),
    0x32: ('ERR_VERIFY', 'The slave internal program verify routine detects an error'),
}

class ProtocolRejectedError(Exception):
    """@brief The slave answered, but did not accept the command (or its answer makes no sense)
    """
    def __init__(self, message: str, command=None, error_code: int = None):
        if error_code is not None:
            (error_name, error_description) = XCP_ERRORS.get(error_code, ('ERR_UNKNOWN', 'Unknown error code'))
            message += f' [{error_name} (0x{error_code:02x}): {error_description}]'
        self.command = command
        self.error_code = error_code
        super().__init__(message)

class CommandArgumentError(Exception):
    pass

class SlaveInfo:
    """@brief Slave properties, as reported in the reply to CONNECT
    """
    def __init__(self, resource: int, comm_mode_basic: int, max_cto: int, max_dto: int, protocol_version: int, transport_version: int):
        self.resource = resource
        self.comm_mode_basic = comm_mode_basic
        self.max_cto = max_cto
        self.max_dto = max_dto
        self.protocol_version = protocol_version
        self.transport_version = transport_version

    @property
    def byte_order(self) -> str:
        return BYTE_ORDER_MOTOROLA if self.comm_mode_basic & 0x01 else BYTE_ORDER_INTEL

    def supports_programming(self) -> bool:
        return (self.resource & 0x10) != 0  # PGM resource bit

    def __str__(self) -> str:
        byte_order = 'Motorola' if self.byte_order == BYTE_ORDER_MOTOROLA else 'Intel'
        return f'SlaveInfo(resource=0x{self.resource:02x}, {byte_order} byte order, MAX_CTO={self.max_cto}, MAX_DTO={self.max_dto})'

class ProgrammingSessionInfo:
    """@brief Programming session properties, as reported in the reply to PROGRAM_START
    """
    def __init__(self, comm_mode_pgm: int, max_cto_pgm: int, max_bs_pgm: int, min_st_pgm: int, queue_size_pgm: int):
        self.comm_mode_pgm = comm_mode_pgm
        self.max_cto_pgm = max_cto_pgm
        self.max_bs_pgm = max_bs_pgm
        self.min_st_pgm = min_st_pgm
        self.queue_size_pgm = queue_size_pgm

    def __str__(self) -> str:
        return f'ProgrammingSessionInfo(MAX_CTO_PGM={self.max_cto_pgm}, MAX_BS_PGM={self.max_bs_pgm})'

class XcpCommand(metaclass=abc.ABCMeta):
    """@brief Interface to which must comply all concrete implementations of XCP command encoders/decoders
    An XCP command packet contains
    * a 1-byte command code (and its human-readable transcription)
    * arguments to this command, multi-byte values being encoded in the slave's byte order
    get_as_buffer() will return the packet to send to the slave
    parse_reply() checks the slave's response packet and extracts any information it contains
    """
    COMMAND_ID = None
    COMMAND_NAME = '(unknown)'

    def __init__(self, command_id: int):
        self.command_id = command_id

    @abc.abstractmethod
    def get_arguments_payload(self, byte_order: str) -> bytes:
        """@brief Get the arguments for this command
        @param byte_order The slave's byte order (BYTE_ORDER_INTEL or BYTE_ORDER_MOTOROLA)
        @return The arguments formatted as a byte buffer
        """
        raise NotImplementedError

    @abc.abstractmethod
    def get_reply_timeout(self) -> int:
        """@brief Get the amount of time we should wait for a reply to this command
        @return The amount of time (timeout) in ms
        """
        raise NotImplementedError

    def get_expected_reply_sz(self) -> int:
        """@brief Get the minimum size of a positive reply to this command
        @return The number of bytes we are expecting as a reply (including the packet identifier)
        """
        return 1

    def is_reply_optional(self) -> bool:
        """@brief Can the slave legitimately stay silent after this command?
        """
        return False

    def check_reply(self, reply_payload: bytes) -> None:
        """@brief Make sure a reply is a positive response of the expected size

        @warning Raises a ProtocolRejectedError otherwise
        """
        if len(reply_payload) < 1:
            raise ProtocolRejectedError(f'Empty reply to {self}', command=self)
        if reply_payload[0] == PID_ERR:
            error_code = reply_payload[1] if len(reply_payload) > 1 else None
            raise ProtocolRejectedError(f'Slave rejected {self}', command=self, error_code=error_code)
        if reply_payload[0] != PID_RES:
            raise ProtocolRejectedError(f'Unexpected packet identifier 0x{reply_payload[0]:02x} in reply to {self}', command=self)
        if len(reply_payload) < self.get_expected_reply_sz():
            raise ProtocolRejectedError(f'Short reply to {self}: got {len(reply_payload)} bytes, expected {self.get_expected_reply_sz()}', command=self)

    def parse_reply(self, reply_payload: bytes, byte_order: str):
        """@brief Parse the reply from the slave
        @param reply_payload The response packet returned by the slave
        @param byte_order The slave's byte order
        @return An object containing our interpretation of the reply_payload (None for commands without any)
        """
        self.check_reply(reply_payload)
        return None

    def get_as_buffer(self, byte_order: str = BYTE_ORDER_INTEL) -> bytes:
        """@brief Represent this command as a binary buffer
        @return The XCP packet to send to the slave (includes command code+arguments)
        """
        return struct.pack('B', self.command_id) + self.get_arguments_payload(byte_order)

    def __str__(self) -> str:
        """@brief Generic formatter of a command as a string"""
        return self.COMMAND_NAME

class CommandConnect(XcpCommand):
    COMMAND_ID = 0xff
    COMMAND_NAME = 'CONNECT'

    def __init__(self, mode: int = 0, **kwargs):
        """@brief Constructor
        @param mode The connection mode (0 for normal mode)
        """
        if mode < 0x00 or mode > 0xff:
            raise CommandArgumentError(f'Invalid connect mode {mode}')
        self.mode = mode
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return struct.pack('B', self.mode)

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T6

    def get_expected_reply_sz(self) -> int:
        return 8

    def parse_reply(self, reply_payload: bytes, byte_order: str) -> SlaveInfo:
        self.check_reply(reply_payload)
        (resource, comm_mode_basic, max_cto) = struct.unpack('BBB', reply_payload[1:4])
        # The slave tells us its byte order in this very reply, MAX_DTO is encoded with it
        slave_byte_order = BYTE_ORDER_MOTOROLA if comm_mode_basic & 0x01 else BYTE_ORDER_INTEL
        max_dto = struct.unpack(slave_byte_order + 'H', reply_payload[4:6])[0]
        (protocol_version, transport_version) = struct.unpack('BB', reply_payload[6:8])
        return SlaveInfo(resource=resource, comm_mode_basic=comm_mode_basic, max_cto=max_cto, max_dto=max_dto,
                         protocol_version=protocol_version, transport_version=transport_version)

class CommandDisconnect(XcpCommand):
    COMMAND_ID = 0xfe
    COMMAND_NAME = 'DISCONNECT'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return b''

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T1

class CommandSetMta(XcpCommand):
    COMMAND_ID = 0xf6
    COMMAND_NAME = 'SET_MTA'

    def __init__(self, address: MCULogicalAddress, extension: int = 0, **kwargs):
        """@brief Constructor
        @param address The new memory transfer address
        @param extension The address extension
        """
        if address < 0 or address > 0xffffffff:
            raise CommandArgumentError(f'Invalid address 0x{address:x}')
        if extension < 0x00 or extension > 0xff:
            raise CommandArgumentError(f'Invalid address extension 0x{extension:x}')
        self.address = address
        self.extension = extension
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return b'\x00\x00' + struct.pack('B', self.extension) + struct.pack(byte_order + 'I', self.address)

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T1

    def __str__(self) -> str:
        return super().__str__() + f'(0x{self.address:08x})'

class CommandProgramStart(XcpCommand):
    COMMAND_ID = 0xd2
    COMMAND_NAME = 'PROGRAM_START'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return b''

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T3

    def get_expected_reply_sz(self) -> int:
        return 7

    def parse_reply(self, reply_payload: bytes, byte_order: str) -> ProgrammingSessionInfo:
        self.check_reply(reply_payload)
        (comm_mode_pgm, max_cto_pgm, max_bs_pgm, min_st_pgm, queue_size_pgm) = struct.unpack('BBBBB', reply_payload[2:7])
        return ProgrammingSessionInfo(comm_mode_pgm=comm_mode_pgm, max_cto_pgm=max_cto_pgm, max_bs_pgm=max_bs_pgm,
                                      min_st_pgm=min_st_pgm, queue_size_pgm=queue_size_pgm)

class CommandProgramClear(XcpCommand):
    COMMAND_ID = 0xd1
    COMMAND_NAME = 'PROGRAM_CLEAR'

    def __init__(self, length: int, **kwargs):
        """@brief Constructor
        @param length The number of bytes to erase, starting at the current memory transfer address (see CommandSetMta)
        """
        if length < 0 or length > 0xffffffff:
            raise CommandArgumentError(f'Invalid clear range length {length}')
        self.length = length
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        absolute_access_mode = b'\x00'
        return absolute_access_mode + b'\x00\x00' + struct.pack(byte_order + 'I', self.length)

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T4

    def __str__(self) -> str:
        return super().__str__() + f'({self.length} bytes)'

class CommandProgram(XcpCommand):
    COMMAND_ID = 0xd0
    COMMAND_NAME = 'PROGRAM'

    def __init__(self, data: bytes, max_cto_pgm: int, **kwargs):
        """@brief Constructor
        @param data The bytes to program at the current memory transfer address (empty to end the programming sequence)
        @param max_cto_pgm The maximum command packet size accepted by the slave in programming mode
        """
        if len(data) > max_cto_pgm - 2:
            raise CommandArgumentError(f'Too many bytes ({len(data)}) for one {self.COMMAND_NAME} command (MAX_CTO_PGM is {max_cto_pgm})')
        self.data = bytes(data)
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return struct.pack('B', len(self.data)) + self.data

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T5

    def __str__(self) -> str:
        return super().__str__() + f'({len(self.data)} bytes)'

class CommandProgramMax(XcpCommand):
    COMMAND_ID = 0xc9
    COMMAND_NAME = 'PROGRAM_MAX'

    def __init__(self, data: bytes, max_cto_pgm: int, **kwargs):
        """@brief Constructor
        @param data Exactly MAX_CTO_PGM-1 bytes to program at the current memory transfer address
        @param max_cto_pgm The maximum command packet size accepted by the slave in programming mode
        """
        if len(data) != max_cto_pgm - 1:
            raise CommandArgumentError(f'{self.COMMAND_NAME} requires exactly {max_cto_pgm - 1} bytes, got {len(data)}')
        self.data = bytes(data)
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return self.data

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T5

    def __str__(self) -> str:
        return super().__str__() + f'({len(self.data)} bytes)'

class CommandProgramReset(XcpCommand):
    COMMAND_ID = 0xcf
    COMMAND_NAME = 'PROGRAM_RESET'

    def __init__(self, **kwargs):
        super().__init__(command_id=self.COMMAND_ID, **kwargs)

    def get_arguments_payload(self, byte_order: str) -> bytes:
        return b''

    def get_reply_timeout(self) -> int:
        return XCP_MASTER_TIMEOUT_T5

    def is_reply_optional(self) -> bool:
        return True     # The slave may reset before it had a chance to answer
