#!/usr/bin/env python3
# coding: utf-8
"""@file MCU addressing-related representation
"""

class MCULogicalAddress(int):
    """@brief Class representing a logical address in the target's linear 32-bit address space
    """

    def __str__(self):
        return f'0x{int(self):08x}'


class MCULogicalAddressRange:
    """@brief Class representing an address range in the MCU adress space
    """
    def __init__(self, start_address: MCULogicalAddress, end_address: MCULogicalAddress):
        """@brief Constructor
        @param start_address The address of the first byte in the range
        @param end_address The address of the byte after the last byte included in the range (thus end_address is excluded)
        """
        assert(start_address < end_address)
        self.start_address = start_address
        self.end_address = end_address

    def __str__(self):
        return f'MCULogicalAddressRange[0x{self.start_address:08x},0x{self.end_address:08x}['

    def __repr__(self):
        return str(self)

    def get_size(self) -> int:
        """@brief Get the size in bytes of this range
        @return The number of bytes included in this range
        """
        return self.end_address - self.start_address


class MCULocatedLogicalDataChunk:
    """@brief Class representing one MCU chunk of data located at a specific logical location in the MCU address space
    """
    def __init__(self, start_address, content: bytes):
        """@brief Constructor
        @param start_address The starting address for this chunk
        @param content A byte buffer containing the content of this chunk
        """
        if isinstance(start_address, MCULogicalAddress):
            start_address = start_address
        elif isinstance(start_address, int):
            start_address = MCULogicalAddress(start_address)
        else:
            raise TypeError('Unsupported argument type ' + str(type(start_address)))
        self.start_address: MCULogicalAddress = start_address
        self.size = len(content)
        self.content = bytes(content)

    def get_content(self) -> bytes:
        """@brief Get the data chunk's raw bytes
        @return The data chunk bytes
        """
        return self.content

    def __str__(self):
        return f'MCULocatedLogicalDataChunk({self.size} bytes @ 0x{self.start_address:08x})'

    def __repr__(self):
        return str(self)
