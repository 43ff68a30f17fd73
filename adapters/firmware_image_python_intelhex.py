# coding: utf-8
"""@brief Module implementing an Intel HEX firmware image source using python intelhex
"""
import io
from logging import getLogger
from typing import Iterator, Optional

import bincopy
from intelhex import IntelHex, IntelHexError

from domain.common import split_data_chunk_to_max_size
from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage, UpdatePlan, ImageInvalidError, ImageIOError, DATA_RECORD_MAX_SIZE
from domain.mcu_addressing import MCULocatedLogicalDataChunk

logger = getLogger(__name__)

IHEX_DATA = 0
IHEX_END_OF_FILE = 1
IHEX_EXTENDED_SEGMENT_ADDRESS = 2
IHEX_EXTENDED_LINEAR_ADDRESS = 4

class PythonIntelHexFirmwareImage(FirmwareImage):
    """@brief Concrete implementation of FirmwareImage reading Intel HEX files"""

    def __init__(self, record_max_size: int = DATA_RECORD_MAX_SIZE):
        """@brief Constructor
        @param record_max_size The maximum size of records returned by next_data_record()
        """
        self.record_max_size = record_max_size
        self.path = None
        self.file = None
        self.intel_hex = None
        self.lines = []
        self._records: Optional[Iterator] = None

    def validate(self, path: str) -> bool:
        try:
            with open(path, mode='rt') as f:
                for line in f:
                    line = line.strip()
                    if line:
                        return line[0] == ':'
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f'Cannot read {path}: {e}')
            return False
        return False

    def open(self, path: str):
        try:
            self.file = open(path, mode='rt')
        except OSError as e:
            raise ImageIOError(f'Could not open firmware file {path}: {e}') from e
        self.path = path

    def parse(self) -> UpdatePlan:
        if self.file is None:
            raise ImageIOError('No firmware file opened')
        self.intel_hex = IntelHex()
        try:
            content = self.file.read()
            self.intel_hex.loadhex(io.StringIO(content))
        except (IntelHexError, ValueError) as e:
            raise ImageInvalidError(f'Invalid Intel HEX file {self.path}: {e}') from e
        except (OSError, UnicodeDecodeError) as e:
            raise ImageIOError(f'Could not read firmware file {self.path}: {e}') from e
        segments = self.intel_hex.segments()
        if len(segments) == 0:
            raise ImageInvalidError(f'Firmware file {self.path} does not contain any data')
        self.lines = content.splitlines()
        self._records = self._iter_records()
        return UpdatePlan(address_low=self.intel_hex.minaddr(),
                          address_high=self.intel_hex.maxaddr() + 1,  # IntelHex.maxaddr() is the last byte, we want the following address
                          total_data_bytes=sum(end - start for (start, end) in segments))

    def _iter_records(self) -> Iterator[MCULocatedLogicalDataChunk]:
        """@brief Walk the data records in file order, splitting the ones that are too large
        @note The whole file has already been checked by IntelHex in parse(), records are decoded using bincopy
        """
        base_address = 0
        for line in self.lines:
            line = line.strip()
            if not line:
                continue
            (record_type, address, _, data) = bincopy.unpack_ihex(line)
            if record_type == IHEX_DATA:
                yield from split_data_chunk_to_max_size(MCULocatedLogicalDataChunk(start_address=base_address + address, content=data),
                                                        self.record_max_size)
            elif record_type == IHEX_EXTENDED_SEGMENT_ADDRESS:
                base_address = int.from_bytes(data, 'big') << 4
            elif record_type == IHEX_EXTENDED_LINEAR_ADDRESS:
                base_address = int.from_bytes(data, 'big') << 16
            elif record_type == IHEX_END_OF_FILE:
                return

    def next_data_record(self) -> Optional[MCULocatedLogicalDataChunk]:
        if self._records is None:
            raise RuntimeError('Firmware image not parsed, invoke parse() first')
        return next(self._records, None)

    def close(self):
        if self.file is not None:
            self.file.close()
            self.file = None
        self._records = None
        self.lines = []
