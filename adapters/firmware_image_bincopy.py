# coding: utf-8
"""@brief Module implementing a Motorola S-record firmware image source using python bincopy
"""
from logging import getLogger
from typing import Iterator, Optional

import bincopy

from domain.common import split_data_chunk_to_max_size
from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage, UpdatePlan, ImageInvalidError, ImageIOError, DATA_RECORD_MAX_SIZE
from domain.mcu_addressing import MCULocatedLogicalDataChunk

logger = getLogger(__name__)

SREC_DATA_RECORD_TYPES = ('1', '2', '3')

class BincopyFirmwareImage(FirmwareImage):
    """@brief Concrete implementation of FirmwareImage reading S-record (S19, S28, S37) files"""

    def __init__(self, record_max_size: int = DATA_RECORD_MAX_SIZE):
        """@brief Constructor
        @param record_max_size The maximum size of records returned by next_data_record()
        """
        self.record_max_size = record_max_size
        self.path = None
        self.file = None
        self.bin_file = None
        self.lines = []
        self._records: Optional[Iterator] = None

    def validate(self, path: str) -> bool:
        try:
            with open(path, mode='rt') as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    # The first record of any S-record file is an S-type record with a hex digit record type
                    return len(line) >= 4 and line[0] == 'S' and line[1].isdigit()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f'Cannot read {path}: {e}')
            return False
        return False    # Empty file

    def open(self, path: str):
        try:
            self.file = open(path, mode='rt')
        except OSError as e:
            raise ImageIOError(f'Could not open firmware file {path}: {e}') from e
        self.path = path

    def parse(self) -> UpdatePlan:
        if self.file is None:
            raise ImageIOError('No firmware file opened')
        self.bin_file = bincopy.BinFile()
        try:
            content = self.file.read()
            self.bin_file.add_srec(content)
        except (bincopy.Error, ValueError) as e:
            raise ImageInvalidError(f'Invalid S-record file {self.path}: {e}') from e
        except (OSError, UnicodeDecodeError) as e:
            raise ImageIOError(f'Could not read firmware file {self.path}: {e}') from e
        total_data_bytes = sum(len(segment.data) for segment in self.bin_file.segments)
        if total_data_bytes == 0:
            raise ImageInvalidError(f'Firmware file {self.path} does not contain any data')
        self.lines = content.splitlines()
        self._records = self._iter_records()
        return UpdatePlan(address_low=self.bin_file.minimum_address,
                          address_high=self.bin_file.maximum_address,
                          total_data_bytes=total_data_bytes)

    def _iter_records(self) -> Iterator[MCULocatedLogicalDataChunk]:
        """@brief Walk the data records (S1, S2, S3) in file order, splitting the ones that are too large
        @note The whole file has already been checked by bincopy in parse()
        """
        for line in self.lines:
            line = line.strip()
            if not line:
                continue
            (record_type, address, _, data) = bincopy.unpack_srec(line)
            if record_type in SREC_DATA_RECORD_TYPES:
                yield from split_data_chunk_to_max_size(MCULocatedLogicalDataChunk(start_address=address, content=data),
                                                        self.record_max_size)

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
