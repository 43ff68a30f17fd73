# coding: utf-8
"""@brief Module implementing an in-memory firmware image
"""
from typing import Dict, List, Optional

from domain.ext_adapters_interface.firmware_image_interface import FirmwareImage, UpdatePlan, ImageInvalidError, ImageIOError
from domain.mcu_addressing import MCULocatedLogicalDataChunk

class MockFirmwareImage(FirmwareImage):
    """@brief Concrete implementation of FirmwareImage for unit test purposes, serving pre-defined records"""
    def __init__(self, records: List[MCULocatedLogicalDataChunk], plan: UpdatePlan = None):
        """@brief Constructor
        @param records The data records of this image, in file order
        @param plan The update plan returned by parse() (computed from @p records if None)
        """
        self.records = list(records)
        self.plan = plan
        self.is_valid = True
        self.failures: Dict[str, Exception] = {}    # Method name -> exception raised by this method
        self.opened_path = None
        self.close_count = 0
        self._next_record_index = None

    def validate(self, path: str) -> bool:
        return self.is_valid

    def open(self, path: str):
        if 'open' in self.failures:
            raise self.failures['open']
        self.opened_path = path

    def parse(self) -> UpdatePlan:
        if self.opened_path is None:
            raise ImageIOError('Not opened')
        if 'parse' in self.failures:
            raise self.failures['parse']
        if len(self.records) == 0:
            raise ImageInvalidError('Empty image')
        self._next_record_index = 0
        if self.plan is not None:
            return self.plan
        return UpdatePlan(address_low=min(r.start_address for r in self.records),
                          address_high=max(r.start_address + r.size for r in self.records),
                          total_data_bytes=sum(r.size for r in self.records))

    def next_data_record(self) -> Optional[MCULocatedLogicalDataChunk]:
        if self._next_record_index is None:
            raise RuntimeError('Not parsed')
        if self._next_record_index >= len(self.records):
            return None
        record = self.records[self._next_record_index]
        self._next_record_index += 1
        return record

    def close(self):
        self.close_count += 1
