# coding: utf-8
"""@brief Module declaring the interface to which must comply all concrete implementations of firmware image sources
"""
import abc
from typing import Optional

from domain.mcu_addressing import MCULocatedLogicalDataChunk, MCULogicalAddress, MCULogicalAddressRange

DATA_RECORD_MAX_SIZE = 64   # Maximum number of bytes in one data record returned by next_data_record()

class ImageError(Exception):
    pass

class ImageInvalidError(ImageError):
    pass

class ImageIOError(ImageError):
    pass

class UpdatePlan:
    """@brief Summary of a parsed firmware image (read-only)
    """
    def __init__(self, address_low: MCULogicalAddress, address_high: MCULogicalAddress, total_data_bytes: int):
        """@brief Constructor
        @param address_low The lowest address containing data in the image
        @param address_high The address following the highest byte of data in the image (thus address_high is excluded)
        @param total_data_bytes The number of data bytes in the image (gaps between segments are not counted)
        """
        if address_low > address_high:
            raise ValueError(f'Invalid image bounds: low address 0x{address_low:08x} above high address 0x{address_high:08x}')
        self._address_low = MCULogicalAddress(address_low)
        self._address_high = MCULogicalAddress(address_high)
        self._total_data_bytes = total_data_bytes

    @property
    def address_low(self) -> MCULogicalAddress:
        return self._address_low

    @property
    def address_high(self) -> MCULogicalAddress:
        return self._address_high

    @property
    def total_data_bytes(self) -> int:
        return self._total_data_bytes

    def get_erase_range(self) -> MCULogicalAddressRange:
        """@brief Get the memory range to erase before programming this image
        @return The range bounding all data in the image
        """
        return MCULogicalAddressRange(start_address=self._address_low, end_address=self._address_high)

    def __str__(self):
        return f'UpdatePlan({self._total_data_bytes} bytes in [0x{self._address_low:08x},0x{self._address_high:08x}[)'

class FirmwareImage(metaclass=abc.ABCMeta):
    """@brief Interface to which must comply all concrete implementations of firmware image sources

    Expected call sequence is validate(), open(), parse(), then next_data_record() until it returns None, and finally close()
    """

    @abc.abstractmethod
    def validate(self, path: str) -> bool:
        """@brief Check that a file looks like a firmware image this source can read

        @param path The firmware filename
        @return True if the file is readable and correctly formatted
        """
        raise NotImplementedError

    @abc.abstractmethod
    def open(self, path: str):
        """@brief Open a firmware image file

        @param path The firmware filename

        @warning Raises ImageIOError if the file cannot be opened
        """
        raise NotImplementedError

    @abc.abstractmethod
    def parse(self) -> UpdatePlan:
        """@brief Read the whole image and compute its bounds

        @return The update plan for this image

        @warning Raises ImageInvalidError if the file content is not a valid (non-empty) firmware image
        """
        raise NotImplementedError

    @abc.abstractmethod
    def next_data_record(self) -> Optional[MCULocatedLogicalDataChunk]:
        """@brief Get the next data record of the image (in the order records appear in the file)

        @return A data chunk of at most DATA_RECORD_MAX_SIZE bytes, or None when all data has been returned
        """
        raise NotImplementedError

    @abc.abstractmethod
    def close(self):
        """@brief Release the image file

        @note Calling close() more than once has no effect
        """
        raise NotImplementedError

    @classmethod
    def __subclasshook__(cls, subclass):
        if cls is not FirmwareImage:
            return NotImplemented
        return (
            hasattr(subclass, "validate")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.validate
            )
            and hasattr(subclass, "open")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.open
            )
            and hasattr(subclass, "parse")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.parse
            )
            and hasattr(subclass, "next_data_record")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.next_data_record
            )
            and hasattr(subclass, "close")
            and callable(  # pylint: disable=consider-using-ternary
                subclass.close
            )
            or NotImplemented
        )
