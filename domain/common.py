#!/usr/bin/env python3
# coding: utf-8

import sys
from typing import Iterator
from logging import getLogger, StreamHandler, Formatter
from logging import WARNING

from domain.mcu_addressing import MCULogicalAddressRange, MCULocatedLogicalDataChunk

def create_main_logger(name: str, log_level=WARNING, also_log_libs: bool = False, stream=None):
    """@brief Create the main applicative logger and return it
    @param name The name of the logger
    @param log_level The log level over which logs are output
    @param also_log_libs Also configure all python loggers similarly to the main applicative logger
    @param stream The stream logs are written to (defaults to stdout, where the update transcript is expected)
    """
    LOG_FORMAT = "%(asctime)s :: %(levelname)s :: %(name)s: %(message)s"
    if stream is None:
        stream = sys.stdout
    main_logger = getLogger(name=name)
    main_logger.handlers = []
    main_logger.setLevel(log_level)
    stream_handler = StreamHandler(stream)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(Formatter(LOG_FORMAT))
    if also_log_libs:
        root_logger = getLogger()
        root_logger.setLevel(log_level)
        root_logger.addHandler(stream_handler)
    else:  # We do not enable a handler on the main_logger if the root logger is already generating messages to avoid duplicates
        main_logger.addHandler(stream_handler)
    return main_logger

def split_address_range_to_max_size(address_range: MCULogicalAddressRange, max_size: int) -> Iterator[MCULogicalAddressRange]:
    """@brief Split a range of logical addresses into possibly smaller ranges given a max permitted range size
    @param address_range A MCULogicalAddressRange to split if too large
    @param max_size The maximum size (in bytes) of each resulting range
    @return Sequence of MCULogicalAddressRange objects for each consecutive (possibly split) range
    """
    if max_size <= 0:
        raise ValueError(f'Invalid max_size {max_size}')
    while address_range.get_size() > max_size:
        pending_range_start_address = address_range.start_address
        pending_range_end_address = address_range.start_address + max_size
        address_range = MCULogicalAddressRange(start_address=pending_range_end_address, end_address=address_range.end_address)
        yield MCULogicalAddressRange(start_address=pending_range_start_address, end_address=pending_range_end_address)
    if address_range.get_size() > 0:  # There is a remaining range that fits into the max_size
        yield address_range

def split_data_chunk_to_max_size(chunk: MCULocatedLogicalDataChunk, max_size: int) -> Iterator[MCULocatedLogicalDataChunk]:
    """@brief Split a data chunk into consecutive chunks of at most max_size bytes
    @param chunk The MCULocatedLogicalDataChunk to split if too large
    @param max_size The maximum size (in bytes) of each resulting chunk
    @return Sequence of MCULocatedLogicalDataChunk objects, in increasing address order
    """
    if chunk.size == 0:
        return
    chunk_range = MCULogicalAddressRange(start_address=chunk.start_address, end_address=chunk.start_address + chunk.size)
    for sub_range in split_address_range_to_max_size(chunk_range, max_size):
        offset = sub_range.start_address - chunk.start_address
        yield MCULocatedLogicalDataChunk(start_address=sub_range.start_address,
                                         content=chunk.content[offset:offset + sub_range.get_size()])

def to_hex_string(buffer) -> str:
    """@brief Format a byte buffer for debug logs (eg: 'ff 00 10')
    """
    return ' '.join('{:02x}'.format(b) for b in buffer)
