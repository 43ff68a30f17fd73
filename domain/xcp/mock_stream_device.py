# coding: utf-8
"""@brief Module implementing a fake pyserial-like stream device, emulating a remote XCP slave
"""
from typing import Callable, List, Optional

import serial

from adapters.mock_clock import MockClock
from domain.xcp.packet_transport import decode_frame, encode_frame

class MockStreamDevice:
    """@brief Fake stream device, in memory

    Frames written to this device are decoded and forwarded to a response handler, whose result (if any) is framed
    and made available for reading. Reads are served from an incoming buffer, optionally in small chunks.
    When nothing can be read, the (virtual) clock moves forward by the read timeout, as a real blocking read would.
    """
    def __init__(self, clock: MockClock, response_handler: Optional[Callable[[bytes], Optional[bytes]]] = None,
                 max_chunk_size: int = None, read_latency_ms: int = 0, response_delay_ms: int = 0):
        """@brief Constructor
        @param clock The (fake) clock shared with the transport under test
        @param response_handler A function taking a request packet and returning a response packet (or None for no reply)
        @param max_chunk_size If not None, never return more than this number of bytes per read
        @param read_latency_ms Amount of time each successful read takes
        @param response_delay_ms Amount of time between a request and the availability of its response
        """
        self.clock = clock
        self.response_handler = response_handler
        self.max_chunk_size = max_chunk_size
        self.read_latency_ms = read_latency_ms
        self.response_delay_ms = response_delay_ms
        self.timeout = None
        self.is_open = True
        self.write_error: Optional[Exception] = None
        self.peer_closed = False
        self.requests_history: List[bytes] = []
        self.read_sizes_history: List[int] = []
        self.read_timeouts_history: List[float] = []
        self.close_count = 0
        self.flush_count = 0
        self._incoming = bytearray()
        self._pending: list = []  # (ready_at_ms, data) tuples, sorted by ready_at_ms

    def queue_incoming(self, data: bytes, delay_ms: int = 0) -> None:
        """@brief Make raw bytes available for reading, possibly after some delay
        """
        self._pending.append((self.clock.current_ms + delay_ms, bytes(data)))
        self._pending.sort(key=lambda entry: entry[0])

    def _deliver_pending(self) -> None:
        while self._pending and self._pending[0][0] <= self.clock.current_ms:
            self._incoming += self._pending.pop(0)[1]

    @property
    def in_waiting(self) -> int:
        self._deliver_pending()
        if not self._incoming and self.peer_closed:
            return 1    # Like pyserial socket:// ports, where end of stream makes the socket readable
        return len(self._incoming)

    def reset_input_buffer(self) -> None:
        self._deliver_pending()
        self.flush_count += 1
        self._incoming = bytearray()

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.SerialException('Attempting to use a port that is not open')
        if self.write_error is not None:
            raise self.write_error
        remaining = bytes(data)
        while remaining:
            (request, consumed) = decode_frame(remaining)
            remaining = remaining[consumed:]
            self.requests_history.append(request)
            if self.response_handler is not None:
                response = self.response_handler(request)
                if response is not None:
                    self.queue_incoming(encode_frame(response), delay_ms=self.response_delay_ms)
        return len(data)

    def read(self, size: int = 1) -> bytes:
        if not self.is_open:
            raise serial.SerialException('Attempting to use a port that is not open')
        self.read_sizes_history.append(size)
        self.read_timeouts_history.append(self.timeout)
        self._deliver_pending()
        if not self._incoming:
            if self.peer_closed:
                raise serial.SerialException('socket disconnected')
            self.clock.advance(round((self.timeout or 0) * 1000))   # Emulate a read blocking until timeout
            self._deliver_pending()
            return b''
        if self.max_chunk_size is not None:
            size = min(size, self.max_chunk_size)
        chunk = bytes(self._incoming[:size])
        del self._incoming[:size]
        self.clock.advance(self.read_latency_ms)
        return chunk

    def close(self) -> None:
        self.close_count += 1
        self.is_open = False
