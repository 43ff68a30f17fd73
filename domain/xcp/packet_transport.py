#!/usr/bin/env python3
# coding: utf-8
"""@brief XCP packet transport over a byte stream connection

Each XCP packet travels in a frame made of one length byte followed by that many payload bytes.
There is no checksum, sequence number or packet type at this layer: a response is simply the next
frame received after a request has been sent, which is fine because the XCP master never has more
than one outstanding request.
"""

from enum import Enum
from logging import getLogger
import signal
from typing import Callable, Tuple

import serial

from domain.common import to_hex_string
from domain.deadline_clock import DeadlineClock

logger = getLogger(__name__)

XCP_MASTER_TX_MAX_DATA = 255
XCP_MASTER_RX_MAX_DATA = 255
# One more byte than the largest XCP packet, the frame length byte only addresses 255 payload bytes anyway
XCP_TRANSPORT_MAX_DATA = max(XCP_MASTER_TX_MAX_DATA, XCP_MASTER_RX_MAX_DATA) + 1
FRAME_MAX_PAYLOAD = 0xff

RX_TIMEOUT_MIN_MS = 100     # Added to every reply timeout to absorb scheduling jitter on very short timeouts
RX_POLL_INTERVAL_MS = 10    # Maximum time spent blocked in one read attempt

class TransportError(Exception):
    pass

class TransportConnectError(TransportError):
    pass

class SendError(TransportError):
    pass

class ReceiveTimeoutError(TransportError):
    pass

class ConnectionLostError(TransportError):
    pass

class TransportState(Enum):
    UNCONNECTED = 'unconnected'
    CONNECTED = 'connected'
    CLOSED = 'closed'

class TransportTarget:
    """@brief Address of the remote peer (immutable)
    """
    def __init__(self, host: str, port: int):
        """@brief Constructor
        @param host An IP address or a hostname
        @param port A TCP port number
        """
        if not host:
            raise ValueError('Missing target host')
        port = int(port)
        if port < 1 or port > 0xffff:
            raise ValueError(f'Invalid target port {port}')
        self._host = host
        self._port = port

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    def to_url(self) -> str:
        """@brief Represent this target as a pyserial URL
        """
        host = self._host
        if ':' in host and not host.startswith('['):    # Literal IPv6 addresses must be enclosed in brackets
            host = f'[{host}]'
        return f'socket://{host}:{self._port}'

    def __eq__(self, other):
        if not isinstance(other, TransportTarget):
            return NotImplemented
        return (self._host, self._port) == (other._host, other._port)

    def __hash__(self):
        return hash((self._host, self._port))

    def __str__(self):
        return f'{self._host}:{self._port}'

def encode_frame(payload: bytes) -> bytes:
    """@brief Prefix a packet with its length
    @param payload The packet to frame (at most 255 bytes)
    @return The frame, ready to be written on the stream
    """
    if len(payload) > FRAME_MAX_PAYLOAD:
        raise ValueError(f'Packet too large to be framed: {len(payload)} bytes (maximum {FRAME_MAX_PAYLOAD})')
    return bytes([len(payload)]) + bytes(payload)

def decode_frame(buffer) -> Tuple[bytes, int]:
    """@brief Extract the first frame from a buffer
    @param buffer The received bytes, starting with a frame length byte
    @return A tuple (payload, consumed) where consumed is the number of bytes of @p buffer used by this frame

    @note Bytes following the first frame in @p buffer are left untouched
    """
    if len(buffer) < 1:
        raise ValueError('Missing frame length byte')
    length = buffer[0]
    if len(buffer) < 1 + length:
        raise ValueError(f'Truncated frame: expected {length} payload bytes, got {len(buffer) - 1}')
    return bytes(buffer[1:1 + length]), 1 + length

def open_stream_device(url: str):
    """@brief Default device factory: open a pyserial port from its URL (eg: socket://192.168.1.100:2101)
    """
    return serial.serial_for_url(url, timeout=RX_POLL_INTERVAL_MS / 1000)

class ResponsePacket:
    """@brief Storage for the last received response

    @warning There is only one instance per transport, it is overwritten by every exchange. Its content
             is thus only valid until the next call to XcpPacketTransport.exchange()
    """
    def __init__(self):
        self.length = 0
        self.data = bytearray(XCP_TRANSPORT_MAX_DATA)

    @property
    def payload(self) -> bytes:
        """@brief Get a copy of the valid part of the response
        """
        return bytes(self.data[:self.length])

    def __len__(self):
        return self.length

class XcpPacketTransport:
    """@brief Request/response packet exchange over one stream connection
    """
    def __init__(self, clock: DeadlineClock = None, device_factory: Callable = open_stream_device):
        """@brief Constructor
        @param clock The time source used for reply deadlines
        @param device_factory A function taking a pyserial URL and returning an opened pyserial-like device
        """
        self.clock = clock if clock is not None else DeadlineClock()
        if not callable(device_factory):
            raise TypeError("device_factory argument is not callable")
        self.device_factory = device_factory
        self.device = None
        self.target = None
        self.state = TransportState.UNCONNECTED
        self._response = ResponsePacket()
        self._response_view = memoryview(self._response.data)
        self._length_prefix = bytearray(1)
        self._previous_sigpipe_handler = None

    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()

    @property
    def response(self) -> ResponsePacket:
        return self._response

    def is_connected(self) -> bool:
        return self.state == TransportState.CONNECTED

    def connect(self, target: TransportTarget) -> None:
        """@brief Establish the stream connection to the remote peer
        @param target The remote peer to connect to

        @warning Raises TransportConnectError if the connection cannot be established
        """
        if self.state != TransportState.UNCONNECTED:
            raise TransportConnectError(f'Cannot connect a transport in state {self.state.value}, create a new one')
        url = target.to_url()
        logger.debug(f'Opening stream connection {url}')
        try:
            device = self.device_factory(url)
        except (serial.SerialException, ValueError, OSError) as e:
            self.state = TransportState.CLOSED
            raise TransportConnectError(f'Could not connect to {target}: {e}') from e
        device.timeout = RX_POLL_INTERVAL_MS / 1000
        self.device = device
        self.target = target
        self._ignore_sigpipe()
        self.state = TransportState.CONNECTED
        logger.debug(f'Connected to {target}')

    def exchange(self, request: bytes, timeout_ms: int) -> ResponsePacket:
        """@brief Send one packet and wait for the response packet
        @param request The packet to send (at most 255 bytes)
        @param timeout_ms How long (in ms) the remote is allowed to take to reply (RX_TIMEOUT_MIN_MS is added on top)
        @return The response buffer, filled with the received packet (see ResponsePacket for its lifetime)
        """
        if self.state != TransportState.CONNECTED:
            raise SendError(f'Cannot send on a transport in state {self.state.value}')
        frame = encode_frame(request)
        self._response.length = 0
        self._discard_stale_input()
        logger.debug('Sending frame: ' + to_hex_string(frame))
        try:
            self.device.write(frame)
        except (serial.SerialException, OSError) as e:
            self.close()
            raise SendError(f'Failed sending {len(frame)} bytes to {self.target}: {e}') from e

        deadline = self.clock.deadline_in(timeout_ms + RX_TIMEOUT_MIN_MS)
        self._receive_into(memoryview(self._length_prefix), deadline)
        length = self._length_prefix[0]
        self._receive_into(self._response_view[:length], deadline)
        self._response.length = length
        logger.debug('Received packet: ' + to_hex_string(self._response_view[:length]))
        return self._response

    def close(self) -> None:
        """@brief Release the connection

        @note Calling this on an already closed transport does nothing
        """
        if self.state == TransportState.CLOSED:
            return
        self.state = TransportState.CLOSED
        if self.device is not None:
            try:
                self.device.close()
            except (serial.SerialException, OSError) as e:
                logger.warning(f'Error while closing connection to {self.target}: {e}')
            self.device = None
            logger.debug(f'Closed connection to {self.target}')
        self._restore_sigpipe()

    def _receive_into(self, buffer: memoryview, deadline: int) -> None:
        """@brief Fill a buffer with incoming bytes, possibly received over multiple read attempts
        @param buffer The buffer to fill entirely
        @param deadline The time after which we give up waiting (see DeadlineClock.deadline_in())
        """
        bytes_read = 0
        while bytes_read < len(buffer):
            self._set_poll_timeout(deadline)
            try:
                chunk = self.device.read(len(buffer) - bytes_read)
            except (serial.SerialException, OSError) as e:
                self.close()
                raise ConnectionLostError(f'Connection to {self.target} lost while waiting for a reply: {e}') from e
            buffer[bytes_read:bytes_read + len(chunk)] = chunk
            bytes_read += len(chunk)
            if bytes_read < len(buffer) and self.clock.is_past(deadline):
                self._response.length = 0
                raise ReceiveTimeoutError(f'Timeout while waiting for a reply from {self.target} ({bytes_read}/{len(buffer)} bytes received)')

    def _set_poll_timeout(self, deadline: int) -> None:
        """@brief Make the next read wait at most RX_POLL_INTERVAL_MS, and never beyond @p deadline
        """
        timeout = max(0, min(RX_POLL_INTERVAL_MS, deadline - self.clock.now_ms())) / 1000
        if self.device.timeout != timeout:
            self.device.timeout = timeout

    def _discard_stale_input(self) -> None:
        """@brief Flush bytes that arrived after a previous exchange gave up, so that they are not mistaken for the next reply

        @note On a socket, in_waiting is also non-zero when the peer closed the connection. The next read reports that case
        """
        try:
            if self.device.in_waiting:
                logger.debug('Discarding pending input before sending (tail of a late reply, or connection closed by peer)')
                self.device.reset_input_buffer()
        except (serial.SerialException, OSError) as e:
            self.close()
            raise ConnectionLostError(f'Connection to {self.target} lost: {e}') from e

    def _ignore_sigpipe(self) -> None:
        """@brief Make sure writing to a connection closed by the peer raises an exception instead of killing the process

        @note The python interpreter already ignores SIGPIPE at startup, we only act if someone restored the default action
        """
        if not hasattr(signal, 'SIGPIPE'):
            return
        try:
            if signal.getsignal(signal.SIGPIPE) == signal.SIG_DFL:
                self._previous_sigpipe_handler = signal.signal(signal.SIGPIPE, signal.SIG_IGN)
        except ValueError:  # Signal handlers can only be changed from the main thread
            logger.debug('Could not change SIGPIPE disposition outside of the main thread')

    def _restore_sigpipe(self) -> None:
        if self._previous_sigpipe_handler is None:
            return
        try:
            signal.signal(signal.SIGPIPE, self._previous_sigpipe_handler)
        except ValueError:
            logger.debug('Could not restore SIGPIPE disposition outside of the main thread')
        self._previous_sigpipe_handler = None
