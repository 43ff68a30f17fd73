# coding: utf-8
"""@brief Module implementing a fake XCP master, recording the operations requested by the update orchestrator
"""
from typing import Dict, List

from domain.xcp.packet_transport import ReceiveTimeoutError

class MockXcpMaster:
    """@brief Fake XCP master, where each protocol operation succeeds unless told otherwise
    """
    def __init__(self, connect_timeouts: int = 0):
        """@brief Constructor
        @param connect_timeouts The number of connect() invocations that time out before the slave answers
        """
        self.connect_timeouts = connect_timeouts
        self.operations_history: List[str] = []
        self.programmed_data: Dict[int, bytes] = {}
        self.erased_range = None
        self.failures: Dict[str, Exception] = {}    # Operation name -> exception raised by this operation
        self.close_count = 0
        self.connected = True

    def _record(self, operation: str) -> None:
        self.operations_history.append(operation)
        if operation in self.failures:
            raise self.failures[operation]

    def is_connected(self) -> bool:
        return self.connected

    def connect(self):
        if self.connect_timeouts > 0:
            self.connect_timeouts -= 1
            self.operations_history.append('connect')
            raise ReceiveTimeoutError('No reply to CONNECT')
        self._record('connect')

    def start_programming_session(self):
        self._record('start_programming_session')

    def clear_memory(self, start_address, length: int):
        self._record('clear_memory')
        self.erased_range = (start_address, length)

    def program_data(self, start_address, data: bytes):
        self._record('program_data')
        self.programmed_data[start_address] = bytes(data)

    def stop_programming_session(self):
        self._record('stop_programming_session')

    def reset_and_disconnect(self):
        self._record('reset_and_disconnect')

    def disconnect(self):
        self._record('disconnect')

    def close(self):
        self.close_count += 1
        self.connected = False
