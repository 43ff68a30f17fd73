# coding: utf-8
"""@brief Module implementing a fake clock, where time only moves when someone waits
"""
from typing import List

from domain.deadline_clock import DeadlineClock

class MockClock(DeadlineClock):
    """@brief Concrete implementation of a virtual DeadlineClock, used for unit test purposes"""
    def __init__(self, start_ms: int = 1000, tick_ms: int = 0):
        """@brief Constructor
        @param start_ms The initial value returned by now_ms()
        @param tick_ms An amount of time added after each now_ms() invocation (0 means time is frozen except for delays)
        """
        self.current_ms = start_ms
        self.tick_ms = tick_ms
        self.delays_history: List[int] = []

    def now_ms(self) -> int:
        now = self.current_ms
        self.current_ms += self.tick_ms
        return now

    def delay_ms(self, delay: int) -> None:
        self.delays_history.append(delay)
        self.advance(delay)

    def advance(self, duration_ms: int) -> None:
        """@brief Make virtual time go forward"""
        self.current_ms += duration_ms
