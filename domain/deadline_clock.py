# coding: utf-8
"""@brief Module providing the time source used to compute deadlines and to pace retries
"""
import time

class DeadlineClock:
    """@brief Monotonic millisecond clock with a blocking delay primitive

    @note Injected into the transport and the update procedure so that unit tests can replace it with a fake clock
    """

    def now_ms(self) -> int:
        """@brief Get the current time
        @return A monotonic timestamp in milliseconds (only meaningful when compared to another value from the same clock)
        """
        return int(time.monotonic() * 1000)

    def delay_ms(self, delay: int) -> None:
        """@brief Block the caller for the specified amount of time
        @param delay Delay time in milliseconds
        """
        if delay > 0:
            time.sleep(delay / 1000)

    def deadline_in(self, duration_ms: int) -> int:
        """@brief Compute an absolute deadline
        @param duration_ms The amount of time (in ms) from now
        @return The deadline, to be compared against now_ms()
        """
        return self.now_ms() + duration_ms

    def is_past(self, deadline: int) -> bool:
        """@brief Check whether a deadline computed by deadline_in() has been reached
        """
        return self.now_ms() >= deadline
