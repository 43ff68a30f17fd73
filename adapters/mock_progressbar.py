# coding: utf-8
"""@brief Module implementing a history-recording progress bar
"""
from typing import List

from domain.ext_adapters_interface.progressbar_interface import ProgressBarInterface, ProgressBarFactoryInterface

class MockProgressBar(ProgressBarInterface):
    """@brief Concrete implementation of ProgressBarInterface for unit test purposes"""
    def __init__(self, name: str, min_value: int, max_value: int, show_eta: bool = False, *args, **kwargs):
        self.name = name
        self.min_value = min_value
        self.max_value = max_value
        self.started = False
        self.finished = False
        self.values_history: List[int] = []

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, type, value, traceback):
        if type is None:
            self.finish()

    def update(self, value: int):
        if value < self.min_value or value > self.max_value:
            raise IndexError(f'Update value {value} out of bounds [{self.min_value},{self.max_value}]')
        self.values_history.append(value)

    def finish(self):
        self.finished = True

    def start(self):
        self.started = True

class MockProgressBarFactory(ProgressBarFactoryInterface):
    """@brief Factory keeping track of all progress bars it created"""
    def __init__(self):
        self.created_bars: List[MockProgressBar] = []

    def create(self, *args, **kwargs):
        bar = MockProgressBar(*args, **kwargs)
        self.created_bars.append(bar)
        return bar
