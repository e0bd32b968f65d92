"""
this class estimates miner speed from the hashes it computed
implemented using rolling time window
the buffers roll by themselves whenever the meter is used, one slot per
granularity seconds (granularity = 5 by default)
"""
import time

import numpy as np


class HashrateMeter(object):
    def __init__(
        self,
        window_size: int = 60,
        granularity: int = 5,
    ):
        self.window_size = window_size
        self.granularity = granularity
        self.reset(self.get_time())

    def get_time(self):
        return time.monotonic()

    def reset(self, time_started):
        self.hash_buffer = np.zeros(self.window_size // self.granularity)
        self.time_started = time_started
        self.last_roll = time_started
        self.total_hashes = 0

    def roll(self):
        now = self.get_time()
        slots = int((now - self.last_roll) // self.granularity)
        if slots <= 0:
            return
        if slots >= len(self.hash_buffer):
            self.hash_buffer[:] = 0
        else:
            self.hash_buffer = np.roll(self.hash_buffer, slots)
            self.hash_buffer[:slots] = 0
        self.last_roll += slots * self.granularity

    def measure(self, hashes: int):
        """Account for hashes computed since the previous call"""
        self.roll()
        self.hash_buffer[0] += hashes
        self.total_hashes += hashes

    def get_speed(self):
        """Hashes per second over the window, None until there is data"""
        self.roll()
        time_elapsed = self.get_time() - self.time_started
        if time_elapsed > self.window_size:
            time_elapsed = self.window_size
        total_work = np.sum(self.hash_buffer)
        if time_elapsed <= 0 or total_work == 0:
            return None

        return float(total_work / time_elapsed)
