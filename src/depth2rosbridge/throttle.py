import math
import time


class FrameThrottler:
    """
    Rate-limits frame processing and maps source timestamps onto wall-clock time.

    The source timestamps are monotonic seconds with an arbitrary origin. The
    offset to the Unix epoch is taken once, on the first accepted frame, and is
    never recomputed, so stamp differences always equal source differences.
    """

    def __init__(self, target_fps=10, clock=time.time, verbosity=1):
        """
        Args:
            target_fps (float): Publish frequency in Hz. Values below 1 are clamped to 1.
            clock (callable, optional): Wall-clock source in epoch seconds. Defaults to time.time.
            verbosity (int, optional): The verbosity level. Defaults to 1.
        """
        self.target_fps = max(1.0, float(target_fps))
        self.interval = 1.0 / self.target_fps
        self.clock = clock
        self.verbosity = verbosity

        # Source clocks count from boot, so frames within one interval of zero are dropped.
        self.last_publish_time = 0.0
        self.clock_offset = None
        self._rewound = False

    def should_publish(self, t):
        """Returns True and records ``t`` if at least one interval has passed since the last accepted frame."""
        elapsed = t - self.last_publish_time
        if elapsed < self.interval:
            if elapsed < 0 and not self._rewound:
                # Once per jump.
                self._rewound = True
                if self.verbosity >= 1:
                    print(f"⚠️ Source clock went backwards by {-elapsed:.6f}s, dropping frames until it catches up.")
            return False

        self._rewound = False

        if self.clock_offset is None:
            self.clock_offset = self.clock() - t
            if self.verbosity >= 2:
                print(f"🕒 Clock offset fixed at {self.clock_offset:.6f}s")

        self.last_publish_time = t
        return True

    def epoch_time(self, t):
        if self.clock_offset is None:
            raise RuntimeError("Clock offset is not known before the first accepted frame")
        return self.clock_offset + t

    def stamp(self, t):
        """Returns the ROS time for source timestamp ``t`` as ``{"sec", "nanosec"}``."""
        return split_stamp(self.epoch_time(t))


def split_stamp(seconds):
    """Splits epoch seconds into whole seconds and truncated nanoseconds."""
    sec = math.floor(seconds)
    nanosec = int((seconds - sec) * 1_000_000_000)
    # Float error can push the fraction to a full second.
    if nanosec >= 1_000_000_000:
        sec += 1
        nanosec = 0
    return {"sec": int(sec), "nanosec": nanosec}
