import time


class RateLimiter:
    """
    Minimum spacing between outbound requests.

    Yahoo Finance unofficial limits are ~2000 requests/hour, so the
    default keeps calls at least 0.25s apart.
    """

    def __init__(self, min_interval: float = 0.25, clock=time.monotonic, sleep=time.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self.last_request = None

    def wait_if_needed(self) -> None:
        now = self._clock()
        if self.last_request is not None:
            elapsed = now - self.last_request
            if elapsed < self.min_interval:
                self._sleep(self.min_interval - elapsed)
                now = self._clock()
        self.last_request = now
