"""Cooperative Ctrl-C handling for batch stages.

Stages check ``interrupt.requested`` between records, so the write in
progress always completes. A second signal falls through to the default
handler and stops the process immediately.
"""

import logging
import signal

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GracefulInterrupt:
    def __init__(self):
        self.requested = False
        self._previous: dict[int, object] = {}

    def _handle(self, signum, frame) -> None:
        if self.requested:
            signal.signal(signum, signal.SIG_DFL)
            signal.raise_signal(signum)
            return
        self.requested = True
        logger.warning(
            "Received %s. Finishing the current record; "
            "progress so far is kept. Press Ctrl-C again to abort.",
            signal.Signals(signum).name,
        )

    def __enter__(self):
        for signum in HANDLED_SIGNALS:
            try:
                self._previous[signum] = signal.signal(signum, self._handle)
            except ValueError:
                # Not the main thread: fall back to default handling
                pass
        return self

    def __exit__(self, *args):
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
