#!/usr/bin/env python3

import sys
import threading


class OutputClosedError(Exception):
    """Raised when the reader of the discovered names went away."""


class NameWriter:
    """
    Writes discovered names one per line. Several workers share one writer,
    so every line is written and flushed under a lock.
    """

    def __init__(self, stream=None):
        self._stream = stream
        self._lock = threading.Lock()
        self.closed = False

    def __call__(self, name):
        with self._lock:
            if self.closed:
                raise OutputClosedError('Output stream is closed')
            stream = self._stream if self._stream is not None else sys.stdout
            try:
                stream.write(name + '\n')
                stream.flush()
            except BrokenPipeError as e:
                self.closed = True
                raise OutputClosedError('Output stream is closed') from e
