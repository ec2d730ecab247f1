#!/usr/bin/env python3

#    Copyright (C) 2020  Carlos Perez
#
#    This program is free software; you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation; Applies version 2 of the License.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#    GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program; if not, write to the Free Software
#    Foundation, Inc., 51 Franklin St, Fifth Floor, Boston, MA  02110-1301  USA

import queue
from concurrent import futures
from dataclasses import dataclass

from loguru import logger

from nsecwalker.lib.output import OutputClosedError
from nsecwalker.lib.resolvers import Endpoint

DEFAULT_CONCURRENCY = 20

# Placed once per worker on the queue by close()
_STOP = object()


@dataclass(frozen=True, slots=True)
class Task:
    domain: str
    resolver: Endpoint | None = None


class Dispatcher:
    """
    Fixed pool of workers fed through a bounded queue. Each worker walks one
    chain at a time, so the concurrency level bounds the number of chains in
    flight. submit() blocks while the queue is full.
    """

    def __init__(self, walker, concurrency=DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ValueError('concurrency must be at least 1')
        self._walker = walker
        self._concurrency = concurrency
        self._queue = queue.Queue(maxsize=concurrency)
        self._executor = None
        self._workers = []
        self._closed = False
        self._cancelled = False

    @property
    def cancelled(self):
        return self._cancelled

    def start(self):
        if self._executor is not None:
            raise RuntimeError('Dispatcher already started')
        self._executor = futures.ThreadPoolExecutor(max_workers=self._concurrency, thread_name_prefix='nsecwalker')
        self._workers = [self._executor.submit(self._work) for _ in range(self._concurrency)]

    def submit(self, task):
        if self._closed:
            raise RuntimeError('Cannot submit to a closed dispatcher')
        if self._executor is None:
            raise RuntimeError('Dispatcher has not been started')
        if self._cancelled:
            return
        self._queue.put(task)

    def close(self):
        if self._closed:
            return
        self._closed = True
        for _ in self._workers:
            self._queue.put(_STOP)

    def join(self):
        """
        Close the queue, wait for every worker to drain it and return the
        number of names found.
        """
        self.close()
        found = 0
        for future in futures.as_completed(self._workers):
            found += future.result()
        if self._executor is not None:
            self._executor.shutdown()
        return found

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.join()
        return False

    def cancel(self):
        """
        Drop every task still queued or submitted later. Walks already
        running finish on their own.
        """
        self._cancelled = True

    def _work(self):
        found = 0
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return found
                if self._cancelled:
                    continue
                found += self._walker.walk(task.domain, task.resolver)
            except OutputClosedError:
                logger.warning(f'Output closed while walking {task.domain}, dropping the remaining seeds')
                self.cancel()
            except Exception as e:
                logger.error(f'Error walking {task.domain}: {e}')
            finally:
                self._queue.task_done()
