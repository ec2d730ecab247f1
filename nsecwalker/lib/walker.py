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

from loguru import logger

from nsecwalker.lib.dnshelper import QueryError, canonical_name, is_black_lie

DEFAULT_RETRIES = 3


class ZoneWalker:
    """
    Follows the NSEC chain of a zone from a seed name.

    Every name is claimed in the shared visited set before it is queried, so
    chains started from different seeds stop as soon as they run into a name
    another chain already owns. Names are emitted when they are claimed, never
    when they are merely seen in an answer, which keeps the output free of
    duplicates.
    """

    def __init__(self, pool, visited, helper, retries=DEFAULT_RETRIES, emit=None):
        if retries < 0:
            raise ValueError('retries must not be negative')
        self._pool = pool
        self._visited = visited
        self._helper = helper
        self._retries = retries
        self._emit = emit

    def walk(self, domain, resolver=None):
        """
        Walk the chain starting at domain. The first query goes to resolver
        when one is given. Returns the number of names emitted by this chain.
        """
        found = 0
        seed = canonical_name(domain)
        if not self._visited.check_and_mark(seed):
            logger.debug(f'{seed} was already walked, skipping it')
            return found

        # Stack of names still to be queried, reversed so answers are
        # followed in the order the resolver returned them
        pending = list(reversed(self._next_names(seed, resolver)))
        while pending:
            name = pending.pop()
            if not self._visited.check_and_mark(name):
                logger.debug(f'Loop detected at {name}, stopping this branch')
                continue

            found += 1
            if self._emit is not None:
                self._emit(name)

            pending.extend(reversed(self._next_names(name)))

        return found

    def _next_names(self, name, resolver=None):
        next_names = []
        for next_name in self._query(name, resolver):
            if is_black_lie(next_name):
                logger.debug(f'Ignoring synthetic NSEC answer {next_name} for {name}')
                continue
            next_names.append(canonical_name(next_name))
        return next_names

    def _query(self, name, resolver=None):
        """
        Query the NSEC record of name, retrying against a different resolver
        after every failure until the retry budget runs out.
        """
        if resolver is None:
            resolver = self._pool.pick_random()

        for attempt in range(self._retries + 1):
            if attempt:
                resolver = self._pool.pick_random(exclude=resolver)
                logger.debug(f'Retrying {name} with {resolver} ({attempt}/{self._retries})')
            try:
                return self._helper.get_nsec(name, resolver)
            except QueryError as e:
                logger.debug(f'Error querying DNS: {e}')

        logger.debug(f'Max retries reached. Skipping {name}')
        return []
