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

import threading


class VisitedSet:
    """
    Set of canonical domain names already claimed by a chain, shared by all
    the workers of a run. Names are only ever added.
    """

    def __init__(self):
        self._names = set()
        self._lock = threading.Lock()

    def check_and_mark(self, name):
        """
        Mark name as visited. Returns True if this call claimed it, False if
        it had already been claimed.
        """
        with self._lock:
            if name in self._names:
                return False
            self._names.add(name)
            return True

    def __contains__(self, name):
        with self._lock:
            return name in self._names

    def __len__(self):
        with self._lock:
            return len(self._names)
