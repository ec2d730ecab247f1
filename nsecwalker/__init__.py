#!/usr/bin/env python3
'''

nsecwalker python module
'''

from .lib.dispatcher import Dispatcher, Task
from .lib.dnshelper import DnsHelper, QueryError, canonical_name
from .lib.resolvers import Endpoint, ResolverError, ResolverFeedError, ResolverPool, load_from_feed, load_static
from .lib.visited import VisitedSet
from .lib.walker import ZoneWalker
