#    Copyright (C) 2010  Carlos Perez
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


import csv
import io
from dataclasses import dataclass
from random import SystemRandom

import httpx
import netaddr
import stamina
from loguru import logger

from nsecwalker.lib.dnshelper import DNS_PORT_NUMBER

RESOLVER_FEED_URL = 'https://public-dns.info/nameservers.csv'
FEED_TIMEOUT = 30
RETRY_ATTEMPTS = 5
WAIT_MAX = 30

# Column positions in the public-dns.info nameservers.csv export
FEED_IP_COLUMN = 0
FEED_RELIABILITY_COLUMN = 9
FULLY_RELIABLE = '1.00'

STATIC_RESOLVERS = (
    '1.1.1.1',
    '1.0.0.1',
    '8.8.8.8',
    '8.8.4.4',
    '9.9.9.9',
)


class ResolverError(Exception):
    """Raised when no usable resolver pool can be built."""


class ResolverFeedError(ResolverError):
    """Raised when the resolver feed cannot be fetched or parsed."""


@dataclass(frozen=True, slots=True)
class Endpoint:
    host: str
    port: int = DNS_PORT_NUMBER

    def __str__(self):
        if ':' in self.host:
            return f'[{self.host}]:{self.port}'
        return f'{self.host}:{self.port}'

    @classmethod
    def parse(cls, text):
        """
        Build an endpoint from 'host', 'host:port', '[v6]:port' or a bare
        IPv6 address. The host has to be an IP address.
        """
        text = text.strip()
        host, port = text, str(DNS_PORT_NUMBER)
        if text.startswith('['):
            host, sep, rest = text[1:].partition(']')
            if not sep or (rest and not rest.startswith(':')):
                raise ResolverError(f'Invalid resolver endpoint: {text}')
            if rest:
                port = rest[1:]
        elif text.count(':') == 1:
            host, port = text.split(':')

        try:
            address = netaddr.IPAddress(host)
        except (netaddr.AddrFormatError, ValueError) as e:
            raise ResolverError(f'Invalid resolver address: {text}') from e

        if not port.isdigit() or not 0 < int(port) < 65536:
            raise ResolverError(f'Invalid resolver port: {text}')

        return cls(str(address), int(port))


class ResolverPool:
    """
    Immutable list of resolver endpoints shared by every worker.
    """

    def __init__(self, endpoints, rng=None):
        # dict.fromkeys drops duplicates and keeps the order
        self._endpoints = tuple(dict.fromkeys(endpoints))
        if not self._endpoints:
            raise ResolverError('The resolver pool is empty')
        self._rng = rng or SystemRandom()

    def __len__(self):
        return len(self._endpoints)

    def __iter__(self):
        return iter(self._endpoints)

    def pick_random(self, exclude=None):
        """
        Uniform random draw. When exclude is given and the pool holds other
        endpoints, the draw is uniform over those others.
        """
        endpoint = self._rng.choice(self._endpoints)
        if exclude is None or len(self._endpoints) == 1:
            return endpoint
        while endpoint == exclude:
            endpoint = self._rng.choice(self._endpoints)
        return endpoint


def load_static():
    return [Endpoint(ip) for ip in STATIC_RESOLVERS]


def parse_endpoints(arg):
    """
    Parse a comma separated list of resolvers given on the command line.
    """
    return [Endpoint.parse(entry) for entry in arg.split(',') if entry.strip()]


def is_transient_error(e: Exception) -> bool:
    if isinstance(e, httpx.TransportError):
        logger.warning(f'Connection with the resolver feed failed. Reason: "{e}"')
        return True
    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code in {429, 500, 502, 503, 504}:
        logger.warning(f'Bad http status from the resolver feed: "{e.response.status_code}"')
        return True
    return False


@stamina.retry(on=is_transient_error, attempts=RETRY_ATTEMPTS, wait_max=WAIT_MAX)
def fetch_feed(url, timeout=FEED_TIMEOUT):
    resp = httpx.get(url, timeout=timeout, follow_redirects=True)
    resp.raise_for_status()
    return resp.text


def parse_feed(data):
    """
    Parse the CSV resolver list. The first row is a header, column 0 holds
    the address and column 9 the reliability score. Only fully reliable
    resolvers are kept.
    """
    endpoints = []
    reader = csv.reader(io.StringIO(data))
    try:
        if next(reader, None) is None:
            raise ResolverFeedError('The resolver feed is empty')

        for row in reader:
            if not row:
                continue
            if len(row) <= FEED_RELIABILITY_COLUMN:
                raise ResolverFeedError(f'Malformed resolver feed row {reader.line_num}: {len(row)} columns')

            if row[FEED_RELIABILITY_COLUMN].strip() != FULLY_RELIABLE:
                continue

            try:
                endpoints.append(Endpoint.parse(row[FEED_IP_COLUMN]))
            except ResolverError as e:
                raise ResolverFeedError(f'Malformed address on resolver feed row {reader.line_num}') from e

    except csv.Error as e:
        raise ResolverFeedError(f'Could not parse the resolver feed: {e}') from e

    if not endpoints:
        raise ResolverFeedError('No fully reliable resolvers found in the resolver feed')

    return endpoints


def load_from_feed(url=RESOLVER_FEED_URL, timeout=FEED_TIMEOUT):
    """
    Fetch the public resolver list and return the fully reliable endpoints.
    """
    logger.info(f'Fetching resolver list from {url}')
    try:
        data = fetch_feed(url, timeout)
    except httpx.HTTPError as e:
        raise ResolverFeedError(f'Could not fetch the resolver list from {url}: {e}') from e

    endpoints = parse_feed(data)
    logger.info(f'{len(endpoints)} fully reliable resolvers loaded')
    return endpoints
