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


import dns.exception
import dns.message
import dns.name
import dns.query
import dns.rcode
import dns.rdatatype
from loguru import logger

DNS_PORT_NUMBER = 53
DNS_QUERY_TIMEOUT = 3.0

# Prefix of the synthetic next names returned by "NSEC black lies" servers
BLACK_LIE_PREFIX = '\\000.'

FAILED_RCODES = (dns.rcode.SERVFAIL, dns.rcode.REFUSED)


class QueryError(Exception):
    """Raised when a resolver fails to give a usable answer to a query."""


def canonical_name(name):
    """
    Util function that returns the lowercase, fully qualified text form of a
    domain name. Raises a dns.exception.DNSException for invalid names.
    """
    return dns.name.from_text(name.strip()).to_text().lower()


def is_black_lie(name):
    """
    Some servers (Cloudflare among others) answer with a synthetic next name
    made of a '\\000' label prepended to the queried name instead of the real
    next owner name.
    """
    return name.startswith(BLACK_LIE_PREFIX)


class DnsHelper:
    def __init__(self, request_timeout=DNS_QUERY_TIMEOUT, proto='udp'):
        self._proto = proto
        self._is_tcp = proto == 'tcp'
        self._timeout = request_timeout

    def query(self, q, endpoint):
        """
        Send a message to the given endpoint and return the response. UDP
        queries fall back to TCP when the answer comes back truncated.
        """
        if self._is_tcp:
            return dns.query.tcp(q, endpoint.host, timeout=self._timeout, port=endpoint.port)

        response, used_tcp = dns.query.udp_with_fallback(q, endpoint.host, timeout=self._timeout, port=endpoint.port)
        if used_tcp:
            logger.debug(f'Truncated answer from {endpoint}, query was repeated over TCP')
        return response

    def get_nsec(self, host, endpoint):
        """
        Function for querying a resolver for the NSEC record of a host and
        returning the next domain names found in the answer section. This is
        the single step of a Zone Walk.
        """
        q = dns.message.make_query(host, dns.rdatatype.NSEC, want_dnssec=True)
        try:
            response = self.query(q, endpoint)
        except (OSError, EOFError, dns.exception.DNSException) as e:
            raise QueryError(f'{endpoint} failed to answer the NSEC query for {host}: {e}') from e

        rcode = response.rcode()
        if rcode in FAILED_RCODES:
            raise QueryError(f'{endpoint} answered {dns.rcode.to_text(rcode)} for {host}')

        next_names = []
        for rrset in response.answer:
            if rrset.rdtype != dns.rdatatype.NSEC:
                continue
            for rdata in rrset:
                next_names.append(rdata.next.to_text())

        return next_names
