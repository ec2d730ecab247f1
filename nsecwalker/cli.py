#!/usr/bin/env python3
#    nsecwalker
#
#    Copyright (C) 2023 Carlos Perez
#
#    This program is free software; you can redistribute it and/or modify
#    it under the terms of the GNU General Public License as published by
#    the Free Software Foundation; Applies version 2 of the License.
#
#    This program is distributed in the hope that it will be useful,
#    but WITHOUT ANY WARRANTY; without even the implied warranty of
#    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.
#    See the GNU General Public License for more details.
#
#    You should have received a copy of the GNU General Public License
#    along with this program; if not, write to the Free Software
#    Foundation, Inc., 51 Franklin St, Fifth Floor, Boston, MA  02110-1301  USA

__version__ = '1.0.0'

__doc__ = """
nsecwalker

Enumerates DNSSEC signed zones by following their NSEC chains, reading seed
domains from the command line or from standard input.
"""

import os
import sys
from argparse import ArgumentError, ArgumentParser, RawTextHelpFormatter

from loguru import logger

from nsecwalker.lib.dispatcher import DEFAULT_CONCURRENCY, Dispatcher
from nsecwalker.lib.dnshelper import DNS_QUERY_TIMEOUT, DnsHelper
from nsecwalker.lib.output import NameWriter
from nsecwalker.lib.resolvers import (
    RESOLVER_FEED_URL,
    ResolverError,
    ResolverPool,
    load_from_feed,
    load_static,
    parse_endpoints,
)
from nsecwalker.lib.seeds import SeedInputError, ingest
from nsecwalker.lib.visited import VisitedSet
from nsecwalker.lib.walker import DEFAULT_RETRIES, ZoneWalker


def build_pool(ns_server=None, online=False, feed_url=RESOLVER_FEED_URL):
    """
    Build the resolver pool from, in order of preference, the resolvers given
    by the user, the online reliability feed or the static fallback list.
    """
    if ns_server:
        endpoints = parse_endpoints(ns_server)
    elif online:
        endpoints = load_from_feed(feed_url)
    else:
        endpoints = load_static()

    pool = ResolverPool(endpoints)
    logger.info(f'Using a pool of {len(pool)} resolvers')
    return pool


def run(pool, seeds, helper, concurrency=DEFAULT_CONCURRENCY, retries=DEFAULT_RETRIES, emit=None):
    """
    Walk every seed read from seeds and return the number of names found.
    Workers are started before the first seed is read and are always
    drained, even when reading the seeds fails halfway.
    """
    walker = ZoneWalker(pool, VisitedSet(), helper, retries=retries, emit=emit)
    dispatcher = Dispatcher(walker, concurrency)
    dispatcher.start()
    try:
        ingest(seeds, pool, dispatcher)
    except SeedInputError as e:
        logger.error(f'{e}')
    except KeyboardInterrupt:
        logger.error('You have pressed Ctrl + C. Waiting for the running walks to finish.')
    finally:
        found = dispatcher.join()

    return found


def main(argv=None):
    parser = ArgumentParser(formatter_class=RawTextHelpFormatter, description=__doc__)
    try:
        parser.add_argument('domain', nargs='?', help='Seed domain. If omitted, domains are read from stdin, one per line.')
        parser.add_argument(
            '-iL',
            '--input-list',
            type=str,
            dest='input_list',
            help='File containing a list of seed domains, one per line.',
        )
        parser.add_argument(
            '-c',
            '--concurrency',
            type=int,
            dest='concurrency',
            default=DEFAULT_CONCURRENCY,
            help=f'Number of zone walks to run in parallel. default is {DEFAULT_CONCURRENCY}',
        )
        parser.add_argument(
            '-r',
            '--retries',
            type=int,
            dest='retries',
            default=DEFAULT_RETRIES,
            help=f'Number of times a failed query is retried against another resolver. default is {DEFAULT_RETRIES}',
        )
        parser.add_argument(
            '-o',
            '--online',
            help='Use the online list of fully reliable public resolvers instead of the built-in list.',
            action='store_true',
        )
        parser.add_argument(
            '--feed-url',
            type=str,
            dest='feed_url',
            default=RESOLVER_FEED_URL,
            help=f'CSV resolver list used with --online. default is {RESOLVER_FEED_URL}',
        )
        parser.add_argument(
            '-n',
            '--name_server',
            type=str,
            dest='ns_server',
            help='Resolvers to use instead of the built-in list, as a comma separated list of ip[:port].',
        )
        parser.add_argument(
            '--lifetime',
            type=float,
            dest='lifetime',
            default=DNS_QUERY_TIMEOUT,
            help=f'Time to wait for a server to respond to a query. default is {DNS_QUERY_TIMEOUT}',
        )
        parser.add_argument(
            '--tcp',
            dest='tcp',
            help='Use TCP protocol to make queries.',
            action='store_true',
        )
        parser.add_argument(
            '--loglevel',
            type=str,
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
            default='WARNING',
            help='Log level to use when not verbose. default is WARNING',
        )
        parser.add_argument('--log-file', type=str, dest='log_file', help='Also write the log to this file.')
        parser.add_argument('-V', '--version', help='nsecwalker version', action='store_true')
        parser.add_argument(
            '-v',
            '--verbose',
            help='Log loop detection, query errors and retries to stderr.',
            action='store_true',
        )
        arguments = parser.parse_args(argv)

    except SystemExit:
        # Handle exit() from passing --help
        raise
    except ArgumentError as e:
        logger.error(f'Wrong Option Provided!: {e}')
        parser.print_help()
        sys.exit(1)

    logger.remove()
    logger.add(sys.stderr, format='{time} {level} {message}', level='DEBUG' if arguments.verbose else arguments.loglevel)
    if arguments.log_file:
        logger.add(arguments.log_file, rotation='100 MB', compression='tar.gz')

    if arguments.version:
        print(f'nsecwalker version {__version__}')
        sys.exit(0)

    if arguments.domain and arguments.input_list:
        logger.error('Cannot specify both a domain and --input-list simultaneously.')
        sys.exit(1)

    if arguments.concurrency < 1:
        logger.error('The concurrency level must be at least 1.')
        sys.exit(1)

    if arguments.retries < 0:
        logger.error('The number of retries cannot be negative.')
        sys.exit(1)

    if arguments.input_list and not os.path.isfile(arguments.input_list):
        logger.error(f"Input list file '{arguments.input_list}' does not exist.")
        sys.exit(1)

    # The pool is built before any worker starts, a bad feed ends the run here
    try:
        pool = build_pool(arguments.ns_server, arguments.online, arguments.feed_url)
    except ResolverError as e:
        logger.error(f'Error loading DNS resolvers: {e}')
        sys.exit(1)

    helper = DnsHelper(arguments.lifetime, 'tcp' if arguments.tcp else 'udp')
    writer = NameWriter()
    options = {'concurrency': arguments.concurrency, 'retries': arguments.retries, 'emit': writer}

    if arguments.domain:
        found = run(pool, [arguments.domain], helper, **options)
    elif arguments.input_list:
        with open(arguments.input_list) as f:
            found = run(pool, f, helper, **options)
    else:
        found = run(pool, sys.stdin, helper, **options)

    logger.info(f'{found} names found')

    if writer.closed:
        # Keep the interpreter from flushing into the closed pipe on exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(1)

    sys.exit(0)
