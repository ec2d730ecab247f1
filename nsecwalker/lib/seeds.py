#!/usr/bin/env python3

import dns.exception
from loguru import logger

from nsecwalker.lib.dispatcher import Task
from nsecwalker.lib.dnshelper import canonical_name


class SeedInputError(Exception):
    """Raised when reading the seed domains fails."""


def read_seeds(lines):
    """
    Yield canonical, deduplicated seed names from an iterable of lines.
    Blank lines and lines starting with '#' are skipped.
    """
    seen = set()
    for line in lines:
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        try:
            domain = canonical_name(line)
        except dns.exception.DNSException as e:
            logger.warning(f'Skipping invalid domain {line}: {e}')
            continue

        if domain in seen:
            continue
        seen.add(domain)
        yield domain


def ingest(lines, pool, dispatcher):
    """
    Submit a task for every seed, each paired with a randomly picked
    resolver. Returns the number of tasks submitted.
    """
    submitted = 0
    try:
        for domain in read_seeds(lines):
            if dispatcher.cancelled:
                logger.warning(f'Walks were cancelled, {domain} and the seeds after it are not queued')
                break
            dispatcher.submit(Task(domain, pool.pick_random()))
            submitted += 1
    except (OSError, UnicodeDecodeError) as e:
        raise SeedInputError(f'Error reading domains after {submitted} seeds: {e}') from e

    logger.info(f'{submitted} seed domains queued')
    return submitted
