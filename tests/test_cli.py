import io
import textwrap
from unittest.mock import MagicMock, patch

import pytest

from nsecwalker import cli
from nsecwalker.lib.dnshelper import QueryError
from nsecwalker.lib.output import NameWriter
from nsecwalker.lib.resolvers import Endpoint, ResolverError

RING = {
    'a.example.': ['b.example.'],
    'b.example.': ['c.example.'],
    'c.example.': ['a.example.'],
}


def run_main(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


def test_walk_single_domain(fake_helper, capsys):
    with patch('nsecwalker.cli.DnsHelper', return_value=fake_helper(RING)):
        assert run_main(['-n', '192.0.2.1', 'A.example']) == 0

    assert capsys.readouterr().out.splitlines() == ['b.example.', 'c.example.']


def test_walk_domains_from_stdin(fake_helper, capsys, monkeypatch):
    monkeypatch.setattr('sys.stdin', io.StringIO('a.example\nA.EXAMPLE\nb.example\n'))
    helper = fake_helper(RING)
    with patch('nsecwalker.cli.DnsHelper', return_value=helper):
        assert run_main(['-n', '192.0.2.1', '-c', '4']) == 0

    out = capsys.readouterr().out.splitlines()
    assert len(out) == len(set(out))
    assert set(out) <= {'a.example.', 'b.example.', 'c.example.'}
    assert helper.hosts.count('a.example.') == 1


def test_walk_domains_from_input_list(fake_helper, capsys, tmp_path):
    seeds = tmp_path / 'seeds.txt'
    seeds.write_text('a.example\n')
    with patch('nsecwalker.cli.DnsHelper', return_value=fake_helper(RING)):
        assert run_main(['-n', '192.0.2.1', '-iL', str(seeds)]) == 0

    assert capsys.readouterr().out.splitlines() == ['b.example.', 'c.example.']


def test_malformed_feed_stops_before_any_query():
    with patch('nsecwalker.lib.resolvers.httpx.get') as mock_get, patch('nsecwalker.cli.DnsHelper') as mock_helper:
        mock_get.return_value.text = '<html>oops</html>\n<p>not csv</p>\n'
        assert run_main(['-o', 'a.example']) == 1

    mock_helper.assert_not_called()
    mock_helper.return_value.get_nsec.assert_not_called()


def test_online_resolvers_are_used(fake_helper):
    feed = textwrap.dedent('''\
        ip_address,name,as_number,as_org,country_code,city,version,error,dnssec,reliability
        192.0.2.10,,,,,,,,true,1.00
        ''')
    helper = fake_helper(RING)
    with patch('nsecwalker.lib.resolvers.httpx.get') as mock_get, patch('nsecwalker.cli.DnsHelper', return_value=helper):
        mock_get.return_value.text = feed
        assert run_main(['-o', '--feed-url', 'https://feed.example/ns.csv', 'a.example']) == 0

    assert mock_get.call_args.args[0] == 'https://feed.example/ns.csv'
    assert {endpoint for _, endpoint in helper.calls} == {Endpoint('192.0.2.10')}


@pytest.mark.parametrize(
    'argv',
    [
        ['-c', '0', 'a.example'],
        ['-r', '-1', 'a.example'],
        ['-iL', 'seeds.txt', 'a.example'],
        ['-iL', '/nonexistent/seeds.txt'],
        ['-n', 'not-an-ip', 'a.example'],
    ],
)
def test_invalid_options_exit_with_error(argv):
    with patch('nsecwalker.cli.DnsHelper') as mock_helper:
        assert run_main(argv) == 1
    mock_helper.return_value.get_nsec.assert_not_called()


def test_version(capsys):
    assert run_main(['-V']) == 0
    assert cli.__version__ in capsys.readouterr().out


def test_build_pool_prefers_user_resolvers():
    with patch('nsecwalker.cli.load_from_feed') as mock_feed:
        pool = cli.build_pool('192.0.2.1,192.0.2.2:5353', online=True)
    mock_feed.assert_not_called()
    assert list(pool) == [Endpoint('192.0.2.1'), Endpoint('192.0.2.2', 5353)]


def test_build_pool_defaults_to_static_list():
    pool = cli.build_pool()
    assert Endpoint('8.8.8.8') in list(pool)


def test_build_pool_rejects_empty_user_list():
    with pytest.raises(ResolverError):
        cli.build_pool(' , ')


def test_run_drains_workers_after_read_error(fake_helper):
    def broken_lines():
        yield 'a.example'
        raise OSError('read failed')

    emitted = []
    pool = cli.build_pool('192.0.2.1')
    found = cli.run(pool, broken_lines(), fake_helper(RING), concurrency=2, emit=emitted.append)

    assert found == 2
    assert emitted == ['b.example.', 'c.example.']


def test_run_with_mocked_helper_and_failing_resolvers():
    helper = MagicMock()
    helper.get_nsec.side_effect = QueryError('timeout')
    pool = cli.build_pool('192.0.2.1,192.0.2.2')

    found = cli.run(pool, ['a.example'], helper, concurrency=1, retries=2)

    assert found == 0
    assert helper.get_nsec.call_count == 3


@pytest.mark.parametrize('flags, verbose', [([], False), (['-v'], True)])
def test_stdout_stays_clean_in_both_modes(fake_helper, capsys, flags, verbose):
    with patch('nsecwalker.cli.DnsHelper', return_value=fake_helper(RING)):
        assert run_main(['-n', '192.0.2.1', *flags, 'a.example']) == 0

    captured = capsys.readouterr()
    assert captured.out.splitlines() == ['b.example.', 'c.example.']
    assert ('Loop detected' in captured.err) is verbose


@pytest.mark.parametrize('flags, verbose', [([], False), (['-v'], True)])
def test_retry_diagnostics_only_when_verbose(fake_helper, capsys, flags, verbose):
    failing = (Endpoint('192.0.2.1'), Endpoint('192.0.2.2'))
    with patch('nsecwalker.cli.DnsHelper', return_value=fake_helper(RING, failing=failing)):
        assert run_main(['-n', '192.0.2.1,192.0.2.2', '-r', '1', *flags, 'a.example']) == 0

    captured = capsys.readouterr()
    assert captured.out == ''
    for message in ('Error querying DNS', 'Retrying a.example.', 'Max retries reached'):
        assert (message in captured.err) is verbose


def test_loglevel_defaults_to_warning(fake_helper, capsys):
    with patch('nsecwalker.cli.DnsHelper', return_value=fake_helper(RING)):
        assert run_main(['-n', '192.0.2.1', 'a.example']) == 0
    assert 'names found' not in capsys.readouterr().err

    with patch('nsecwalker.cli.DnsHelper', return_value=fake_helper(RING)):
        assert run_main(['-n', '192.0.2.1', '--loglevel', 'INFO', 'a.example']) == 0
    assert '2 names found' in capsys.readouterr().err


def test_run_stops_when_output_is_closed(fake_helper):
    class ClosedPipe(io.StringIO):
        def write(self, data):
            raise BrokenPipeError(32, 'Broken pipe')

    chain = {f's{i}.example.': [f'n{i}.example.'] for i in range(6)}
    helper = fake_helper(chain)
    writer = NameWriter(ClosedPipe())
    pool = cli.build_pool('192.0.2.1')

    found = cli.run(pool, [f's{i}.example' for i in range(6)], helper, concurrency=1, emit=writer)

    assert found == 0
    assert writer.closed
    assert helper.hosts == ['s0.example.']
