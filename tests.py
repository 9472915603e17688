import os
import shutil
import subprocess
import sys
import threading
from concurrent import futures
from io import StringIO

import pytest
import requests
import requests_cache

import ghsync


class MockResponse:

    def __init__(self, status_code=200, json=None, links={}):
        assert json is not None
        self.status_code = status_code
        self.links = {
            rel: dict(rel=rel, url=url)
            for rel, url in links.items()
        }
        self._json = json

    def json(self):
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError()


class MockRequestGet:

    user_endpoint = 'https://api.github.com/user'

    def __init__(self):
        self.responses = {}
        self.requested = []
        self.not_found = MockResponse(
            status_code=404, json={'message': 'Not Found'},
        )

    def update(self, responses):
        self.responses.update(responses)

    def set_user(self, user):
        if user is None:
            if self.user_endpoint in self.responses:
                del self.responses[self.user_endpoint]
        else:
            self.responses[self.user_endpoint] = MockResponse(
                json={'login': user},
            )

    def set_account(self, login, type='User'):
        self.responses['https://api.github.com/users/%s' % login] = (
            MockResponse(json={'login': login, 'type': type}))

    def __call__(self, url, headers=None):
        self.requested.append(url)
        return self.responses.get(url, self.not_found)


@pytest.fixture(autouse=True)
def mock_requests_get(monkeypatch):
    mock_get = MockRequestGet()
    monkeypatch.setattr(requests, 'get', mock_get)
    monkeypatch.setattr(requests.Session, 'get', mock_get)
    mock_get.set_user(None)
    return mock_get


@pytest.fixture(autouse=True)
def mock_requests_cache(monkeypatch):
    monkeypatch.setattr(requests_cache, 'install_cache', lambda *a, **kw: None)


class FakeProcess:
    def __init__(self, stdout=b'', stderr=b'', rc=0):
        self.stdout = stdout
        self.stderr = stderr
        self.rc = rc

    def communicate(self):
        return self.stdout, self.stderr

    def wait(self):
        return self.rc


class FakeGit:
    """A subprocess.Popen replacement that pretends to be git.

    ``results`` maps (git subcommand, repository name) to (rc, output).
    ``heads`` maps a repository name to the successive outputs of
    git describe, unless ``results`` has a describe entry for it.
    A successful clone marks the target as present (and
    creates it if its parent directory exists).
    """

    def __init__(self):
        self.commands = []
        self.results = {}
        self.heads = {}
        self.present = set()

    def exists(self, path):
        return path in self.present

    def git_commands(self):
        return [(args[1:], cwd) for args, cwd in self.commands
                if args[0] == 'git']

    def __call__(self, args, stdout=None, stderr=None, cwd=None):
        self.commands.append((args, cwd))
        if args[0] != 'git':
            return FakeProcess()
        command = args[1]
        if command == 'clone':
            target = args[-1]
            name = os.path.basename(target)
        else:
            name = os.path.basename(cwd)
        if command == 'describe' and (command, name) in self.results:
            rc, output = self.results[command, name]
            return FakeProcess(b'', output, rc)
        if command == 'describe':
            heads = self.heads.get(name, ['abcdef0\n'])
            head = heads.pop(0) if len(heads) > 1 else heads[0]
            return FakeProcess(head.encode(), b'', 0)
        rc, output = self.results.get((command, name), (0, b''))
        if command == 'clone' and rc == 0:
            self.present.add(target)
            if os.path.isdir(os.path.dirname(target)):
                os.makedirs(target)
        if stderr == subprocess.STDOUT:
            return FakeProcess(output, None, rc)
        return FakeProcess(b'', output, rc)


@pytest.fixture(autouse=True)
def fake_git(monkeypatch):
    fake = FakeGit()
    monkeypatch.setattr(subprocess, 'Popen', fake)
    return fake


@pytest.fixture(autouse=True)
def mock_which(monkeypatch):
    monkeypatch.setattr(shutil, 'which', lambda cmd: '/usr/bin/%s' % cmd)


@pytest.fixture(autouse=True)
def mock_config_filename(monkeypatch):
    monkeypatch.setattr(ghsync, 'CONFIG_FILE', '/dev/null')


def make_page_url(url, page, extra):
    # Some of the incoming test URLs already have query args. If so,
    # append the page arguments using the appropriate separator.
    sep = '?'
    if '?' in url:
        sep = '&'
    if page == 1:
        return '%s%s%sper_page=100' % (url, sep, extra)
    else:
        return '%s%s%spage=%d&per_page=100' % (url, sep, extra, page)


def mock_multi_page_api_responses(url, pages, extra='sort=full_name&'):
    assert len(pages) > 0
    responses = {}
    for n, page in enumerate(pages, 1):
        page_url = make_page_url(url, n, extra)
        links = {}
        if n != len(pages):
            next_page_url = make_page_url(url, n + 1, extra)
            links['next'] = next_page_url
        responses[page_url] = MockResponse(json=page, links=links)
    return responses


def repo(name, owner='test_user', **kwargs):
    repo = {
        'name': name,
        'clone_url': 'https://github.com/%s/%s.git' % (owner, name),
        'ssh_url': 'git@github.com:%s/%s.git' % (owner, name),
        'default_branch': 'master',
    }
    repo.update(kwargs)
    return repo


def Repo(name, **kwargs):
    return ghsync.Repo.from_repo(repo(name, **kwargs))


def make_sync(fake_git, stream=None, **kwargs):
    kwargs.setdefault('destination_dir', '/backup')
    config = ghsync.make_config(**kwargs)
    reporter = ghsync.Reporter(stream=stream if stream else StringIO(),
                               quiet=config.quiet)
    return ghsync.RepoSync(config, reporter, exists=fake_git.exists)


def sync_all(wrangler, repos):
    with ghsync.SequentialJobQueue() as queue:
        for r in repos:
            queue.add(wrangler.repo_task(r))


def clone_cmd(name, *flags):
    return (['clone', '--verbose'] + list(flags)
            + ['git@github.com:test_user/%s.git' % name, '/backup/%s' % name],
            None)


def pull_cmd(name, *flags):
    return (['pull', '--verbose'] + list(flags or ['--ff-only'])
            + ['git@github.com:test_user/%s.git' % name],
            '/backup/%s' % name)


def describe_cmd(name):
    return (['describe', '--always', '--dirty'], '/backup/%s' % name)


def test_get_json_and_links(mock_requests_get):
    url = 'https://github.example.com/api'
    mock_requests_get.update({
        url: MockResponse(
            json={'json': 'data'},
            links={'next': 'https://github.example.com/api?page=2'},
        ),
    })
    data, links = ghsync.get_json_and_links(url)
    assert data == {'json': 'data'}
    assert links == {
        'next': {
            'rel': 'next',
            'url': 'https://github.example.com/api?page=2',
        },
    }


def test_get_json_and_links_failure(mock_requests_get):
    url = 'https://github.example.com/api'
    mock_requests_get.update({
        url: MockResponse(
            status_code=403,
            json={'message': 'API rate limit exceeded'},
        ),
    })
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.get_json_and_links(url)
    assert not isinstance(ctx.value, ghsync.NotFound)
    assert str(ctx.value) == (
        'Failed to fetch https://github.example.com/api:\n'
        'API rate limit exceeded'
    )


class MockHTMLResponse(MockResponse):

    def json(self):
        raise ValueError('Expecting value: line 1 column 1 (char 0)')


def test_get_json_and_links_failure_without_json_body(mock_requests_get):
    url = 'https://github.example.com/api'
    mock_requests_get.update({
        url: MockHTMLResponse(status_code=403, json={}),
    })
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.get_json_and_links(url)
    assert str(ctx.value) == (
        'Failed to fetch https://github.example.com/api:\n'
        'HTTP 403'
    )


def test_get_json_and_links_not_found_without_message(mock_requests_get):
    url = 'https://github.example.com/api'
    mock_requests_get.update({
        url: MockResponse(status_code=404, json=[]),
    })
    with pytest.raises(ghsync.NotFound) as ctx:
        ghsync.get_json_and_links(url)
    assert str(ctx.value).endswith('\nHTTP 404')


def test_get_json_and_links_not_found(mock_requests_get):
    with pytest.raises(ghsync.NotFound):
        ghsync.get_json_and_links('https://github.example.com/nope')


def test_get_json_and_links_server_error(mock_requests_get):
    url = 'https://github.example.com/api'
    mock_requests_get.update({
        url: MockResponse(status_code=502, json={}),
    })
    with pytest.raises(requests.HTTPError):
        ghsync.get_json_and_links(url)


def test_get_json_and_links_connection_error(monkeypatch):
    def refuse(self, url, headers=None):
        raise requests.ConnectionError('connection refused')
    monkeypatch.setattr(requests.Session, 'get', refuse)
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.get_json_and_links('https://github.example.com/api')
    assert str(ctx.value) == (
        'Failed to fetch https://github.example.com/api:\n'
        'connection refused'
    )


def test_get_github_list(mock_requests_get):
    mock_requests_get.update({
        'https://github.example.com/api?per_page=100': MockResponse(
            json=[{'item': 1}, {'item': 2}],
            links={
                'next': 'https://github.example.com/api?page=2&per_page=100',
            }),
        'https://github.example.com/api?page=2&per_page=100': MockResponse(
            json=[{'item': 3}, {'item': 4}],
            links={
                'next': 'https://github.example.com/api?page=3&per_page=100',
            }),
        'https://github.example.com/api?page=3&per_page=100': MockResponse(
            json=[{'item': 5}]),
    })
    url = 'https://github.example.com/api'
    progress = []
    res = ghsync.get_github_list(url, progress_callback=progress.append)
    assert res == [
        {'item': 1},
        {'item': 2},
        {'item': 3},
        {'item': 4},
        {'item': 5},
    ]
    assert progress == [2, 4]


class FakeTerminal(StringIO):

    def isatty(self):
        return True


def test_Reporter_info_and_error():
    buf = StringIO()
    reporter = ghsync.Reporter(stream=buf)
    reporter.info('hello')
    reporter.error('oh no')
    assert buf.getvalue() == 'hello\noh no\n'


def test_Reporter_quiet_shows_only_errors():
    buf = StringIO()
    reporter = ghsync.Reporter(stream=buf, quiet=True)
    reporter.info('hello')
    reporter.error('oh no')
    reporter.finish('all done')
    assert buf.getvalue() == 'oh no\n'


def test_Reporter_status_needs_a_terminal():
    buf = StringIO()
    reporter = ghsync.Reporter(stream=buf)
    reporter.status('Fetching...')
    reporter.clear()
    assert buf.getvalue() == ''


def test_Reporter_status_on_a_terminal():
    buf = FakeTerminal()
    reporter = ghsync.Reporter(stream=buf)
    reporter.status('hello')
    reporter.info('world')
    reporter.finish('bye')
    assert buf.getvalue() == (
        '\rhello\r'
        '\r     \r'
        'world\n'
        'bye\n'
    )


def test_Reporter_item_is_written_when_finished():
    buf = StringIO()
    reporter = ghsync.Reporter(stream=buf)
    item = reporter.item('+ xyzzy')
    item.update(' (new)')
    item.extra_info('Cloning into xyzzy...\ndone.')
    assert buf.getvalue() == ''
    item.finished()
    assert buf.getvalue() == (
        '+ xyzzy (new)\n'
        '    Cloning into xyzzy...\n'
        '    done.\n'
    )


def test_Reporter_item_colors_on_a_terminal():
    buf = FakeTerminal()
    reporter = ghsync.Reporter(stream=buf)
    item = reporter.item('+ xyzzy')
    item.update(' (updated)')
    item.finished()
    item = reporter.item('+ frob')
    item.update(' (failed)', failed=True)
    item.error_info('fatal: oops')
    item.finished()
    assert buf.getvalue() == (
        '\033[32m+ xyzzy (updated)\033[m\n'
        '\033[31m+ frob (failed)\033[m\n'
        '\033[31m    fatal: oops\033[m\n'
    )


def test_Reporter_quiet_item():
    buf = StringIO()
    reporter = ghsync.Reporter(stream=buf, quiet=True)
    item = reporter.item('+ xyzzy')
    item.update(' (updated)')
    item.extra_info('Updating 1234..5678')
    item.finished()
    assert buf.getvalue() == ''


def test_Reporter_quiet_item_with_errors():
    buf = StringIO()
    reporter = ghsync.Reporter(stream=buf, quiet=True)
    item = reporter.item('+ xyzzy')
    item.extra_info('From github.com:test_user/xyzzy')
    item.error_info('fatal: Not possible to fast-forward, aborting.')
    item.finished()
    assert buf.getvalue() == (
        '+ xyzzy\n'
        '    fatal: Not possible to fast-forward, aborting.\n'
    )


def test_Reporter_context_manager():
    buf = StringIO()
    with pytest.raises(KeyboardInterrupt):
        with ghsync.Reporter(stream=buf, quiet=True):
            raise KeyboardInterrupt()
    assert buf.getvalue() == 'Interrupted\n'


def test_Repo():
    r1 = ghsync.Repo('foo', 'git@github.com:test_user/foo.git',
                     ['https://github.com/test_user/foo.git'], 'main')
    r2 = ghsync.Repo('foo', 'git@github.com:test_user/foo.git',
                     ['https://github.com/test_user/foo.git'], 'main')
    r3 = ghsync.Repo('foo', 'git@github.com:test_user/foo.git',
                     ['https://github.com/test_user/foo.git'], 'master')
    assert r1 == r2
    assert not r1 != r2
    assert r1 != r3
    assert r1 != 'foo'
    assert repr(r1) == (
        "Repo('foo', 'git@github.com:test_user/foo.git',"
        " {'git@github.com:test_user/foo.git',"
        " 'https://github.com/test_user/foo.git'}, default_branch='main')"
    )


def test_Repo_from_repo():
    r = Repo('xyzzy', default_branch='main')
    assert r.name == 'xyzzy'
    assert r.clone_url == 'git@github.com:test_user/xyzzy.git'
    assert r.urls == {
        'git@github.com:test_user/xyzzy.git',
        'https://github.com/test_user/xyzzy.git',
    }
    assert r.default_branch == 'main'


def test_Repo_from_repo_empty_repository():
    data = repo('empty')
    del data['default_branch']
    assert ghsync.Repo.from_repo(data).default_branch is None


def test_make_config_defaults():
    config = ghsync.make_config()
    assert config == ghsync.SyncConfig(
        destination_dir=os.path.join(os.path.expanduser('~'),
                                     'github-backup'),
        include_pattern=None,
        exclude_pattern=None,
        all_branches=False,
        pull_mode='ff-only',
        recurse_submodules=False,
        quiet=False,
        dry_run=False,
    )


def test_make_config_expands_destination(monkeypatch):
    monkeypatch.setenv('HOME', '/home/test_user')
    config = ghsync.make_config(destination_dir='~/backups')
    assert config.destination_dir == '/home/test_user/backups'


def test_make_config_empty_patterns_mean_no_filter():
    config = ghsync.make_config(include_pattern='', exclude_pattern='')
    assert config.include_pattern is None
    assert config.exclude_pattern is None


@pytest.mark.parametrize('pull_mode', ['ff-only', 'rebase', 'merge'])
def test_make_config_pull_modes(pull_mode):
    assert ghsync.make_config(pull_mode=pull_mode).pull_mode == pull_mode


def test_make_config_bad_pull_mode():
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.make_config(pull_mode='squash')
    assert str(ctx.value) == (
        'Unknown pull mode: squash. Valid options are: ff-only, rebase, merge.'
    )


def test_make_config_bad_pattern():
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.make_config(exclude_pattern='foo(')
    assert str(ctx.value).startswith("Invalid exclude pattern 'foo(': ")


def test_RepoFilter_no_patterns_admits_everything():
    repo_filter = ghsync.RepoFilter()
    for name in ['app', 'docs', '']:
        assert repo_filter.admits(name)


def test_RepoFilter_exclude_wins_over_include():
    repo_filter = ghsync.RepoFilter(include='app', exclude='internal')
    assert repo_filter.rejection('app-internal') == 'excluded'
    assert repo_filter.rejection('app') is None


def test_RepoFilter_include():
    repo_filter = ghsync.RepoFilter(include='^app')
    assert repo_filter.admits('app')
    assert repo_filter.admits('app-internal')
    assert repo_filter.rejection('docs') == 'not included'
    assert repo_filter.rejection('webapp') == 'not included'


def test_RepoFilter_pattern_is_searched_in_the_name():
    repo_filter = ghsync.RepoFilter(exclude='internal')
    assert not repo_filter.admits('app-internal-tools')
    assert repo_filter.admits('app')


def test_RepoFilter_empty_patterns():
    repo_filter = ghsync.RepoFilter(include='', exclude='')
    assert repo_filter.include is None
    assert repo_filter.exclude is None
    assert repo_filter.admits('anything')


def test_RepoLister_auth():
    token = 'UNITTEST'
    lister = ghsync.RepoLister(token=token)
    assert lister.session.auth == ('', token)


def test_RepoLister_list_repos_for_user(mock_requests_get):
    mock_requests_get.set_account('test_user')
    mock_requests_get.update(mock_multi_page_api_responses(
        url='https://api.github.com/users/test_user/repos',
        pages=[
            [
                repo('xyzzy'),
                repo('project-foo'),
            ],
        ],
    ))
    lister = ghsync.RepoLister(ghsync.Reporter(stream=StringIO()))
    result = lister.list_repos('test_user')
    assert result == [
        Repo('project-foo'),
        Repo('xyzzy'),
    ]


def test_RepoLister_list_repos_for_org(mock_requests_get):
    mock_requests_get.set_account('acme', type='Organization')
    mock_requests_get.update(mock_multi_page_api_responses(
        url='https://api.github.com/orgs/acme/repos',
        pages=[
            [
                repo('docs', owner='acme'),
                repo('app', owner='acme'),
            ],
        ],
    ))
    lister = ghsync.RepoLister(ghsync.Reporter(stream=StringIO()))
    result = lister.list_repos('acme')
    assert [r.name for r in result] == ['app', 'docs']
    assert result[0].clone_url == 'git@github.com:acme/app.git'


def test_RepoLister_list_repos_with_own_token(mock_requests_get):
    mock_requests_get.set_account('test_user')
    mock_requests_get.set_user('Test_User')
    mock_requests_get.update(mock_multi_page_api_responses(
        url='https://api.github.com/user/repos?affiliation=owner',
        pages=[
            [
                repo('xyzzy'),
                repo('secret', private=True),
            ],
        ],
    ))
    lister = ghsync.RepoLister(ghsync.Reporter(stream=StringIO()),
                               token='fake-token')
    result = lister.list_repos('test_user')
    assert [r.name for r in result] == ['secret', 'xyzzy']


def test_RepoLister_list_repos_with_someone_elses_token(mock_requests_get,
                                                        capsys):
    mock_requests_get.set_account('test_user')
    mock_requests_get.set_user('some-other-user')
    mock_requests_get.update(mock_multi_page_api_responses(
        url='https://api.github.com/users/test_user/repos',
        pages=[
            [
                repo('xyzzy'),
            ],
        ],
    ))
    lister = ghsync.RepoLister(ghsync.Reporter(stream=StringIO()),
                               token='fake-token')
    result = lister.list_repos('test_user')
    assert result == [Repo('xyzzy')]
    assert capsys.readouterr().err == (
        'Warning: the GitHub token does not belong to test_user,'
        ' listing public repositories only\n'
    )


def test_RepoLister_list_repos_no_such_account(mock_requests_get):
    lister = ghsync.RepoLister(ghsync.Reporter(stream=StringIO()))
    with pytest.raises(ghsync.Error) as ctx:
        lister.list_repos('nobody')
    assert str(ctx.value) == (
        "GitHub user or organization 'nobody' does not exist."
    )


def test_RepoLister_list_repos_progress_status(mock_requests_get):
    mock_requests_get.set_account('test_user')
    mock_requests_get.update(mock_multi_page_api_responses(
        url='https://api.github.com/users/test_user/repos',
        pages=[
            [repo('xyzzy')],
            [repo('project-foo')],
        ],
    ))
    buf = FakeTerminal()
    lister = ghsync.RepoLister(ghsync.Reporter(stream=buf))
    lister.list_repos('test_user')
    message = "Fetching list of test_user's repositories from GitHub..."
    assert buf.getvalue() == (
        '\r{0}\r'
        '\r{1}\r'
        '\r{0} (1)\r'
        '\r{1}    \r'
    ).format(message, ' ' * len(message))


def test_RepoSync_clones_missing_repository(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert fake_git.git_commands() == [
        clone_cmd('xyzzy', '--single-branch', '--branch', 'master'),
        pull_cmd('xyzzy'),
    ]
    assert buf.getvalue() == '+ xyzzy (new)\n'
    assert wrangler.n_repos == 1
    assert wrangler.n_new == 1
    assert wrangler.n_updated == 0
    assert wrangler.n_failed == 0


def test_RepoSync_pulls_existing_repository(fake_git):
    fake_git.present.add('/backup/xyzzy')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert fake_git.git_commands() == [
        describe_cmd('xyzzy'),
        pull_cmd('xyzzy'),
        describe_cmd('xyzzy'),
    ]
    assert buf.getvalue() == '+ xyzzy\n'
    assert wrangler.n_repos == 1
    assert wrangler.n_new == 0
    assert wrangler.n_updated == 0


def test_RepoSync_reports_updates(fake_git):
    fake_git.present.add('/backup/xyzzy')
    fake_git.heads['xyzzy'] = ['aaaaaaa\n', 'bbbbbbb\n']
    fake_git.results['pull', 'xyzzy'] = (0, b'Updating aaaaaaa..bbbbbbb\n')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert buf.getvalue() == (
        '+ xyzzy (updated)\n'
        '    Updating aaaaaaa..bbbbbbb\n'
    )
    assert wrangler.n_updated == 1


def test_RepoSync_all_branches(fake_git):
    wrangler = make_sync(fake_git, all_branches=True)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert fake_git.git_commands()[0] == clone_cmd(
        'xyzzy', '--no-single-branch')


def test_RepoSync_unknown_default_branch(fake_git):
    wrangler = make_sync(fake_git)
    wrangler.repo_task(Repo('xyzzy', default_branch=None)).run()
    assert fake_git.git_commands()[0] == clone_cmd(
        'xyzzy', '--single-branch')


def test_RepoSync_recurse_submodules_and_quiet(fake_git):
    wrangler = make_sync(fake_git, recurse_submodules=True, quiet=True)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert fake_git.git_commands() == [
        (['clone', '--recurse-submodules', '--quiet', '--single-branch',
          '--branch', 'master', 'git@github.com:test_user/xyzzy.git',
          '/backup/xyzzy'], None),
        (['pull', '--recurse-submodules', '--quiet', '--ff-only',
          'git@github.com:test_user/xyzzy.git'], '/backup/xyzzy'),
    ]


@pytest.mark.parametrize('pull_mode, flags', [
    ('ff-only', ['--ff-only']),
    ('rebase', ['--rebase=true']),
    ('merge', ['--rebase=false', '--no-edit']),
])
def test_RepoSync_pull_modes(fake_git, pull_mode, flags):
    fake_git.present.add('/backup/xyzzy')
    wrangler = make_sync(fake_git, pull_mode=pull_mode)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert pull_cmd('xyzzy', *flags) in fake_git.git_commands()


def test_RepoSync_clone_failure_skips_repository(fake_git):
    fake_git.results['clone', 'app'] = (
        128, b'ERROR: Repository not found.\n')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    sync_all(wrangler, [Repo('app'), Repo('docs')])
    assert fake_git.git_commands() == [
        clone_cmd('app', '--single-branch', '--branch', 'master'),
        clone_cmd('docs', '--single-branch', '--branch', 'master'),
        pull_cmd('docs'),
    ]
    assert buf.getvalue() == (
        '+ app (failed)\n'
        '    ERROR: Repository not found.\n'
        '    git clone exited with 128\n'
        '+ docs (new)\n'
    )
    assert wrangler.n_repos == 2
    assert wrangler.n_new == 1
    assert wrangler.n_failed == 1


def test_RepoSync_clone_failure_shown_in_quiet_mode(fake_git):
    fake_git.results['clone', 'app'] = (
        128, b'ERROR: Repository not found.\n')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf, quiet=True)
    sync_all(wrangler, [Repo('app'), Repo('docs')])
    assert buf.getvalue() == (
        '+ app (failed)\n'
        '    ERROR: Repository not found.\n'
        '    git clone exited with 128\n'
    )


def test_RepoSync_ff_only_divergence_stops_the_run(fake_git):
    fake_git.present.add('/backup/docs')
    fake_git.results['pull', 'docs'] = (
        128, b'fatal: Not possible to fast-forward, aborting.\n')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    with pytest.raises(ghsync.PullError) as ctx:
        sync_all(wrangler, [Repo('app'), Repo('docs'), Repo('zope')])
    assert str(ctx.value) == (
        'Failed to pull changes for repository: docs.'
        ' Please resolve any conflicts manually.'
    )
    assert fake_git.git_commands() == [
        clone_cmd('app', '--single-branch', '--branch', 'master'),
        pull_cmd('app'),
        describe_cmd('docs'),
        pull_cmd('docs'),
    ]
    assert buf.getvalue() == (
        '+ app (new)\n'
        '+ docs (failed)\n'
        '    fatal: Not possible to fast-forward, aborting.\n'
        '    git pull exited with 128\n'
    )
    assert wrangler.n_failed == 1


def test_RepoSync_pull_failure_after_clone_stops_the_run(fake_git):
    fake_git.results['pull', 'app'] = (1, b'fatal: couldn\'t find HEAD\n')
    wrangler = make_sync(fake_git)
    with pytest.raises(ghsync.PullError):
        sync_all(wrangler, [Repo('app'), Repo('docs')])
    assert [cmd[0][0] for cmd in fake_git.git_commands()] == [
        'clone', 'pull',
    ]


def test_RepoSync_os_error_in_working_copy_stops_the_run(fake_git,
                                                         monkeypatch):
    fake_git.present.add('/backup/docs')

    def popen(args, stdout=None, stderr=None, cwd=None):
        if cwd == '/backup/docs':
            raise PermissionError(13, 'Permission denied', cwd)
        return fake_git(args, stdout=stdout, stderr=stderr, cwd=cwd)

    monkeypatch.setattr(subprocess, 'Popen', popen)
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    with pytest.raises(ghsync.PullError) as ctx:
        sync_all(wrangler, [Repo('docs'), Repo('zope')])
    assert str(ctx.value) == (
        "Failed to pull changes for repository: docs:"
        " [Errno 13] Permission denied: '/backup/docs'"
    )
    assert fake_git.git_commands() == []
    assert buf.getvalue() == (
        '+ docs (failed)\n'
        "    PermissionError: [Errno 13] Permission denied: '/backup/docs'\n"
    )
    assert wrangler.n_repos == 1
    assert wrangler.n_failed == 1


def test_RepoSync_describe_failure_counts_as_failed(fake_git):
    fake_git.present.add('/backup/docs')
    fake_git.results['describe', 'docs'] = (
        128, b'fatal: not a git repository\n')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    sync_all(wrangler, [Repo('docs')])
    assert fake_git.git_commands() == [
        describe_cmd('docs'),
        pull_cmd('docs'),
        describe_cmd('docs'),
    ]
    assert buf.getvalue() == (
        '+ docs\n'
        '    fatal: not a git repository\n'
        '    git describe exited with 128\n'
        '    fatal: not a git repository\n'
        '    git describe exited with 128\n'
    )
    assert wrangler.n_failed == 1


def test_RepoSync_skips_filtered_repositories(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf, exclude_pattern='internal')
    sync_all(wrangler, [Repo('app'), Repo('app-internal'), Repo('docs')])
    assert buf.getvalue() == (
        '+ app (new)\n'
        '- app-internal (excluded)\n'
        '+ docs (new)\n'
    )
    assert [cmd[1] for cmd in fake_git.git_commands()
            if cmd[0][0] == 'pull'] == ['/backup/app', '/backup/docs']
    assert wrangler.n_repos == 2
    assert wrangler.n_skipped == 1
    assert wrangler.summary() == (
        '2 repositories: 2 new, 0 updated, 1 skipped, 0 failed.'
    )


def test_RepoSync_skips_non_included_repositories(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf, include_pattern='^doc')
    sync_all(wrangler, [Repo('app'), Repo('docs')])
    assert buf.getvalue() == (
        '- app (not included)\n'
        '+ docs (new)\n'
    )


def test_RepoSync_skip_messages_are_quiet(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf, include_pattern='^doc', quiet=True)
    sync_all(wrangler, [Repo('app'), Repo('docs')])
    assert buf.getvalue() == ''


def test_RepoSync_is_idempotent(fake_git):
    repos = [Repo('app'), Repo('docs')]
    first = make_sync(fake_git)
    sync_all(first, repos)
    assert first.n_new == 2
    del fake_git.commands[:]
    second = make_sync(fake_git)
    sync_all(second, repos)
    assert [cmd[0][0] for cmd in fake_git.git_commands()] == [
        'describe', 'pull', 'describe',
        'describe', 'pull', 'describe',
    ]
    assert second.n_new == 0
    assert second.n_updated == 0
    assert second.n_failed == 0


def test_RepoSync_dry_run(fake_git):
    fake_git.present.add('/backup/docs')
    buf = StringIO()
    wrangler = make_sync(fake_git, buf, dry_run=True)
    sync_all(wrangler, [Repo('app'), Repo('docs')])
    assert fake_git.commands == []
    assert buf.getvalue() == (
        '+ app (would clone) (would pull)\n'
        '+ docs (would pull)\n'
    )


def test_RepoSync_presence_is_checked_once(fake_git):
    checked = []

    def exists(path):
        checked.append(path)
        return False

    config = ghsync.make_config(destination_dir='/backup')
    wrangler = ghsync.RepoSync(config, ghsync.Reporter(stream=StringIO()),
                               exists=exists)
    wrangler.repo_task(Repo('xyzzy')).run()
    assert checked == ['/backup/xyzzy']


def test_RepoSync_local_state(fake_git):
    fake_git.present.add('/backup/docs')
    wrangler = make_sync(fake_git)
    assert wrangler.local_state('/backup/docs') is ghsync.LocalState.PRESENT
    assert wrangler.local_state('/backup/app') is ghsync.LocalState.ABSENT


def raise_exception(*args, **kw):
    raise Exception("oh no")


def test_RepoTask_run_handles_errors(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    task = wrangler.repo_task(Repo('xyzzy'))
    task.clone = raise_exception
    task.run()
    assert buf.getvalue() == (
        '+ xyzzy (failed)\n'
        '    Exception: oh no\n'
    )
    assert wrangler.n_failed == 1


def test_RepoTask_aborted(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    task = wrangler.repo_task(Repo('xyzzy'))
    task.aborted()
    assert buf.getvalue() == '+ xyzzy (aborted)\n'
    assert wrangler.n_repos == 1
    assert wrangler.n_failed == 1


def test_RepoTask_call_shows_output(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    task = wrangler.repo_task(Repo('xyzzy'))
    task.progress_item = wrangler.reporter.item('+ xyzzy')
    fake_git.results['fetch', 'xyzzy'] = (0, b'From github.com\n')
    assert task.call(['git', 'fetch'], cwd='/backup/xyzzy') == 0
    task.progress_item.finished()
    assert buf.getvalue() == (
        '+ xyzzy\n'
        '    From github.com\n'
    )


def test_RepoTask_check_output_error_handling(fake_git):
    buf = StringIO()
    wrangler = make_sync(fake_git, buf)
    task = wrangler.repo_task(Repo('xyzzy'))
    task.progress_item = wrangler.reporter.item('+ xyzzy')
    fake_git.results['rev-parse', 'xyzzy'] = (1, b'fatal: bad revision\n')
    assert task.check_output(['git', 'rev-parse', 'HEAD'],
                             cwd='/backup/xyzzy') == ''
    task.progress_item.finished()
    assert buf.getvalue() == (
        '+ xyzzy\n'
        '    fatal: bad revision\n'
        '    git rev-parse exited with 1\n'
    )
    assert task.failed


class MockTask:
    def __init__(self, n, output):
        self.n = n
        self.output = output

    def run(self):
        self.output.append(self.n)

    def aborted(self):
        self.output.append(-self.n)


class BlockingTask(MockTask):
    def __init__(self, n, output, event):
        super().__init__(n, output)
        self.event = event

    def run(self):
        self.event.wait()
        super().run()


class FailingTask:
    def run(self):
        raise ghsync.PullError('Failed to pull changes for repository: docs.')

    def aborted(self):
        pass


def test_SequentialJobQueue():
    jobs = []
    with ghsync.SequentialJobQueue() as queue:
        queue.add(MockTask(1, jobs))
        queue.add(MockTask(2, jobs))
        queue.add(MockTask(3, jobs))
    assert jobs == [1, 2, 3]


def test_SequentialJobQueue_stops_on_pull_error():
    jobs = []
    with pytest.raises(ghsync.PullError):
        with ghsync.SequentialJobQueue() as queue:
            queue.add(MockTask(1, jobs))
            queue.add(FailingTask())
            queue.add(MockTask(3, jobs))
    assert jobs == [1]


def test_ConcurrentJobQueue():
    done = []
    with ghsync.ConcurrentJobQueue(2) as queue:
        queue.add(MockTask(1, done))
        queue.add(MockTask(2, done))
        queue.add(MockTask(3, done))
    assert set(done) == {1, 2, 3}


def test_ConcurrentJobQueue_can_be_interrupted(monkeypatch):
    started = threading.Event()

    def interrupt(*args, **kw):
        started.set()
        raise KeyboardInterrupt()

    monkeypatch.setattr(ghsync.futures, 'wait', interrupt)
    done = []
    with pytest.raises(KeyboardInterrupt):
        with ghsync.ConcurrentJobQueue(2) as queue:
            queue.add(BlockingTask(1, done, started))
            queue.add(BlockingTask(2, done, started))
            queue.add(MockTask(3, done))
    assert set(done) == {1, 2, -3}


def test_ConcurrentJobQueue_stops_adding_after_pull_error():
    done = []
    with pytest.raises(ghsync.PullError):
        with ghsync.ConcurrentJobQueue(2) as queue:
            queue.add(FailingTask())
            futures.wait(queue.jobs)
            queue.add(MockTask(1, done))
    assert done == []


def test_ConcurrentJobQueue_finish_reraises_pull_error():
    with pytest.raises(ghsync.PullError):
        with ghsync.ConcurrentJobQueue(2) as queue:
            queue.add(FailingTask())


def test_check_tools():
    ghsync.check_tools()


def test_check_tools_missing_git(monkeypatch):
    monkeypatch.setattr(shutil, 'which', lambda cmd: None)
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.check_tools()
    assert str(ctx.value) == (
        'git is not installed. Please install and configure it'
        ' to use this script.'
    )


def test_ensure_destination_creates_directory(tmp_path):
    buf = StringIO()
    path = str(tmp_path / 'backups' / 'github')
    ghsync.ensure_destination(path, ghsync.Reporter(stream=buf))
    assert os.path.isdir(path)
    assert buf.getvalue() == (
        'Creating backup destination directory: %s\n' % path
    )


def test_ensure_destination_existing_directory(tmp_path):
    buf = StringIO()
    ghsync.ensure_destination(str(tmp_path), ghsync.Reporter(stream=buf))
    assert buf.getvalue() == (
        'Using existing backup destination directory: %s\n' % tmp_path
    )


def test_ensure_destination_dry_run(tmp_path):
    buf = StringIO()
    path = str(tmp_path / 'backups')
    ghsync.ensure_destination(path, ghsync.Reporter(stream=buf),
                              dry_run=True)
    assert not os.path.exists(path)


def test_ensure_destination_failure(tmp_path):
    (tmp_path / 'file').write_text(u'not a directory')
    path = str(tmp_path / 'file' / 'backups')
    with pytest.raises(ghsync.Error) as ctx:
        ghsync.ensure_destination(path, ghsync.Reporter(stream=StringIO()))
    assert str(ctx.value).startswith(
        'Failed to create backup destination directory: %s: ' % path)


def raise_keyboard_interrupt(*args, **kw):
    raise KeyboardInterrupt()


def test_main_version(monkeypatch, capsys):
    monkeypatch.setattr(sys, 'argv', ['ghsync', '--version'])
    with pytest.raises(SystemExit):
        ghsync.main()
    assert capsys.readouterr().out == (
        'ghsync version %s\n' % ghsync.__version__
    )


def test_main_help(monkeypatch, capsys):
    monkeypatch.setattr(sys, 'argv', ['ghsync', '--help'])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert ctx.value.code == 0
    assert '--backup-destination-dir' in capsys.readouterr().out


def test_main_unknown_option(monkeypatch, capsys):
    monkeypatch.setattr(sys, 'argv', ['ghsync', '--frobnicate'])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert ctx.value.code == 2


def test_main_keyboard_interrupt(monkeypatch, capsys):
    monkeypatch.setattr(ghsync, '_main', raise_keyboard_interrupt)
    ghsync.main()


@pytest.fixture()
def acme(mock_requests_get):
    mock_requests_get.set_account('acme', type='Organization')
    mock_requests_get.update(mock_multi_page_api_responses(
        url='https://api.github.com/orgs/acme/repos',
        pages=[
            [
                repo('app', owner='acme'),
                repo('app-internal', owner='acme'),
                repo('docs', owner='acme', default_branch='main'),
            ],
        ],
    ))


def test_main_run(monkeypatch, capsys, fake_git, tmp_path, acme):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path),
    ])
    ghsync.main()
    assert capsys.readouterr().out == (
        'Using existing backup destination directory: {0}\n'
        '+ app (new)\n'
        '+ app-internal (new)\n'
        '+ docs (new)\n'
        '3 repositories: 3 new, 0 updated, 0 skipped, 0 failed.\n'
    ).format(tmp_path)
    assert sorted(os.listdir(str(tmp_path))) == [
        'app', 'app-internal', 'docs',
    ]
    assert (
        ['clone', '--verbose', '--single-branch', '--branch', 'main',
         'git@github.com:acme/docs.git', str(tmp_path / 'docs')], None,
    ) in fake_git.git_commands()


def test_main_run_excludes_repositories(monkeypatch, capsys, fake_git,
                                        tmp_path, acme):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path),
        '--exclude_repositories', 'internal',
    ])
    ghsync.main()
    assert capsys.readouterr().out == (
        'Using existing backup destination directory: {0}\n'
        '+ app (new)\n'
        '- app-internal (excluded)\n'
        '+ docs (new)\n'
        '2 repositories: 2 new, 0 updated, 1 skipped, 0 failed.\n'
    ).format(tmp_path)
    assert sorted(os.listdir(str(tmp_path))) == ['app', 'docs']


def test_main_run_twice(monkeypatch, capsys, fake_git, tmp_path, acme):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path), '--quiet',
    ])
    ghsync.main()
    del fake_git.commands[:]
    ghsync.main()
    assert 'clone' not in [cmd[0][0] for cmd in fake_git.git_commands()]
    assert capsys.readouterr().out == ''


def test_main_run_creates_destination(monkeypatch, capsys, fake_git,
                                      tmp_path, acme):
    destination = tmp_path / 'github-backup'
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(destination), '-i', '^docs$',
    ])
    ghsync.main()
    assert capsys.readouterr().out == (
        'Creating backup destination directory: {0}\n'
        '- app (not included)\n'
        '- app-internal (not included)\n'
        '+ docs (new)\n'
        '1 repositories: 1 new, 0 updated, 2 skipped, 0 failed.\n'
    ).format(destination)
    assert os.listdir(str(destination)) == ['docs']


def test_main_run_cannot_create_destination(monkeypatch, capsys, fake_git,
                                            mock_requests_get, tmp_path,
                                            acme):
    (tmp_path / 'file').write_text(u'not a directory')
    destination = tmp_path / 'file' / 'github-backup'
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(destination),
    ])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value).startswith(
        'Failed to create backup destination directory: {}'.format(
            destination))
    assert mock_requests_get.requested == []
    assert fake_git.commands == []


def test_main_run_bad_pull_mode(monkeypatch, capsys, fake_git,
                                mock_requests_get, tmp_path, acme):
    destination = tmp_path / 'github-backup'
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(destination), '-m', 'squash',
    ])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value) == (
        'Unknown pull mode: squash. Valid options are: ff-only, rebase, merge.'
    )
    assert mock_requests_get.requested == []
    assert fake_git.commands == []
    assert not destination.exists()


def test_main_run_no_such_account(monkeypatch, capsys, fake_git, tmp_path):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'nobody', '-d', str(tmp_path),
    ])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value) == (
        "GitHub user or organization 'nobody' does not exist."
    )
    assert fake_git.commands == []


def test_main_run_default_account(monkeypatch, capsys, mock_requests_get,
                                  tmp_path):
    monkeypatch.setattr(sys, 'argv', ['ghsync', '-d', str(tmp_path)])
    with pytest.raises(SystemExit):
        ghsync.main()
    assert mock_requests_get.requested == [
        'https://api.github.com/users/Teidesat',
    ]


def test_main_run_without_git(monkeypatch, capsys, tmp_path, acme):
    monkeypatch.setattr(shutil, 'which', lambda cmd: None)
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path),
    ])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value).startswith('git is not installed.')


def test_main_run_pull_failure(monkeypatch, capsys, fake_git, tmp_path,
                               acme):
    (tmp_path / 'app-internal').mkdir()
    fake_git.results['pull', 'app-internal'] = (
        128, b'fatal: Not possible to fast-forward, aborting.\n')
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path),
    ])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value) == (
        'Failed to pull changes for repository: app-internal.'
        ' Please resolve any conflicts manually.'
    )
    assert capsys.readouterr().out == (
        'Using existing backup destination directory: {0}\n'
        '+ app (new)\n'
        '+ app-internal (failed)\n'
        '    fatal: Not possible to fast-forward, aborting.\n'
        '    git pull exited with 128\n'
    ).format(tmp_path)
    assert not (tmp_path / 'docs').exists()


def test_main_run_clone_failure(monkeypatch, capsys, fake_git, tmp_path,
                                acme):
    fake_git.results['clone', 'app'] = (
        128, b'ERROR: Repository not found.\n')
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path),
    ])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value) == '1 repositories could not be synchronized.'
    assert capsys.readouterr().out == (
        'Using existing backup destination directory: {0}\n'
        '+ app (failed)\n'
        '    ERROR: Repository not found.\n'
        '    git clone exited with 128\n'
        '+ app-internal (new)\n'
        '+ docs (new)\n'
        '3 repositories: 2 new, 0 updated, 0 skipped, 1 failed.\n'
    ).format(tmp_path)


def test_main_run_concurrently(monkeypatch, capsys, fake_git, tmp_path,
                               acme):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(tmp_path), '--concurrency=3',
    ])
    ghsync.main()
    out = capsys.readouterr().out
    assert out.endswith(
        '3 repositories: 3 new, 0 updated, 0 skipped, 0 failed.\n')
    assert sorted(os.listdir(str(tmp_path))) == [
        'app', 'app-internal', 'docs',
    ]


def test_main_run_dry_run(monkeypatch, capsys, fake_git, tmp_path, acme):
    destination = tmp_path / 'github-backup'
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '-g', 'acme', '-d', str(destination), '--dry-run',
    ])
    ghsync.main()
    assert capsys.readouterr().out == (
        'Would create backup destination directory: {0}\n'
        '+ app (would clone) (would pull)\n'
        '+ app-internal (would clone) (would pull)\n'
        '+ docs (would clone) (would pull)\n'
        '3 repositories: 0 new, 0 updated, 0 skipped, 0 failed.\n'
    ).format(destination)
    assert fake_git.commands == []
    assert not destination.exists()


@pytest.fixture()
def config_writes_allowed(mock_config_filename, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(ghsync, 'CONFIG_FILE', '.ghsyncrc')
    return tmp_path / '.ghsyncrc'


def test_main_init_dry_run(monkeypatch, capsys, config_writes_allowed):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '--init', '-g', 'acme', '--dry-run',
    ])
    ghsync.main()
    assert capsys.readouterr().out == (
        'Did not write .ghsyncrc because --dry-run was specified\n'
    )
    assert not config_writes_allowed.exists()


def test_main_init(monkeypatch, capsys, config_writes_allowed):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '--init', '-g', 'acme', '-e', 'internal', '-m', 'merge',
        '-b',
    ])
    ghsync.main()
    assert capsys.readouterr().out == (
        'Wrote .ghsyncrc\n'
    )
    assert config_writes_allowed.read_text() == (
        '[ghsync]\n'
        'github_user = acme\n'
        'exclude = internal\n'
        'pull_mode = merge\n'
        'all_branches = True\n'
        '\n'
    )


def test_main_init_all_options(monkeypatch, capsys, config_writes_allowed):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '--init', '-g', 'acme', '-d', '~/backup', '-i', '^app',
        '--github-token', 'UNITTEST', '-r',
    ])
    ghsync.main()
    assert config_writes_allowed.read_text() == (
        '[ghsync]\n'
        'github_user = acme\n'
        'destination_dir = ~/backup\n'
        'include = ^app\n'
        'github_token = UNITTEST\n'
        'recurse_submodules = True\n'
        '\n'
    )


def test_main_init_bad_pull_mode(monkeypatch, capsys, config_writes_allowed):
    monkeypatch.setattr(sys, 'argv', [
        'ghsync', '--init', '-g', 'acme', '-m', 'yolo',
    ])
    with pytest.raises(SystemExit):
        ghsync.main()
    assert not config_writes_allowed.exists()


def test_main_reads_config_file(monkeypatch, capsys, fake_git, acme,
                                config_writes_allowed):
    destination = config_writes_allowed.parent / 'backup'
    config_writes_allowed.write_text(
        u'[ghsync]\n'
        u'github_user = acme\n'
        u'destination_dir = %s\n'
        u'exclude = internal\n'
        u'pull_mode = rebase\n'
        u'all_branches = true\n'
        u'\n' % destination
    )
    monkeypatch.setattr(sys, 'argv', ['ghsync'])
    ghsync.main()
    assert sorted(os.listdir(str(destination))) == ['app', 'docs']
    commands = fake_git.git_commands()
    assert (
        ['pull', '--verbose', '--rebase=true', 'git@github.com:acme/app.git'],
        str(destination / 'app'),
    ) in commands
    assert (
        ['clone', '--verbose', '--no-single-branch',
         'git@github.com:acme/app.git', str(destination / 'app')], None,
    ) in commands


def test_main_command_line_overrides_config_file(monkeypatch, capsys,
                                                 config_writes_allowed):
    config_writes_allowed.write_text(
        u'[ghsync]\n'
        u'pull_mode = yolo\n'
        u'\n'
    )
    monkeypatch.setattr(sys, 'argv', ['ghsync', '-m', 'squash'])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value).startswith('Unknown pull mode: squash.')


def test_main_config_file_bad_boolean(monkeypatch, capsys,
                                      config_writes_allowed):
    config_writes_allowed.write_text(
        u'[ghsync]\n'
        u'github_user = acme\n'
        u'all_branches = perhaps\n'
        u'\n'
    )
    monkeypatch.setattr(sys, 'argv', ['ghsync'])
    with pytest.raises(SystemExit) as ctx:
        ghsync.main()
    assert str(ctx.value) == (
        "Invalid value for all_branches in .ghsyncrc: 'perhaps'"
    )
