#!/usr/bin/python3
"""
Mirror all Git repositories of a GitHub user or organisation into a local
backup directory: clone the missing ones, pull the ones already there.
"""

import argparse
import enum
import os
import re
import shutil
import subprocess
import sys
import threading
from collections import namedtuple
from concurrent import futures
from configparser import ConfigParser
from operator import attrgetter

import requests
import requests_cache


__author__ = 'Teidesat <teidesat@ull.edu.es>'
__licence__ = 'MIT'
__url__ = 'https://github.com/Teidesat/ghsync'
__version__ = '0.1.0'


CONFIG_FILE = '.ghsyncrc'
CONFIG_SECTION = 'ghsync'

DEFAULT_DESTINATION = os.path.join(os.path.expanduser('~'), 'github-backup')
DEFAULT_GITHUB_USER = 'Teidesat'
DEFAULT_PULL_MODE = 'ff-only'

GITHUB_API = 'https://api.github.com'

REQUIRED_TOOLS = ('git',)

# git pull flags for every supported --pull-mode
PULL_MODES = {
    'ff-only': ['--ff-only'],
    'rebase': ['--rebase=true'],
    'merge': ['--rebase=false', '--no-edit'],
}


USER_AGENT = 'ghsync/%s (using %s)' % (
    __version__, requests.utils.default_user_agent(),
)


class Error(Exception):
    """An error that is not a bug in this script."""


class NotFound(Error):
    """The GitHub API returned 404 Not Found."""


class PullError(Error):
    """A pull failed; the whole run must stop."""


def get_json_and_links(url, session=None):
    """Perform HTTP GET for a URL, return deserialized JSON and links.

    Returns a tuple (json_data, links) where links is something dict-like.
    """
    session = requests.Session() if session is None else session
    try:
        r = session.get(url, headers={'user-agent': USER_AGENT})
    except requests.ConnectionError as e:
        raise Error("Failed to fetch {}:\n{}".format(url, e))
    # GitHub explains 4xx errors ("Not Found", "API rate limit exceeded")
    # in the JSON body; show that instead of a traceback.
    if 400 <= r.status_code < 500:
        exc_class = NotFound if r.status_code == 404 else Error
        try:
            message = r.json()['message']
        except (ValueError, KeyError, TypeError):
            # e.g. an HTML error page from a proxy
            message = 'HTTP {}'.format(r.status_code)
        raise exc_class("Failed to fetch {}:\n{}".format(url, message))
    # A 502 from a GitHub outage is not JSON.
    r.raise_for_status()
    return r.json(), r.links


def get_github_list(url, batch_size=100, progress_callback=None, session=None):
    """Perform (a series of) HTTP GETs for a URL, return deserialized JSON.

    Format of the JSON is documented at
    https://docs.github.com/en/rest/repos/repos#list-repositories-for-a-user

    Follows GitHub's pagination, which is announced with a Link header, e.g.
    ::

        Link: <https://api.github.com/resource?page=2>; rel="next",
              <https://api.github.com/resource?page=5>; rel="last"

    """
    session = requests.Session() if session is None else session
    res, links = get_json_and_links('{}{}per_page={}'.format(
        url, '&' if '?' in url else '?', batch_size), session)
    while 'next' in links:
        if progress_callback:
            progress_callback(len(res))
        more, links = get_json_and_links(links['next']['url'], session)
        res += more
    return res


def synchronized(method):
    def wrapper(self, *args, **kw):
        with self.lock:
            return method(self, *args, **kw)
    return wrapper


class Reporter(object):
    """Progress and error output.

    Every repository that takes part in the sync gets an item: a header line
    (``+ name``) that collects status notes like ``(new)`` or ``(updated)``,
    followed by indented detail lines.  An item is written out as one block
    when it is finished, so the lines of repositories processed in parallel
    never interleave.

    In quiet mode informational output is suppressed.  Errors are always
    shown, together with the header of the item they belong to.

    A transient status line (e.g. while fetching the repository list) is
    only drawn on a terminal.
    """

    indent = '    '

    t_reset = '\033[m'
    t_red = '\033[31m'
    t_green = '\033[32m'

    def __init__(self, stream=None, quiet=False):
        self.stream = sys.stdout if stream is None else stream
        self.quiet = quiet
        isatty = getattr(self.stream, 'isatty', None)
        self.tty = bool(isatty and isatty())
        self.last_status = ''
        self.lock = threading.RLock()

    @synchronized
    def status(self, message):
        """Replace the status message."""
        if self.quiet or not self.tty:
            return
        self.clear()
        if message:
            self.stream.write('\r{}\r'.format(message))
            self.stream.flush()
            self.last_status = message

    @synchronized
    def clear(self):
        """Clear the status message."""
        if self.last_status:
            self.stream.write(
                '\r{}\r'.format(' ' * len(self.last_status.rstrip())))
            self.stream.flush()
            self.last_status = ''

    @synchronized
    def write(self, line, color=''):
        self.clear()
        if color and self.tty:
            line = color + line + self.t_reset
        self.stream.write(line + '\n')
        self.stream.flush()

    def info(self, message):
        """Show an informational message, unless we're quiet."""
        if not self.quiet:
            self.write(message)

    def error(self, message):
        """Show an error message."""
        self.write(message, self.t_red)

    def finish(self, message=''):
        """Clear the status message and print a summary."""
        self.clear()
        if message:
            self.info(message)

    def item(self, msg):
        return self.Item(self, msg)

    @synchronized
    def draw_item(self, item):
        if self.quiet and not item.failed:
            return
        if item.failed:
            color = self.t_red
        elif item.updated:
            color = self.t_green
        else:
            color = ''
        self.write(item.msg, color)
        for line, is_error in item.extra_info_lines:
            if is_error:
                self.write(self.indent + line, self.t_red)
            elif not self.quiet:
                self.write(self.indent + line)

    class Item(object):
        def __init__(self, reporter, msg):
            self.reporter = reporter
            self.msg = msg
            self.extra_info_lines = []
            self.updated = False
            self.failed = False

        def update(self, msg, failed=False):
            """Append a status note to the header and highlight it."""
            self.updated = True
            if failed:
                self.failed = True
            self.msg += msg

        def extra_info(self, msg):
            """Add some extra information."""
            self.extra_info_lines.extend(
                (line, False) for line in msg.splitlines())

        def error_info(self, msg):
            """Add some extra information about an error."""
            lines = msg.splitlines()
            if lines:
                self.failed = True
            self.extra_info_lines.extend((line, True) for line in lines)

        def finished(self):
            """Mark the item as finished and write it out."""
            self.reporter.draw_item(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        self.clear()
        if exc_type is KeyboardInterrupt:
            self.error('Interrupted')


class Repo(object):
    def __init__(self, name, clone_url, alt_urls=(), default_branch=None):
        self.name = name
        self.clone_url = clone_url
        self.urls = {clone_url}
        self.urls.update(alt_urls)
        self.default_branch = default_branch

    def __repr__(self):
        return 'Repo({!r}, {!r}, {{{}}}, default_branch={!r})'.format(
            self.name, self.clone_url, ', '.join(map(repr, sorted(self.urls))),
            self.default_branch)

    def __eq__(self, other):
        if not isinstance(other, Repo):
            return False
        return (
            self.name, self.clone_url, self.urls, self.default_branch,
        ) == (
            other.name, other.clone_url, other.urls, other.default_branch,
        )

    def __ne__(self, other):
        return not self.__eq__(other)

    @classmethod
    def from_repo(cls, repo):
        # SSH, like `gh repo list --json sshUrl`; HTTPS is an alternative
        return cls(repo['name'], repo['ssh_url'], (repo['clone_url'],),
                   repo.get('default_branch'))


class LocalState(enum.Enum):
    ABSENT = 'absent'
    PRESENT = 'present'


SyncConfig = namedtuple('SyncConfig', [
    'destination_dir',
    'include_pattern',
    'exclude_pattern',
    'all_branches',
    'pull_mode',
    'recurse_submodules',
    'quiet',
    'dry_run',
])


def compile_pattern(pattern, what):
    """Compile a repository name regexp; an empty pattern means no filter."""
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise Error('Invalid {} pattern {!r}: {}'.format(what, pattern, e))


def make_config(destination_dir=DEFAULT_DESTINATION, include_pattern=None,
                exclude_pattern=None, all_branches=False,
                pull_mode=DEFAULT_PULL_MODE, recurse_submodules=False,
                quiet=False, dry_run=False):
    """Validate the sync options and return a SyncConfig.

    Raises Error for an unknown pull mode or a malformed pattern, so that
    nothing is fetched or touched on disk with a bad configuration.
    """
    if pull_mode not in PULL_MODES:
        raise Error(
            'Unknown pull mode: {}. Valid options are: {}.'.format(
                pull_mode, ', '.join(PULL_MODES)))
    compile_pattern(include_pattern, 'include')
    compile_pattern(exclude_pattern, 'exclude')
    return SyncConfig(
        destination_dir=os.path.abspath(os.path.expanduser(destination_dir)),
        include_pattern=include_pattern or None,
        exclude_pattern=exclude_pattern or None,
        all_branches=bool(all_branches),
        pull_mode=pull_mode,
        recurse_submodules=bool(recurse_submodules),
        quiet=bool(quiet),
        dry_run=bool(dry_run),
    )


class RepoFilter(object):
    """Decide which repositories take part in the sync.

    Patterns are regular expressions searched for in the repository name.
    The exclude pattern takes precedence over the include pattern.
    """

    def __init__(self, include=None, exclude=None):
        self.include = compile_pattern(include, 'include')
        self.exclude = compile_pattern(exclude, 'exclude')

    def rejection(self, name):
        """Return the reason why ``name`` is skipped, or None."""
        if self.exclude is not None and self.exclude.search(name):
            return 'excluded'
        if self.include is not None and not self.include.search(name):
            return 'not included'
        return None

    def admits(self, name):
        return self.rejection(name) is None


class RepoLister(object):
    """Fetch the list of repositories owned by a GitHub account."""

    def __init__(self, reporter=None, token=None):
        self.reporter = reporter if reporter else Reporter()
        self.session = requests.Session()
        self.has_auth_token = bool(token)
        if token:
            self.session.auth = ('', token)

    def get_github_list(self, list_url, message):
        self.reporter.status(message)

        def progress_callback(n):
            self.reporter.status("{} ({})".format(message, n))

        return get_github_list(list_url, progress_callback=progress_callback,
                               session=self.session)

    def get_account(self, account):
        """Look up a user or organization; fail if there's no such account."""
        try:
            data, _ = get_json_and_links(
                '{}/users/{}'.format(GITHUB_API, account),
                session=self.session)
        except NotFound:
            raise Error(
                "GitHub user or organization '{}' does not exist.".format(
                    account))
        return data

    def get_token_login(self):
        data, _ = get_json_and_links('{}/user'.format(GITHUB_API),
                                     session=self.session)
        return data.get('login')

    def list_url(self, account):
        owner = self.get_account(account)
        login = owner.get('login', account)
        if owner.get('type') == 'Organization':
            # includes private repositories the token can see
            return '{}/orgs/{}/repos?sort=full_name'.format(GITHUB_API, login)
        if self.has_auth_token:
            token_login = self.get_token_login() or ''
            if token_login.lower() == login.lower():
                # users/$name/repos never includes private repos, so ask
                # for the repos owned by the token's user instead
                return ('{}/user/repos'
                        '?affiliation=owner&sort=full_name').format(GITHUB_API)
            print("Warning: the GitHub token does not belong to {}, listing"
                  " public repositories only".format(login), file=sys.stderr)
        return '{}/users/{}/repos?sort=full_name'.format(GITHUB_API, login)

    def list_repos(self, account):
        list_url = self.list_url(account)
        message = "Fetching list of {}'s repositories from GitHub...".format(
            account)
        repos = self.get_github_list(list_url, message)
        self.reporter.clear()
        return sorted(map(Repo.from_repo, repos), key=attrgetter('name'))


class RepoSync(object):
    """Synchronization of a list of repositories into one directory.

    ``exists`` tells whether a local working copy is present at a path;
    it's called once per repository.
    """

    def __init__(self, config, reporter=None, exists=os.path.isdir):
        self.config = config
        self.reporter = reporter if reporter else Reporter(quiet=config.quiet)
        self.filter = RepoFilter(config.include_pattern,
                                 config.exclude_pattern)
        self.exists = exists
        self.n_repos = 0
        self.n_new = 0
        self.n_updated = 0
        self.n_skipped = 0
        self.n_failed = 0
        self.lock = threading.Lock()

    def local_state(self, path):
        if self.exists(path):
            return LocalState.PRESENT
        return LocalState.ABSENT

    def repo_task(self, repo):
        return RepoTask(repo, self, self.task_finished)

    @synchronized
    def task_finished(self, task):
        if task.skipped:
            self.n_skipped += 1
            return
        self.n_repos += 1
        self.n_new += task.new
        self.n_updated += task.updated
        self.n_failed += task.failed

    def summary(self):
        return (
            "{0.n_repos} repositories: {0.n_new} new, {0.n_updated} updated,"
            " {0.n_skipped} skipped, {0.n_failed} failed.".format(self))


class RepoTask(object):

    def __init__(self, repo, options, finished_callback=None):
        self.repo = repo
        self.options = options
        self.finished_callback = finished_callback
        self.progress_item = None
        self.skipped = False
        self.new = False
        self.updated = False
        self.failed = False

    @property
    def config(self):
        return self.options.config

    def repo_dir(self, repo):
        return os.path.join(self.config.destination_dir, repo.name)

    def repo_url(self, repo):
        return repo.clone_url

    def decode(self, output):
        return output.decode('UTF-8', 'replace')

    def pretty_command(self, args):
        return ' '.join(args[:2])  # 'git pull' etc.

    def git_flags(self):
        """Flags shared by git clone and git pull."""
        flags = []
        if self.config.recurse_submodules:
            flags.append('--recurse-submodules')
        flags.append('--quiet' if self.config.quiet else '--verbose')
        return flags

    def clone_command(self, repo, dir):
        args = ['git', 'clone'] + self.git_flags()
        if self.config.all_branches:
            args.append('--no-single-branch')
        else:
            args.append('--single-branch')
            if repo.default_branch:
                args += ['--branch', repo.default_branch]
        return args + [self.repo_url(repo), dir]

    def pull_command(self, repo):
        return (['git', 'pull'] + self.git_flags()
                + PULL_MODES[self.config.pull_mode] + [self.repo_url(repo)])

    def call(self, args, **kwargs):
        """Call a subprocess and return its exit code.

        Whatever the subprocess prints is shown as extra information if it
        succeeds, or as an error if it returns a non-zero exit code.
        """
        p = subprocess.Popen(args, stdout=subprocess.PIPE,
                             stderr=subprocess.STDOUT, **kwargs)
        output, _ = p.communicate()
        retcode = p.wait()
        if retcode != 0:
            self.progress_item.update(' (failed)', failed=True)
            self.progress_item.error_info(self.decode(output))
            self.progress_item.error_info(
                '{command} exited with {rc}'.format(
                    command=self.pretty_command(args), rc=retcode))
        elif output:
            self.progress_item.extra_info(self.decode(output))
        return retcode

    def check_output(self, args, **kwargs):
        """Call a subprocess and return its standard output.

        The subprocess is expected to produce no output on stderr.  If any
        output is seen, it'll be displayed as an error.

        The subprocess is expected to return exit code 0.  If it returns
        non-zero, that'll be displayed as an error.
        """
        p = subprocess.Popen(args, stdout=subprocess.PIPE,
                             stderr=subprocess.PIPE, **kwargs)
        stdout, stderr = p.communicate()
        retcode = p.wait()
        if stderr or retcode != 0:
            self.failed = True
            self.progress_item.error_info(self.decode(stderr))
            self.progress_item.error_info(
                '{command} exited with {rc}'.format(
                    command=self.pretty_command(args), rc=retcode))
        return self.decode(stdout)

    def run(self):
        try:
            reason = self.options.filter.rejection(self.repo.name)
            if reason:
                self.skipped = True
                self.options.reporter.info(
                    '- {name} ({reason})'.format(name=self.repo.name,
                                                 reason=reason))
                return
            self.progress_item = self.options.reporter.item(
                '+ {name}'.format(name=self.repo.name))
            dir = self.repo_dir(self.repo)
            state = self.options.local_state(dir)
            if state is LocalState.ABSENT:
                if not self.clone(self.repo, dir):
                    return
            try:
                self.update(self.repo, dir, state)
            except PullError:
                raise
            except Exception as e:
                # e.g. the working copy cannot be entered
                self.failed = True
                self.progress_item.update(' (failed)', failed=True)
                self.progress_item.error_info(
                    '{}: {}'.format(e.__class__.__name__, e))
                raise PullError(
                    'Failed to pull changes for repository: {}: {}'.format(
                        self.repo.name, e))
        except PullError:
            raise
        except Exception as e:
            self.failed = True
            self.progress_item.update(' (failed)', failed=True)
            self.progress_item.error_info(
                '{}: {}'.format(e.__class__.__name__, e))
        finally:
            if self.progress_item is not None:
                self.progress_item.finished()
            if self.finished_callback:
                self.finished_callback(self)

    def aborted(self):
        self.failed = True
        self.progress_item = self.options.reporter.item(
            '+ {name}'.format(name=self.repo.name))
        self.progress_item.update(' (aborted)', failed=True)
        self.progress_item.finished()
        if self.finished_callback:
            self.finished_callback(self)

    def clone(self, repo, dir):
        """Clone a repository; return False if that failed."""
        if self.config.dry_run:
            self.progress_item.update(' (would clone)')
            return True
        if self.call(self.clone_command(repo, dir)) != 0:
            self.failed = True
            return False
        self.progress_item.update(' (new)')
        self.new = True
        return True

    def update(self, repo, dir, state):
        """Pull a repository; raise PullError if that failed."""
        if self.config.dry_run:
            self.progress_item.update(' (would pull)')
            return
        # a fresh clone has nothing to compare with
        track = state is LocalState.PRESENT
        if track:
            old_sha = self.get_current_commit(dir)
        if self.call(self.pull_command(repo), cwd=dir) != 0:
            self.failed = True
            raise PullError(
                'Failed to pull changes for repository: {}.'
                ' Please resolve any conflicts manually.'.format(repo.name))
        if track:
            new_sha = self.get_current_commit(dir)
            if old_sha != new_sha:
                self.progress_item.update(' (updated)')
                self.updated = True

    def get_current_commit(self, dir):
        return self.check_output(
            ['git', 'describe', '--always', '--dirty'], cwd=dir)


class SequentialJobQueue(object):

    def add(self, task):
        task.run()

    def finish(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        self.finish()


class ConcurrentJobQueue(object):
    """Run tasks in a thread pool.

    An Error raised by a task (i.e. a failed pull) is re-raised in the
    thread that adds or finishes tasks; no new tasks start after that.
    """

    def __init__(self, concurrency=2):
        self.jobs = set()
        self.concurrency = concurrency
        self.pool = futures.ThreadPoolExecutor(
            max_workers=concurrency)

    def collect(self, done):
        self.jobs.difference_update(done)
        for future in done:
            future.result()

    def add(self, task):
        try:
            self.collect({job for job in self.jobs if job.done()})
            while len(self.jobs) >= self.concurrency:
                done, not_done = futures.wait(
                    self.jobs, return_when=futures.FIRST_COMPLETED)
                self.collect(done)
            future = self.pool.submit(task.run)
            self.jobs.add(future)
        except KeyboardInterrupt:
            task.aborted()
            raise

    def finish(self):
        try:
            while self.jobs:
                done, not_done = futures.wait(
                    self.jobs, return_when=futures.FIRST_COMPLETED)
                self.collect(done)
        finally:
            self.abort()

    def abort(self):
        self.pool.shutdown(cancel_futures=True)
        self.jobs.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, exc_tb):
        if exc_type is None:
            self.finish()
        elif issubclass(exc_type, Error):
            self.abort()
        else:
            self.pool.shutdown()
            self.jobs.clear()


def check_tools(tools=REQUIRED_TOOLS):
    for tool in tools:
        if shutil.which(tool) is None:
            raise Error(
                '{} is not installed. Please install and configure it'
                ' to use this script.'.format(tool))


def ensure_destination(path, reporter, dry_run=False):
    """Make sure the backup destination directory exists."""
    if os.path.isdir(path):
        reporter.info(
            'Using existing backup destination directory: {}'.format(path))
        return
    if dry_run:
        reporter.info(
            'Would create backup destination directory: {}'.format(path))
        return
    reporter.info('Creating backup destination directory: {}'.format(path))
    try:
        os.makedirs(path)
    except OSError as e:
        raise Error(
            'Failed to create backup destination directory: {}: {}'.format(
                path, e.strerror or e))


def spawn_ssh_control_master():
    # If the user has 'ControlMaster auto' in their ~/.ssh/config, one of the
    # git clone/pull commands we start would spawn a control master process
    # that never exits and keeps our output pipe open, so p.communicate()
    # would block forever.  Start the control master ourselves first.
    subprocess.Popen(['ssh', '-q', '-fN', '-M', '-o', 'ControlPersist=600',
                      'git@github.com'])


def read_config_file(filename):
    config = ConfigParser()
    config.read([filename])
    return config


def get_config_boolean(config, option):
    """Return a boolean option from the config file, or None if unset."""
    if not config.has_option(CONFIG_SECTION, option):
        return None
    try:
        return config.getboolean(CONFIG_SECTION, option)
    except ValueError:
        raise Error('Invalid value for {} in {}: {!r}'.format(
            option, CONFIG_FILE, config.get(CONFIG_SECTION, option)))


def write_config_file(filename, config):
    with open(filename, 'w') as fp:
        config.write(fp)


def _main():
    parser = argparse.ArgumentParser(
        description="Clone/update all repositories of a GitHub user or"
                    " organization into a local backup directory.",
        epilog="Options not given on the command line are read from {}"
               " in the current directory, if it exists.".format(CONFIG_FILE))
    parser.add_argument(
        '--version', action='version',
        version="%(prog)s version " + __version__)
    parser.add_argument(
        '-d', '--backup-destination-dir', dest='destination_dir',
        metavar='DIR',
        help="directory the repositories are synced into; created if"
             " missing (default: $HOME/github-backup)")
    parser.add_argument(
        '-g', '--github-user', metavar='USER',
        help="GitHub user or organization whose repositories are synced"
             " (default: {})".format(DEFAULT_GITHUB_USER))
    parser.add_argument(
        '-i', '--include_repositories', dest='include', metavar='REGEXP',
        help="only sync repositories whose name matches this pattern")
    parser.add_argument(
        '-e', '--exclude_repositories', dest='exclude', metavar='REGEXP',
        help="skip repositories whose name matches this pattern"
             " (takes precedence over --include_repositories)")
    parser.add_argument(
        '-b', '--all_branches', '--all-branches', dest='all_branches',
        action='store_true', default=None,
        help="clone all branches (default: only the default branch)")
    parser.add_argument(
        '-m', '--pull-mode', metavar='MODE',
        help="how to pull changes: {} (default: {})".format(
            ', '.join(PULL_MODES), DEFAULT_PULL_MODE))
    parser.add_argument(
        '-r', '--recurse-submodules', action='store_true', default=None,
        help="also clone/update submodules")
    parser.add_argument(
        '-q', '--quiet', action='store_true',
        help="only print errors")
    parser.add_argument(
        '-n', '--dry-run', action='store_true',
        help="don't pull/clone, just print what would be done")
    parser.add_argument(
        '-c', '--concurrency', type=int, default=1,
        help="number of repositories to process in parallel"
             " (default: %(default)s)")
    parser.add_argument(
        '--github-token',
        help='GitHub token, needed to see private repositories')
    parser.add_argument(
        '--init', action='store_true',
        help='create a {} from command-line arguments'.format(CONFIG_FILE))
    parser.add_argument(
        '--http-cache', default='.httpcache', metavar='DBNAME',
        # requests-cache adds .sqlite only when the name has no .
        help='cache HTTP requests on disk in an sqlite database for 5 minutes'
             ' (default: .httpcache)')
    parser.add_argument(
        '--no-http-cache', action='store_false', dest='http_cache',
        help='disable HTTP disk caching')
    args = parser.parse_args()

    config = read_config_file(CONFIG_FILE)
    if not args.github_user:
        if config.has_option(CONFIG_SECTION, 'github_user'):
            args.github_user = config.get(CONFIG_SECTION, 'github_user')
    if not args.destination_dir:
        if config.has_option(CONFIG_SECTION, 'destination_dir'):
            args.destination_dir = config.get(CONFIG_SECTION,
                                              'destination_dir')
    if not args.include:
        if config.has_option(CONFIG_SECTION, 'include'):
            args.include = config.get(CONFIG_SECTION, 'include')
    if not args.exclude:
        if config.has_option(CONFIG_SECTION, 'exclude'):
            args.exclude = config.get(CONFIG_SECTION, 'exclude')
    if not args.pull_mode:
        if config.has_option(CONFIG_SECTION, 'pull_mode'):
            args.pull_mode = config.get(CONFIG_SECTION, 'pull_mode')
    if not args.github_token:
        if config.has_option(CONFIG_SECTION, 'github_token'):
            args.github_token = config.get(CONFIG_SECTION, 'github_token')
    if args.all_branches is None:
        args.all_branches = get_config_boolean(config, 'all_branches')
    if args.recurse_submodules is None:
        args.recurse_submodules = get_config_boolean(config,
                                                     'recurse_submodules')

    # validate before anything is fetched, created or written
    sync_config = make_config(
        destination_dir=args.destination_dir or DEFAULT_DESTINATION,
        include_pattern=args.include,
        exclude_pattern=args.exclude,
        all_branches=args.all_branches,
        pull_mode=args.pull_mode or DEFAULT_PULL_MODE,
        recurse_submodules=args.recurse_submodules,
        quiet=args.quiet,
        dry_run=args.dry_run,
    )

    if args.init:
        config.remove_section(CONFIG_SECTION)
        config.add_section(CONFIG_SECTION)
        if args.github_user:
            config.set(CONFIG_SECTION, 'github_user', args.github_user)
        if args.destination_dir:
            config.set(CONFIG_SECTION, 'destination_dir',
                       args.destination_dir)
        if args.include:
            config.set(CONFIG_SECTION, 'include', args.include)
        if args.exclude:
            config.set(CONFIG_SECTION, 'exclude', args.exclude)
        if args.pull_mode:
            config.set(CONFIG_SECTION, 'pull_mode', args.pull_mode)
        if args.github_token:
            config.set(CONFIG_SECTION, 'github_token', args.github_token)
        if args.all_branches is not None:
            config.set(CONFIG_SECTION, 'all_branches', str(args.all_branches))
        if args.recurse_submodules is not None:
            config.set(CONFIG_SECTION, 'recurse_submodules',
                       str(args.recurse_submodules))
        if not args.dry_run:
            write_config_file(CONFIG_FILE, config)
            print("Wrote {}".format(CONFIG_FILE))
        else:
            print(
                "Did not write {} because --dry-run was specified".format(
                    CONFIG_FILE))
        return

    if args.http_cache:
        requests_cache.install_cache(args.http_cache,
                                     backend='sqlite',
                                     expire_after=300)

    with Reporter(quiet=sync_config.quiet) as reporter:
        check_tools()
        ensure_destination(sync_config.destination_dir, reporter,
                           dry_run=sync_config.dry_run)
        lister = RepoLister(reporter, token=args.github_token)
        repos = lister.list_repos(args.github_user or DEFAULT_GITHUB_USER)

        if not sync_config.dry_run:
            spawn_ssh_control_master()

        wrangler = RepoSync(sync_config, reporter)
        if args.concurrency < 2:
            queue = SequentialJobQueue()
        else:
            queue = ConcurrentJobQueue(args.concurrency)
        with queue:
            for repo in repos:
                queue.add(wrangler.repo_task(repo))
        reporter.finish(wrangler.summary())

    if wrangler.n_failed:
        raise Error(
            '{} repositories could not be synchronized.'.format(
                wrangler.n_failed))


def main():
    try:
        _main()
    except Error as e:
        sys.exit(e)
    except KeyboardInterrupt:
        pass


if __name__ == '__main__':
    main()
