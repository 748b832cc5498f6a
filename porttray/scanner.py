"""Discovery of local TCP listeners and classification of the HTTP ones."""
import http.client
import ssl
import subprocess
import threading
import time
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import urljoin

import requests

LSOF_LISTEN_CMD = ["lsof", "-iTCP", "-sTCP:LISTEN", "-P", "-n", "-l"]
LSOF_MIN_FIELDS = 9
LSOF_NAME_FIELD = 8

PROBE_TIMEOUT = 1.0
PROBE_MAX_REDIRECTS = 10
PROBE_WORKERS = 32

# OpenSSL reasons seen when an HTTP server answers a TLS ClientHello
TLS_PLAINTEXT_REASONS = ("WRONG_VERSION_NUMBER", "RECORD_LAYER_FAILURE")

# Background system daemons that hold listening sockets but never serve anything useful.
# lsof truncates command names to 9 characters.
IGNORED_COMMANDS = frozenset({
    "rapportd",
    "ControlCe",
    "sharingd",
    "coreaudio",
    "kdc",
    "IdentityS",
    "systemmd",
    "loginwind",
    "AirPlayUX",
    "Reminders",
    "Siri",
    "assistant",
})

Listener = namedtuple("Listener", ["pid", "command", "port", "cwd", "status"], defaults=("", 0))

SEPARATOR_PID = "SEP"
SEPARATOR = Listener(pid=SEPARATOR_PID, command="", port="0")

# "pid:port" -> classification. Never evicted: a recycled pid listening on the
# same port keeps the old answer until restart.
_http_cache = {}
_http_cache_lock = threading.Lock()


class ScanError(Exception):
    """The listener enumeration could not be read for this cycle."""

    def __init__(self, msg, returncode=None):
        super().__init__(msg)
        self.returncode = returncode


def port_key(listener):
    try:
        return int(listener.port)
    except ValueError:
        return 0


def is_separator(listener):
    return listener is not None and listener.pid == SEPARATOR_PID


# --------------------------------------------------
# Listener parsing
# --------------------------------------------------
def get_cwd_for_pid(pid):
    """Return the working directory of pid via `lsof -F n`, or "" on any failure.

    Output looks like:
        p<PID>
        fcwd
        n<PWD>
    """
    try:
        result = subprocess.run(
            ["lsof", "-p", pid, "-a", "-d", "cwd", "-F", "n"],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.SubprocessError):
        return ""
    if result.returncode != 0:
        return ""
    for line in result.stdout.splitlines():
        if line.startswith("n"):
            return line[1:]
    return ""


def parse_lsof(output):
    """Turn `lsof -iTCP -sTCP:LISTEN` output into Listeners sorted by port.

    The header line is skipped. The port is whatever follows the last colon of
    the NAME column (`*:8080`, `127.0.0.1:8080`, `[::1]:8080`); rows that are
    too short, have no colon there, or have a non-numeric port are dropped.
    """
    listeners = []
    lines = output.splitlines()
    for line in lines[1:]:
        fields = line.split()
        if len(fields) < LSOF_MIN_FIELDS:
            continue
        command, pid = fields[0], fields[1]
        node = fields[LSOF_NAME_FIELD]
        idx = node.rfind(":")
        if idx == -1:
            continue
        port = node[idx + 1:]
        if not port.isdigit():
            continue
        listeners.append(Listener(pid=pid, command=command, port=port, cwd=get_cwd_for_pid(pid)))

    listeners.sort(key=port_key)
    return listeners


# --------------------------------------------------
# HTTP classification
# --------------------------------------------------
def _exception_chain(exc):
    """Yield exc and every exception wrapped in it (args, reason, cause, context)."""
    seen = set()
    stack = [exc]
    while stack:
        err = stack.pop()
        if not isinstance(err, BaseException) or id(err) in seen:
            continue
        seen.add(id(err))
        yield err
        stack.extend(getattr(err, "args", ()))
        stack.append(getattr(err, "reason", None))
        stack.append(err.__cause__)
        stack.append(err.__context__)


def _is_malformed_response(exc):
    """True if the server sent a status line that is not HTTP.

    RemoteDisconnected is a BadStatusLine too, but it only means the peer
    closed without answering.
    """
    return any(
        isinstance(err, http.client.BadStatusLine) and not isinstance(err, http.client.RemoteDisconnected)
        for err in _exception_chain(exc)
    )


def _is_plaintext_over_tls(exc):
    """True if a TLS handshake got a plaintext (HTTP) answer instead.

    Certificate failures are real TLS servers and do not count.
    """
    for err in _exception_chain(exc):
        if not isinstance(err, ssl.SSLError) or isinstance(err, ssl.SSLCertVerificationError):
            continue
        if getattr(err, "reason", None) in TLS_PLAINTEXT_REASONS:
            return True
        text = str(err).upper().replace(" ", "_")
        if any(reason in text for reason in TLS_PLAINTEXT_REASONS):
            return True
    return False


def _head(session, url, timeout):
    return session.head(url, timeout=timeout, allow_redirects=False)


def _follow_redirects(session, url):
    """HEAD url and its redirects, every hop started within one PROBE_TIMEOUT."""
    deadline = time.monotonic() + PROBE_TIMEOUT
    for _ in range(PROBE_MAX_REDIRECTS + 1):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise requests.exceptions.Timeout(f"{url} did not answer within {PROBE_TIMEOUT}s")
        resp = _head(session, url, remaining)
        if not resp.is_redirect:
            return resp
        location = resp.headers.get("location")
        resp.close()
        url = urljoin(url, location)
    raise requests.exceptions.TooManyRedirects(f"stopped after {PROBE_MAX_REDIRECTS} redirects")


def probe_http(port):
    """Send one HEAD to http://localhost:<port>/ and return its classification."""
    try:
        with requests.Session() as session:
            # proxy variables must not apply to localhost
            session.trust_env = False
            resp = _follow_redirects(session, f"http://localhost:{port}/")
    except requests.exceptions.RequestException as e:
        if _is_plaintext_over_tls(e) or _is_malformed_response(e):
            return 200
        return 0
    resp.close()
    if resp.status_code in (401, 403):
        return 0
    return resp.status_code or 200


def check_http_server(pid, command, port):
    """Classify a listener: 0 hides it, otherwise the HTTP status to show."""
    if command in IGNORED_COMMANDS:
        return 0

    key = f"{pid}:{port}"
    with _http_cache_lock:
        if key in _http_cache:
            return _http_cache[key]

    status = probe_http(port)

    with _http_cache_lock:
        _http_cache[key] = status
    return status


def clear_http_cache():
    with _http_cache_lock:
        _http_cache.clear()


# --------------------------------------------------
# Scan orchestration
# --------------------------------------------------
def run_lsof():
    """Return raw listener text, "" when lsof reports no listeners."""
    try:
        result = subprocess.run(
            LSOF_LISTEN_CMD,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ScanError(f"cannot run lsof: {e}") from e

    if result.returncode == 0:
        return result.stdout
    # lsof exits 1 with no output when nothing matches
    if result.returncode == 1 and not result.stdout:
        return ""
    raise ScanError(
        f"lsof exited with {result.returncode}: {result.stderr.strip()}",
        returncode=result.returncode,
    )


def _classify(listener):
    status = check_http_server(listener.pid, listener.command, listener.port)
    if status == 0:
        return None
    return listener._replace(status=status)


def get_open_ports():
    """Return the HTTP listeners for one cycle, sorted by port.

    Raises ScanError when the listener table cannot be read.
    """
    output = run_lsof()
    if not output:
        return []
    listeners = parse_lsof(output)
    if not listeners:
        return []

    with ThreadPoolExecutor(max_workers=min(PROBE_WORKERS, len(listeners))) as executor:
        results = list(executor.map(_classify, listeners))

    found = [l for l in results if l is not None]
    found.sort(key=port_key)
    return found


def group_by_status(listeners):
    """Healthy (<400) listeners first, then SEPARATOR and the erroring ones."""
    normal = [l for l in listeners if l.status < 400]
    errors = [l for l in listeners if l.status >= 400]
    if not errors:
        return normal
    return normal + [SEPARATOR] + errors


def scan():
    """One full discovery pass: the ordered rows the menu should show."""
    return group_by_status(get_open_ports())
