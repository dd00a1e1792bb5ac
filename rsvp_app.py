#!/usr/bin/env python3
"""
Minimal party RSVP web application.

This WSGI application serves a welcome page, an RSVP form and a list of
everyone who has responded. Guests enter their name, email address and
phone number and say whether they will attend; the response is kept in
memory for the lifetime of the process and the guest is shown either a
thank-you page or a sorry-you-can't-make-it page.

The app uses the Python standard library for the HTTP side (wsgiref)
and Jinja2 for templating. Every page extends ``templates/layout.html``.
The five views are compiled once at startup; the server refuses to
start if any of them fails to load.

To run the app locally, execute this file directly:

    python rsvp_app.py

and then visit http://localhost:5000 in your browser.
"""

import logging
import os
import sys
import threading
import urllib.parse
from dataclasses import dataclass, field
from socketserver import ThreadingMixIn
from types import MappingProxyType
from typing import Iterator, Mapping

from wsgiref.simple_server import WSGIServer, make_server
from wsgiref.util import setup_testing_defaults

import jinja2
from dotenv import load_dotenv

# -------------------------------------------------------------------
# Configuration

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATES_DIR = os.path.join(BASE_DIR, 'templates')

HOST = os.environ.get('HOST', '')
PORT = int(os.environ.get('PORT', '5000'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LAYOUT = 'layout.html'
# Names of the views loaded at startup, in load order.
VIEW_NAMES = ('welcome', 'form', 'thanks', 'sorry', 'list')

NAME_REQUIRED = 'Please enter your name'
EMAIL_REQUIRED = 'Please enter your email address'
PHONE_REQUIRED = 'Please enter your phone number'

HTML_CONTENT_TYPE = 'text/html; charset=utf-8'
TEXT_CONTENT_TYPE = 'text/plain; charset=utf-8'

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO') -> None:
    """Configure the root logger with a single console handler.

    Calling this more than once is harmless: if the root logger already
    has handlers it is left alone.
    """
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    root.addHandler(handler)

# -------------------------------------------------------------------
# Records and the response store

@dataclass(frozen=True)
class Rsvp:
    """A single guest response."""
    name: str
    email: str
    phone: str
    will_attend: bool = False


@dataclass
class FormData:
    """What the form view receives: the record so far plus any errors."""
    record: Rsvp
    errors: list[str] = field(default_factory=list)


class RsvpStore:
    """Append-only, in-memory list of responses shared by all requests.

    Appends and reads take the same lock so the list page never sees a
    half-finished append when requests are served on several threads.
    """

    def __init__(self) -> None:
        self._records: list[Rsvp] = []
        self._lock = threading.Lock()

    def append(self, record: Rsvp) -> None:
        with self._lock:
            self._records.append(record)

    def list(self) -> tuple[Rsvp, ...]:
        """Return a snapshot of every response in the order received."""
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[Rsvp]:
        return iter(self.list())


# Process-wide store. Responses are lost when the process exits.
responses = RsvpStore()

# -------------------------------------------------------------------
# Validation

class MalformedSubmission(ValueError):
    """Raised when a form post is missing one of the required fields."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__('Missing form field(s): ' + ', '.join(missing))


def validate_submission(params: Mapping[str, str]) -> tuple[Rsvp, list[str]]:
    """Build an Rsvp from raw form fields and collect validation errors.

    Every check runs, so a submission with several blank fields gets one
    message per field, always in name, email, phone order. The record is
    returned even when there are errors so the form can be shown again
    with what the guest already typed.
    """
    missing = [key for key in ('name', 'email', 'phone') if key not in params]
    if missing:
        raise MalformedSubmission(missing)

    record = Rsvp(
        name=params['name'],
        email=params['email'],
        phone=params['phone'],
        will_attend=params.get('willattend') == 'true',
    )
    errors = []
    if record.name == '':
        errors.append(NAME_REQUIRED)
    if record.email == '':
        errors.append(EMAIL_REQUIRED)
    if record.phone == '':
        errors.append(PHONE_REQUIRED)
    return record, errors

# -------------------------------------------------------------------
# Templates

# Autoescaping keeps guest-supplied names from being interpreted as HTML.
env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(TEMPLATES_DIR),
    autoescape=True
)

# Filled in once by load_templates() before the server starts accepting
# requests, and never modified afterwards.
templates: Mapping[str, jinja2.Template] = MappingProxyType({})


def load_templates(environment: jinja2.Environment | None = None) -> Mapping[str, jinja2.Template]:
    """Compile every view and publish them as a read-only mapping.

    Any template error (missing file, syntax error, missing layout)
    propagates to the caller; a server must not start without all of
    its views.
    """
    global templates
    environment = environment or env
    # Views only pull in the layout when rendered, so compile it up front.
    environment.get_template(LAYOUT)
    loaded = {}
    for index, name in enumerate(VIEW_NAMES):
        loaded[name] = environment.get_template(name + '.html')
        logger.info('Loaded template %d %s', index, name)
    templates = MappingProxyType(loaded)
    return templates


def render(view: str, **data) -> bytes:
    """Render a preloaded view to UTF-8 bytes."""
    return templates[view].render(**data).encode('utf-8')

# -------------------------------------------------------------------
# Utility functions

def parse_post(environ) -> dict[str, str]:
    """Parse URL-encoded POST data from the request body into a dict.

    Blank values are kept so that an empty field is distinguishable from
    a missing one. Only the first value of a repeated key is kept.
    """
    try:
        size = int(environ.get('CONTENT_LENGTH', 0) or 0)
    except (ValueError, TypeError):
        size = 0
    # A negative length would make read() block until the client hangs up.
    size = max(size, 0)
    body = environ['wsgi.input'].read(size).decode('utf-8')
    params = urllib.parse.parse_qs(body, keep_blank_values=True)
    return {k: v[0] for k, v in params.items()}


def html_response(start_response, body: bytes, status: str = '200 OK'):
    start_response(status, [
        ('Content-Type', HTML_CONTENT_TYPE),
        ('Content-Length', str(len(body))),
    ])
    return [body]


def text_response(start_response, status: str, message: str, headers=()):
    body = message.encode('utf-8')
    start_response(status, [
        ('Content-Type', TEXT_CONTENT_TYPE),
        ('Content-Length', str(len(body))),
        *headers,
    ])
    return [body]

# -------------------------------------------------------------------
# View handlers

def welcome_handler(environ, start_response):
    return html_response(start_response, render('welcome'))


def list_handler(environ, start_response):
    return html_response(start_response, render('list', responses=responses.list()))


def form_handler(environ, start_response):
    """Show the RSVP form (GET) or process a submitted one (POST)."""
    if environ['REQUEST_METHOD'] == 'GET':
        # The form always receives a record and an error list, even empty.
        data = FormData(record=Rsvp('', '', '', False), errors=[])
        return html_response(start_response, render('form', form=data))

    try:
        params = parse_post(environ)
    except UnicodeDecodeError:
        logger.warning('Rejected RSVP form post: body is not valid UTF-8')
        return text_response(start_response, '400 Bad Request', 'Form data must be UTF-8 encoded')

    try:
        record, errors = validate_submission(params)
    except MalformedSubmission as e:
        logger.warning('Rejected RSVP form post: %s', e)
        return text_response(start_response, '400 Bad Request', str(e))

    if errors:
        data = FormData(record=record, errors=errors)
        return html_response(start_response, render('form', form=data))

    responses.append(record)
    logger.info('Stored RSVP from %r (attending: %s)', record.name, record.will_attend)
    if record.will_attend:
        return html_response(start_response, render('thanks', name=record.name))
    return html_response(start_response, render('sorry', name=record.name))

# -------------------------------------------------------------------
# WSGI application

# path -> (handler, allowed methods)
ROUTES = {
    '/': (welcome_handler, ('GET',)),
    '/list': (list_handler, ('GET',)),
    '/form': (form_handler, ('GET', 'POST')),
}


def application(environ, start_response):
    """Handle an incoming HTTP request."""
    setup_testing_defaults(environ)
    path = environ.get('PATH_INFO', '') or '/'
    method = environ.get('REQUEST_METHOD', 'GET').upper()
    environ['REQUEST_METHOD'] = method

    route = ROUTES.get(path)
    if route is None:
        return text_response(start_response, '404 Not Found', 'Not Found')

    handler, allowed = route
    if method not in allowed:
        logger.warning('Method %s not allowed on %s', method, path)
        return text_response(
            start_response, '405 Method Not Allowed', 'Method Not Allowed',
            headers=[('Allow', ', '.join(allowed))],
        )

    try:
        return handler(environ, start_response)
    except jinja2.TemplateError:
        logger.exception('Failed to render response for %s %s', method, path)
        return text_response(start_response, '500 Internal Server Error', 'Internal Server Error')

# -------------------------------------------------------------------
# Main entry point

class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """WSGI server that handles each request on its own thread."""
    daemon_threads = True


def main() -> int:
    setup_logging(LOG_LEVEL)
    try:
        load_templates(env)
    except jinja2.TemplateError:
        logger.critical('Could not load templates from %s', TEMPLATES_DIR, exc_info=True)
        return 1

    try:
        httpd = make_server(HOST, PORT, application, server_class=ThreadingWSGIServer)
    except OSError as e:
        logger.critical('Could not listen on port %d: %s', PORT, e)
        return 1

    with httpd:
        logger.info('Serving on port %d... (Ctrl+C to stop)', PORT)
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            logger.info('Shutting down')
    return 0


if __name__ == '__main__':
    sys.exit(main())
