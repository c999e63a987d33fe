"""One-shot local HTTP listener for browser-driven credential hand-off.

The listener runs in a background thread and delivers exactly one
:class:`CallbackResult` (a value or an error) to a single-slot
:class:`Rendezvous` the main thread blocks on. A failure to bind or serve is
delivered the same way, so the waiting thread never hangs on a dead listener.
"""

import html
import logging
import queue
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlparse

from ..exceptions import CallbackError, ListenerError

logger = logging.getLogger(__name__)

PASSPHRASE_FORM = """<html>
  <body>
    <form action="/get_pass">
      <label for="pass">Password:</label>
      <br>
      <input type="password" id="pass" name="pass">
      <br>
      <input type="submit" value="Submit">
    </form>
  </body>
</html>
"""

DONE_PAGE = "<html><body><p>{message}</p><p>You can close this window.</p></body></html>"


@dataclass(frozen=True)
class CallbackResult:
    """The single value or error produced by a listener."""
    value: Optional[str] = None
    error: Optional[Exception] = None


class Rendezvous:
    """Single-slot, single-use hand-off between the listener and the waiting thread."""

    def __init__(self):
        self._slot: "queue.Queue[CallbackResult]" = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._delivered = False

    @property
    def delivered(self) -> bool:
        return self._delivered

    def deliver(self, value: Optional[str] = None, error: Optional[Exception] = None) -> bool:
        """Hand over the result. Only the first delivery counts.

        Returns:
            True if this call delivered the result, False if one was already delivered
        """
        with self._lock:
            if self._delivered:
                return False
            self._delivered = True
            self._slot.put_nowait(CallbackResult(value=value, error=error))
            return True

    def wait(self, timeout: Optional[float] = None) -> str:
        """Block until the result arrives.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            The delivered value

        Raises:
            CallbackError: An error was delivered, or the timeout expired
        """
        try:
            result = self._slot.get(timeout=timeout)
        except queue.Empty:
            raise CallbackError(f"no callback received within {timeout}s")
        if result.error is not None:
            if isinstance(result.error, CallbackError):
                raise result.error
            raise CallbackError(f"callback failed: {result.error}") from result.error
        return result.value


class _CallbackHTTPServer(HTTPServer):
    listener: "CallbackListener"


class _CallbackHandler(BaseHTTPRequestHandler):
    """Routes: ``/`` OAuth redirect, ``/get_pass`` form submission, ``/missing_pass`` form."""

    server: _CallbackHTTPServer

    def do_GET(self):
        parsed = urlparse(self.path)
        params = parse_qs(parsed.query)
        listener = self.server.listener

        if parsed.path == "/missing_pass":
            self._respond(200, PASSPHRASE_FORM)
        elif parsed.path == "/":
            if "error" in params:
                listener.rendezvous.deliver(
                    error=CallbackError(f"authorization denied: {params['error'][0]}")
                )
                self._respond(400, DONE_PAGE.format(message="Authorization failed."))
            else:
                self._deliver_param(params, "code", "can't get a code from oauth callback")
        elif parsed.path == "/get_pass":
            self._deliver_param(params, "pass", "can't get a pass from callback")
        else:
            self._respond(404, DONE_PAGE.format(message="Not found."))

    def _deliver_param(self, params, name: str, missing_message: str):
        values = params.get(name)
        if not values or not values[0]:
            self.server.listener.rendezvous.deliver(error=CallbackError(missing_message))
            self._respond(400, DONE_PAGE.format(message=html.escape(missing_message)))
            return
        self.server.listener.rendezvous.deliver(value=values[0])
        self._respond(200, DONE_PAGE.format(message="Received."))

    def _respond(self, status: int, body: str):
        payload = body.encode('utf-8')
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        # query strings carry codes and passphrases, keep them out of the log
        logger.debug(f"Callback request: {self.command} {urlparse(self.path).path}")


class CallbackListener:
    """A short-lived local listener delivering one callback value.

    Not reusable: create a new listener for each interaction.
    """

    def __init__(self, host: str = "localhost", port: int = 3030):
        self.host = host
        self.port = port
        self.rendezvous = Rendezvous()
        self._server: Optional[_CallbackHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._bound = threading.Event()
        self._started = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> "CallbackListener":
        """Bind and serve in a background thread.

        Returns once the socket is bound or binding failed; a failure is
        delivered to the rendezvous as a ListenerError.
        """
        if self._started:
            raise RuntimeError("CallbackListener is single-use")
        self._started = True
        self._thread = threading.Thread(target=self._serve, name="callback-listener", daemon=True)
        self._thread.start()
        self._bound.wait()
        return self

    def _serve(self):
        try:
            self._server = _CallbackHTTPServer((self.host, self.port), _CallbackHandler)
        except OSError as e:
            self.rendezvous.deliver(error=ListenerError(f"callback listener can't bind: {e}"))
            self._bound.set()
            return

        self._server.listener = self
        self.port = self._server.server_address[1]
        self._bound.set()
        logger.debug(f"Callback listener serving on {self.url}")
        try:
            self._server.serve_forever()
        except Exception as e:
            self.rendezvous.deliver(error=ListenerError(f"callback listener failed: {e}"))
        finally:
            self._server.server_close()

    def wait(self, timeout: Optional[float] = None) -> str:
        """Block until the callback value (or an error) arrives."""
        return self.rendezvous.wait(timeout=timeout)

    def stop(self):
        """Shut the listener down."""
        if self._server is not None:
            self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5)

    def __enter__(self) -> "CallbackListener":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
