"""Tests for the one-shot callback listener and its rendezvous."""

import socket
import threading

import pytest
import requests

from kdbx_sync.auth.callback_server import CallbackListener, Rendezvous
from kdbx_sync.exceptions import CallbackError, ListenerError


@pytest.fixture
def listener():
    with CallbackListener("127.0.0.1", 0) as running:
        yield running


class TestRendezvous:

    def test_only_first_delivery_counts(self):
        rendezvous = Rendezvous()

        assert rendezvous.deliver(value="first")
        assert not rendezvous.deliver(value="second")
        assert rendezvous.wait(timeout=1) == "first"

    def test_delivered_error_is_raised(self):
        rendezvous = Rendezvous()
        rendezvous.deliver(error=OSError("boom"))

        with pytest.raises(CallbackError, match="boom"):
            rendezvous.wait(timeout=1)

    def test_timeout(self):
        with pytest.raises(CallbackError, match="no callback received"):
            Rendezvous().wait(timeout=0.05)

    def test_value_from_another_thread(self):
        rendezvous = Rendezvous()
        threading.Timer(0.05, rendezvous.deliver, kwargs={"value": "late"}).start()

        assert rendezvous.wait(timeout=5) == "late"


class TestCallbackListener:

    def test_port_zero_picks_a_free_port(self, listener):
        assert listener.port != 0
        assert listener.url == f"http://127.0.0.1:{listener.port}"

    def test_oauth_code(self, listener):
        response = requests.get(f"{listener.url}/", params={"code": "4/abc", "scope": "drive"}, timeout=5)

        assert response.status_code == 200
        assert listener.wait(timeout=5) == "4/abc"

    def test_oauth_error(self, listener):
        response = requests.get(f"{listener.url}/", params={"error": "access_denied"}, timeout=5)

        assert response.status_code == 400
        with pytest.raises(CallbackError, match="access_denied"):
            listener.wait(timeout=5)

    def test_missing_code(self, listener):
        response = requests.get(f"{listener.url}/", timeout=5)

        assert response.status_code == 400
        with pytest.raises(CallbackError, match="can't get a code"):
            listener.wait(timeout=5)

    def test_passphrase_form_and_submission(self, listener):
        form = requests.get(f"{listener.url}/missing_pass", timeout=5)
        assert form.status_code == 200
        assert 'name="pass"' in form.text
        assert 'action="/get_pass"' in form.text

        requests.get(f"{listener.url}/get_pass", params={"pass": "typed secret"}, timeout=5)

        assert listener.wait(timeout=5) == "typed secret"

    def test_missing_pass(self, listener):
        requests.get(f"{listener.url}/get_pass", timeout=5)

        with pytest.raises(CallbackError, match="can't get a pass"):
            listener.wait(timeout=5)

    def test_form_does_not_deliver(self, listener):
        requests.get(f"{listener.url}/missing_pass", timeout=5)

        assert not listener.rendezvous.delivered

    def test_unknown_route(self, listener):
        response = requests.get(f"{listener.url}/favicon.ico", timeout=5)

        assert response.status_code == 404
        assert not listener.rendezvous.delivered

    def test_bind_failure_reaches_the_waiter(self):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            port = blocker.getsockname()[1]
            failed = CallbackListener("127.0.0.1", port).start()

            with pytest.raises(ListenerError, match="can't bind"):
                failed.wait(timeout=5)
            failed.stop()
        finally:
            blocker.close()

    def test_single_use(self, listener):
        with pytest.raises(RuntimeError):
            listener.start()
