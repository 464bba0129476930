# -*- coding: utf-8 -*-

import threading

import mock
import pytest

import sourcon.testing


def pytest_configure():
    pytest.Mock = mock.Mock
    pytest.MagicMock = mock.MagicMock
    pytest.AsyncMock = mock.AsyncMock


@pytest.fixture
def rcon_server():
    server = sourcon.testing.TestRCONServer()
    thread = threading.Thread(target=server.serve_forever)
    thread.start()
    yield server
    server.stop()
    thread.join()
