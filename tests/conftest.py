# Ensure Qt runs headless for worker tests; pure service tests never touch Qt.

import os

import pytest


@pytest.fixture(autouse=True, scope="session")
def _set_offscreen():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    return True


@pytest.fixture
def repo():
    from tests.factories import make_repo

    r = make_repo()
    yield r
    r._c.close()
