from __future__ import annotations

import pytest

from applecore.stack import DataStack
from sample_models import Base


@pytest.fixture()
def store_url(tmp_path):
    return f"sqlite:///{tmp_path / 'store.sqlite'}"


@pytest.fixture()
def stack(store_url):
    data_stack = DataStack(store_url, Base.metadata, connect_timeout=0)
    yield data_stack
    data_stack.clean_up()


@pytest.fixture()
def context(stack):
    ctx = stack.new_background_context()
    yield ctx
    ctx.close()
