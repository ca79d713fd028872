import pytest

import jc_workflows.utils


@pytest.fixture(autouse=True, scope='function')
def pre_and_post_test():
    yield

    # Existence checks are cached while the graph is built, and the tests
    # create and remove files between runs.
    jc_workflows.utils.exists.cache_clear()
