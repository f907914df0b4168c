from __future__ import annotations

from collections.abc import Iterator

import pytest

from tilesmith.util import rng


@pytest.fixture(autouse=True)
def seeded_rng_streams() -> Iterator[None]:
    """Give every test the same freshly seeded RNG streams."""
    rng.init(12345)
    yield
    rng.init(12345)
