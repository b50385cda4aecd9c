import threading

import pytest

from simpledi import SimpleDICircularDependencyError
from simpledi._internal.resolution_context import constructing, current_chain


class Alpha:
    pass


class Beta:
    pass


def test_chain_tracks_nested_targets() -> None:
    with constructing(Alpha):
        with constructing(Beta):
            assert current_chain() == (Alpha, Beta)
        assert current_chain() == (Alpha,)

    assert current_chain() == ()


def test_reentering_target_raises_with_full_chain() -> None:
    with pytest.raises(SimpleDICircularDependencyError) as exc_info:
        with constructing(Alpha), constructing(Beta), constructing(Alpha):
            pass

    assert exc_info.value.chain == (Alpha, Beta, Alpha)
    assert current_chain() == ()


def test_chain_discarded_after_failure() -> None:
    def fail() -> None:
        with constructing(Alpha):
            msg = "constructor failed"
            raise ValueError(msg)

    with pytest.raises(ValueError, match="constructor failed"):
        fail()

    assert current_chain() == ()


def test_threads_have_independent_chains() -> None:
    seen: list[tuple[object, ...]] = []

    def worker() -> None:
        seen.append(current_chain())
        with constructing(Alpha):
            seen.append(current_chain())

    with constructing(Alpha):
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

    assert seen == [(), (Alpha,)]
