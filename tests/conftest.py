import pytest

from cstr import ConstraintSystem, set_system


@pytest.fixture(autouse=True)
def fresh_system():
    """Each test gets its own default system so queued daemons never leak."""
    system = ConstraintSystem()
    previous = set_system(system)
    yield system
    set_system(previous)
