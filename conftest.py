import pytest

from campus_library.commands import CommandHandler
from campus_library.library import Library


@pytest.fixture
def db_file(tmp_path, request):
    # Unique database file per test
    return str(tmp_path / f"test_{request.node.name}.db")


@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file, save_delay_ms=20)
    yield lib
    lib.close()


@pytest.fixture
def commands(lib):
    return CommandHandler(lib)
