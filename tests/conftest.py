import pytest

from macho_builder import sample_executable, sample_fat


@pytest.fixture
def executable() -> bytes:
    return sample_executable()


@pytest.fixture
def fat_binary() -> bytes:
    return sample_fat()


@pytest.fixture
def executable_path(tmp_path, executable):
    path = tmp_path / "hello"
    path.write_bytes(executable)
    return path


@pytest.fixture
def fat_path(tmp_path, fat_binary):
    path = tmp_path / "hello-universal"
    path.write_bytes(fat_binary)
    return path
