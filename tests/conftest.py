import pytest

from gadget_modeling.architectures import Amd64, I386


@pytest.fixture
def amd64():
    return Amd64()


@pytest.fixture
def i386():
    return I386()


@pytest.fixture(params=["amd64", "i386"])
def emulator(request):
    return Amd64() if request.param == "amd64" else I386()
