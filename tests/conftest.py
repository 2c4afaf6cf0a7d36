import asyncio
import inspect
import sys

import pytest

from extpack.app.settings import loadSettings



def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addini(
        "asyncio_mode",
        "Execution mode for @pytest.mark.asyncio tests (only 'strict' is supported without pytest-asyncio).",
        default="strict",
    )



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")

    mode = config.getini("asyncio_mode")
    if mode != "strict":
        raise pytest.UsageError(
            "tests/conftest.py only supports asyncio_mode='strict' without pytest-asyncio installed"
        )

    config.addinivalue_line("markers", "asyncio: mark a test to run inside an event loop")



@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function):
    """Runs `@pytest.mark.asyncio` coroutine tests on a fresh event loop per test."""
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None
    func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(func):
        return None
    argnames = pyfuncitem._fixtureinfo.argnames
    kwargs = {name: pyfuncitem.funcargs[name] for name in argnames}
    asyncio.run(func(**kwargs))
    return True



@pytest.fixture(autouse=True)
def _isolatedSettings(monkeypatch, tmp_path):
    """Keep user settings files out of tests and drop memoized settings between tests."""
    monkeypatch.setenv("EXTPACK_SETTINGS", str(tmp_path / "no-such-settings.json5"))
    loadSettings.cache_clear()
    yield
    loadSettings.cache_clear()
