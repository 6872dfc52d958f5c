"""Shared fixtures and fakes."""

from concurrent.futures import Future

import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.config/lazykv."""
    monkeypatch.setattr("lazykv.config.CONFIG_PATH", tmp_path / "config.json")
    monkeypatch.setattr("lazykv.config._README_PATH", tmp_path / "README.md")
    monkeypatch.setattr("lazykv.config.THEME_CONFIG_PATH", tmp_path / "theme.json")


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class ManualExecutor:
    """Collects submitted work; nothing runs until ``run`` is called."""

    def __init__(self):
        self.pending: list[tuple[Future, object]] = []

    def submit(self, fn):
        future: Future = Future()
        self.pending.append((future, fn))
        return future

    def run(self, index=0):
        """Run the *index*-th pending job and resolve its future."""
        future, fn = self.pending.pop(index)
        try:
            future.set_result(fn())
        except Exception as exc:
            future.set_exception(exc)

    def run_all(self):
        """Run jobs until none are left, including jobs queued by completions."""
        while self.pending:
            self.run()


def immediate(callback):
    """``post`` that runs the callback synchronously."""
    callback()
