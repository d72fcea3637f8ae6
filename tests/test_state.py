import logging

import pytest

from notifly import state
from notifly.server import bootstrap


def test_alignment_defaults() -> None:
    assert state.alignment == state.Alignment("right", "top")


def test_alignment_configured_once() -> None:
    result = state.configure_alignment("left", "bottom")

    assert result == state.alignment == state.Alignment("left", "bottom")
    with pytest.raises(RuntimeError):
        state.configure_alignment("center", "top")
    assert state.alignment.horizontal == "left"


@pytest.mark.parametrize("horizontal,vertical", [("middle", "top"), ("left", "center")])
def test_alignment_rejects_unknown_values(horizontal, vertical) -> None:
    with pytest.raises(ValueError):
        state.configure_alignment(horizontal, vertical)
    assert state.alignment == state.Alignment()


def test_alignment_is_immutable() -> None:
    with pytest.raises(AttributeError):
        state.alignment.horizontal = "left"


def test_bootstrap_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("NOTIFLY_BROADCAST_FORMAT", "native")
    monkeypatch.setenv("NOTIFLY_HORIZONTAL_ALIGNMENT", "center")
    monkeypatch.setenv("NOTIFLY_VERTICAL_ALIGNMENT", "bottom")
    monkeypatch.setenv("NOTIFLY_LOG_LEVEL", "warning")

    root = logging.getLogger()
    previous = root.level
    try:
        bootstrap()
    finally:
        root.setLevel(previous)

    assert state.BROADCAST_FORMAT == "native"
    assert state.alignment == state.Alignment("center", "bottom")
    assert state.settings.log_level == "WARNING"
    assert state.principal_loader is not None
