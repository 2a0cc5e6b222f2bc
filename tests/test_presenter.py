import pytest

from threat_stream.presenter import SnapshotPresenter

from conftest import news


def test_presenter_tracks_latest_state():
    presenter = SnapshotPresenter()

    presenter.on_window_attempt(3)
    presenter.on_stream_updated((news("Headline", 1),))

    assert presenter.window_days == 3
    assert presenter.updates == 1
    text = presenter.render()
    assert "Headline" in text
    assert "LAST 3 DAYS" in text


def test_presenter_exhausted_clears_entries():
    presenter = SnapshotPresenter()
    presenter.on_stream_updated((news("Headline", 1),))

    presenter.on_exhausted("No recent intelligence found (Last 7 Days).")

    assert presenter.entries == ()
    assert "No recent intelligence found" in presenter.render()


def test_presenter_rejects_unknown_format():
    with pytest.raises(ValueError):
        SnapshotPresenter("pdf")
