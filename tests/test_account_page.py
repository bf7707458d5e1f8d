from pathlib import Path

from streamlit.testing.v1 import AppTest

from medicrew.core import session

ACCOUNT_PAGE = Path(__file__).resolve().parents[1] / "medicrew" / "pages" / "03_Account.py"


def test_saved_profile_shows_confirmation(monkeypatch, tmp_path, patient):
    monkeypatch.setenv("MODEL_PROVIDER", "stub")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    at = AppTest.from_file(str(ACCOUNT_PAGE), default_timeout=30)
    at.session_state["user"] = patient
    at.session_state["app_mode"] = session.ACCOUNT
    at.run()
    assert not at.exception
    assert [s.value for s in at.success] == []

    at.text_input[0].set_value("Patricia")
    next(b for b in at.button if b.label == "Save changes").click()
    at.run()

    assert not at.exception
    assert [s.value for s in at.success] == ["Profile updated."]
    assert at.session_state["user"].name == "Patricia"

    at.run()
    assert [s.value for s in at.success] == []
