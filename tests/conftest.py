import pytest

from medicrew.core.config import Settings
from medicrew.core.models import Consents, UserProfile


@pytest.fixture
def settings(tmp_path):
    return Settings(provider="stub", data_dir=tmp_path)


@pytest.fixture
def patient():
    return UserProfile(id="user-1", type="patient", name="Pat", email="pat@example.com", consents=Consents())


@pytest.fixture
def doctor():
    return UserProfile(
        id="user-2",
        type="doctor",
        name="Dr. Who",
        email="dr@example.com",
        license_file_id="lic_1",
        verification_status="pending",
        consents=Consents(),
    )


@pytest.fixture
def guest():
    return UserProfile(id="guest-1", type="guest", name="Guest User")
