from __future__ import annotations

from pathlib import Path

import pytest

from geofill.services.zip_repository import ZipRepository


FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def zip_repository(tmp_path) -> ZipRepository:
    repository = ZipRepository(tmp_path / "zip_codes.db")
    repository.load_csv(FIXTURES / "zip_codes.csv")
    return repository
