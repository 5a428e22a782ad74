"""Shared test fixtures for the document verification test suite."""

from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from atlas_verify.models import ApplicantProfile, RawText
from atlas_verify.mrz.parser import compute_check_digit
from atlas_verify.ocr.tesseract_engine import OCREngineError

AS_OF = date(2026, 10, 18)


def _cd(data: str) -> str:
    return str(compute_check_digit(data))


def build_td3(
    surname: str = "ERIKSSON",
    given_names: str = "ANNA MARIA",
    number: str = "L898902C3",
    nationality: str = "UTO",
    birth: str = "740812",
    sex: str = "F",
    expiry: str = "340415",
    personal: str = "ZE184226B",
    issuing: str = "UTO",
) -> tuple[str, str]:
    """Build a TD3 zone with correct check digits."""
    names = f"{surname.replace(' ', '<')}<<{given_names.replace(' ', '<')}"
    line1 = f"P<{issuing}{names}".ljust(44, "<")[:44]
    number_field = number.ljust(9, "<")
    personal_field = personal.ljust(14, "<")
    personal_check = _cd(personal_field) if personal else "<"
    body = (
        number_field
        + _cd(number_field)
        + nationality
        + birth
        + _cd(birth)
        + sex
        + expiry
        + _cd(expiry)
        + personal_field
        + personal_check
    )
    composite = body[0:10] + body[13:20] + body[21:43]
    return line1, body + _cd(composite)


class FakeWorker:
    """OCR worker stand-in returning canned text per source."""

    def __init__(self, texts: dict[Any, str], fail_on_enter: bool = False) -> None:
        self.texts = texts
        self.fail_on_enter = fail_on_enter
        self.entered = False
        self.exited = False
        self.calls: list[Any] = []

    async def __aenter__(self) -> "FakeWorker":
        if self.fail_on_enter:
            raise OCREngineError("Tesseract binary not found")
        self.entered = True
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.exited = True

    async def recognize(self, source: Any) -> RawText:
        self.calls.append(source)
        if source not in self.texts:
            raise OCREngineError("Unsupported or unreadable image")
        return RawText(self.texts[source], 90)


def corrupt_check(line: str, index: int) -> str:
    """Replace the check digit at ``index`` with a different digit."""
    wrong = str((int(line[index]) + 1) % 10) if line[index].isdigit() else "1"
    return line[:index] + wrong + line[index + 1 :]


@pytest.fixture
def make_td3() -> Callable[..., tuple[str, str]]:
    """Return the TD3 zone builder."""
    return build_td3


@pytest.fixture
def as_of() -> date:
    """Fixed reference date for policy evaluation."""
    return AS_OF


@pytest.fixture
def td3_lines() -> tuple[str, str]:
    """A checksum-valid TD3 zone for ANNA MARIA ERIKSSON."""
    return build_td3()


@pytest.fixture
def passport_text(td3_lines: tuple[str, str]) -> str:
    """OCR text of a passport biographic page with a valid MRZ."""
    return "\n".join(
        [
            "UTOPIA",
            "PASSPORT",
            "Surname: ERIKSSON",
            "Given Names: ANNA MARIA",
            "Nationality: UTOPIAN",
            "Date of Birth: 12 AUG 1974",
            "Sex: F",
            "Passport No: L898902C3",
            "Date of Expiry: 15 APR 2034",
            "",
            *td3_lines,
        ]
    )


@pytest.fixture
def applicant() -> ApplicantProfile:
    """Applicant whose declarations match the sample passport."""
    return ApplicantProfile.create(
        surname="Eriksson",
        given_names="Anna Maria",
        date_of_birth="1974-08-12",
        nationality="uto",
        passport_number="l898902c3",
        visa_type="tourist",
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
