#!/usr/bin/env python3
"""Validate local StayHub environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date, timedelta
from importlib.metadata import version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from stayhub.domain.models import BookingCategory, RoomSelection
from stayhub.repository.data_repository import BookingRepository
from stayhub.services.availability_service import AvailabilityService
from stayhub.services.quote_service import QuoteService
from stayhub.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="stayhub-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("requests", "requests"),
        ("streamlit", "streamlit"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "stayhub_validation.db",
        )
        repository = BookingRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo inventory seeding
        try:
            repository.seed_demo_data()
            property_types = repository.list_property_types()
            if len(property_types) != 3:
                raise RuntimeError(f"expected 3 property types, got {len(property_types)}")
            ok, line = _print_result("Demo inventory: 3 property types", True)
        except Exception as exc:
            ok, line = _print_result("Demo inventory", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Availability and pricing on an empty calendar
        try:
            check_in = date.today() + timedelta(days=30)
            check_out = check_in + timedelta(days=2)
            availability = AvailabilityService(repository=repository, settings=validation_settings)
            bookable = availability.list_bookable(check_in=check_in, check_out=check_out)
            if not bookable:
                raise RuntimeError("no bookable property types on an empty calendar")
            quote = QuoteService(repository=repository, settings=validation_settings).quote(
                category=BookingCategory.NORMAL,
                check_in=check_in,
                check_out=check_out,
                selections=[RoomSelection(property_type_id=bookable[0]["property_type_id"], room_count=1)],
                number_of_adults=2,
            )
            ok, line = _print_result(
                "Availability and quote",
                True,
                f": {len(bookable)} bookable, total={quote.breakdown.total}",
            )
        except Exception as exc:
            ok, line = _print_result("Availability and quote", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" StayHub Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
