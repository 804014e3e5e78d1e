"""Tests for the schema hydrator."""

import copy

import pytest

from reportcard.schemas.report import AppSettings, SUBJECT_CATALOG, CONDUCT_CATALOG
from reportcard.services.sync.hydrator import (
    hydrate_student, hydrate_roster, hydrate_settings, load_students, load_settings
)

SUBJECT_IDS = [s.id for s in SUBJECT_CATALOG]
CONDUCT_IDS = [c.id for c in CONDUCT_CATALOG]


@pytest.fixture
def active_settings():
    return AppSettings(
        school_name="Little Oaks Nursery",
        school_address="1 Acorn Way",
        school_phone="0800 000",
        term="First",
        session="2025/2026",
        default_teacher_name="Mrs Bello",
        default_teacher_signature_url="https://cdn.test/sig.png"
    )


LEGACY_RECORDS = [
    {"id": "1"},
    {"id": "2", "fullName": "Ada", "subjects": [{"id": "lit", "name": "Literacy", "category": "Specific", "caScore": 30, "examScore": 50}]},
    {"id": "3", "subjects": [{"id": "french", "name": "French", "category": "Specific", "caScore": 1, "examScore": 1}]},
    {"id": "4", "subjects": "broken", "conducts": None, "schoolName": ""},
    {"id": "5", "conducts": [{"id": "att", "name": "Attentiveness", "rating": "A"}, {"id": "att", "name": "dup", "rating": "F"}]},
]


class TestHydrateStudent:
    """Repairing individual student blobs."""

    @pytest.mark.parametrize("raw", LEGACY_RECORDS)
    def test_hydration_is_idempotent(self, raw, active_settings):
        once = hydrate_student(raw, active_settings)
        twice = hydrate_student(once, active_settings)
        assert twice == once

    @pytest.mark.parametrize("raw", LEGACY_RECORDS)
    def test_hydration_yields_exact_catalog_ids(self, raw, active_settings):
        hydrated = hydrate_student(raw, active_settings)
        assert [s["id"] for s in hydrated["subjects"]] == SUBJECT_IDS
        assert [c["id"] for c in hydrated["conducts"]] == CONDUCT_IDS

    def test_existing_entries_are_carried_over_unchanged(self, active_settings):
        entry = {"id": "lit", "name": "Literacy", "category": "Specific",
                 "caScore": 30, "examScore": 50, "note": "reads well"}
        hydrated = hydrate_student({"id": "x", "subjects": [entry]}, active_settings)

        literacy = next(s for s in hydrated["subjects"] if s["id"] == "lit")
        assert literacy == entry
        numeracy = next(s for s in hydrated["subjects"] if s["id"] == "num")
        assert numeracy["caScore"] == 0 and numeracy["examScore"] == 0

    def test_partial_entries_are_completed_from_catalog(self, active_settings):
        hydrated = hydrate_student(
            {"id": "x", "subjects": [{"id": "lit", "caScore": 30}], "conducts": [{"id": "pol", "rating": "b"}]},
            active_settings
        )

        literacy = next(s for s in hydrated["subjects"] if s["id"] == "lit")
        assert literacy["name"] == "Literacy"
        assert literacy["category"] == "Specific"
        assert literacy["caScore"] == 30
        politeness = next(c for c in hydrated["conducts"] if c["id"] == "pol")
        assert politeness == {"id": "pol", "name": "Politeness", "rating": "B"}

    @pytest.mark.parametrize("field,value,expected", [
        ("gender", "Unknown", ""),
        ("gender", "Female", "Female"),
        ("age", "4.5", None),
        ("age", "abc", None),
        ("age", "4", 4),
        ("age", True, None),
        ("age", None, None),
    ])
    def test_out_of_range_values_are_reset(self, field, value, expected, active_settings):
        hydrated = hydrate_student({"id": "x", field: value}, active_settings)
        assert hydrated[field] == expected

    def test_invalid_category_and_rating_are_reset(self, active_settings):
        hydrated = hydrate_student({
            "id": "x",
            "subjects": [{"id": "pse", "name": "PSE", "category": "Core"}],
            "conducts": [{"id": "att", "name": "Attentiveness", "rating": "Z"}],
        }, active_settings)

        assert hydrated["subjects"][0]["category"] == "Prime"
        assert hydrated["subjects"][0]["name"] == "PSE"
        assert hydrated["conducts"][0]["rating"] == ""

    def test_unknown_catalog_ids_are_dropped(self, active_settings):
        hydrated = hydrate_student(LEGACY_RECORDS[2], active_settings)
        assert "french" not in [s["id"] for s in hydrated["subjects"]]

    def test_first_duplicate_entry_wins(self, active_settings):
        hydrated = hydrate_student(LEGACY_RECORDS[4], active_settings)
        attentiveness = hydrated["conducts"][0]
        assert attentiveness["rating"] == "A"

    def test_input_is_not_mutated(self, active_settings):
        raw = copy.deepcopy(LEGACY_RECORDS[1])
        hydrate_student(raw, active_settings)
        assert raw == LEGACY_RECORDS[1]

    def test_blank_school_fields_fall_back_to_settings(self, active_settings):
        hydrated = hydrate_student({"id": "x", "schoolName": "", "schoolPhone": None}, active_settings)
        assert hydrated["schoolName"] == "Little Oaks Nursery"
        assert hydrated["schoolAddress"] == "1 Acorn Way"
        assert hydrated["schoolPhone"] == "0800 000"

    def test_missing_signer_and_images_fall_back_to_settings(self, active_settings):
        hydrated = hydrate_student({"id": "x"}, active_settings)
        assert hydrated["teacherName"] == "Mrs Bello"
        assert hydrated["teacherSignatureUrl"] == "https://cdn.test/sig.png"
        assert hydrated["term"] == "First"

    def test_deliberately_blank_signer_is_kept(self, active_settings):
        hydrated = hydrate_student({"id": "x", "teacherName": ""}, active_settings)
        assert hydrated["teacherName"] == ""

    def test_missing_fields_get_defaults_and_unknown_fields_survive(self, active_settings):
        hydrated = hydrate_student({"id": "x", "favouriteColour": "green"}, active_settings)
        assert hydrated["favouriteColour"] == "green"
        assert hydrated["schoolOpened"] == 120
        assert hydrated["timesPresent"] == 0
        assert hydrated["fullName"] == ""


class TestHydrateRoster:
    """Repairing whole persisted rosters."""

    def test_entries_without_id_are_skipped(self):
        roster = hydrate_roster([{"fullName": "ghost"}, "junk", {"id": "ok"}])
        assert [r["id"] for r in roster] == ["ok"]

    @pytest.mark.parametrize("raw", [None, {}, "[]", 42])
    def test_non_list_roster_is_empty(self, raw):
        assert hydrate_roster(raw) == []

    def test_load_students_keeps_records_from_older_revisions(self):
        raw = [
            {"id": "old", "fullName": "Ada", "subjects": [{"id": "lit", "caScore": 30, "examScore": 50}]},
            {"id": "odd", "gender": "Unknown", "age": "4.5", "conducts": [{"id": "att", "rating": "excellent"}]},
        ]
        students = load_students(raw)

        assert [s.id for s in students] == ["old", "odd"]
        literacy = next(s for s in students[0].subjects if s.id == "lit")
        assert literacy.name == "Literacy"
        assert literacy.category == "Specific"
        assert literacy.ca_score == 30
        assert students[1].gender == ""
        assert students[1].age is None
        assert students[1].conducts[0].rating == ""
        assert students[1].conducts[0].name == "Attentiveness"

    def test_load_students_resets_fields_that_fail_validation(self):
        students = load_students([{"id": "x", "fullName": 42, "className": "Acorns"}])

        assert len(students) == 1
        assert students[0].full_name == ""
        assert students[0].to_payload()["className"] == "Acorns"

    def test_load_students_without_settings_uses_defaults(self):
        students = load_students([{"id": "a"}])
        assert students[0].school_name == AppSettings().school_name


class TestHydrateSettings:
    """Repairing persisted settings."""

    def test_missing_keys_get_defaults(self):
        hydrated = hydrate_settings({"schoolName": "Acorns"})
        assert hydrated["schoolName"] == "Acorns"
        assert hydrated["term"] == AppSettings().term
        assert hydrated["defaultSchoolCrestUrl"] is None

    def test_settings_hydration_is_idempotent(self):
        once = hydrate_settings({"schoolName": "Acorns", "legacyFlag": True})
        assert hydrate_settings(once) == once
        assert once["legacyFlag"] is True

    def test_absent_settings_are_defaults(self):
        assert load_settings(None) == AppSettings()
