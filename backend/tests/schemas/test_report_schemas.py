"""Tests for report-card schemas."""

import pytest
from pydantic import ValidationError

from reportcard.schemas.report import (
    AppSettings, ConductRating, StudentRecord, SubjectScore,
    SUBJECT_CATALOG, CONDUCT_CATALOG, clamp_score, create_initial_student
)
from reportcard.schemas.identity import Identity, guest_identity


class TestScoreClamping:
    """Scores stay within their component maxima."""

    @pytest.mark.parametrize("value,upper,expected", [
        (75, 60, 60.0),
        (-5, 60, 0.0),
        (45, 40, 40.0),
        ("33.5", 40, 33.5),
        ("abc", 40, 0.0),
        (None, 60, 0.0),
        (float("nan"), 60, 0.0),
    ])
    def test_clamp_score(self, value, upper, expected):
        assert clamp_score(value, upper) == expected

    def test_subject_scores_are_clamped_on_construction(self):
        subject = SubjectScore(id="lit", name="Literacy", category="Specific", ca_score=45, exam_score=75)
        assert subject.ca_score == 40
        assert subject.exam_score == 60
        assert subject.total == 100

    def test_subject_scores_are_clamped_on_assignment(self):
        subject = SubjectScore(id="lit", name="Literacy", category="Specific")
        subject.exam_score = -5
        subject.ca_score = 41
        assert subject.exam_score == 0
        assert subject.ca_score == 40

    def test_camel_case_input_is_accepted(self):
        subject = SubjectScore.model_validate(
            {"id": "num", "name": "Numeracy", "category": "Specific", "caScore": 20, "examScore": 30}
        )
        assert subject.total == 50


class TestConductRating:

    def test_rating_is_normalized(self):
        assert ConductRating(id="att", name="Attentiveness", rating=" b ").rating == "B"

    def test_missing_rating_is_blank(self):
        assert ConductRating(id="att", name="Attentiveness", rating=None).rating == ""

    def test_invalid_rating_is_rejected(self):
        with pytest.raises(ValidationError):
            ConductRating(id="att", name="Attentiveness", rating="Z")


class TestStudentRecord:
    """Student record defaults and serialization."""

    def test_new_record_has_full_catalogs(self):
        record = StudentRecord()
        assert [s.id for s in record.subjects] == [s.id for s in SUBJECT_CATALOG]
        assert [c.id for c in record.conducts] == [c.id for c in CONDUCT_CATALOG]
        assert all(s.ca_score == 0 and s.exam_score == 0 for s in record.subjects)

    def test_new_records_get_distinct_ids_and_catalog_copies(self):
        first, second = StudentRecord(), StudentRecord()
        assert first.id != second.id
        first.subject("lit").ca_score = 10
        assert second.subject("lit").ca_score == 0
        assert SUBJECT_CATALOG[3].ca_score == 0

    def test_payload_is_camel_case(self):
        payload = StudentRecord(full_name="Ada", class_name="Tigers").to_payload()
        assert payload["fullName"] == "Ada"
        assert payload["className"] == "Tigers"
        assert payload["subjects"][0]["caScore"] == 0
        assert "full_name" not in payload

    def test_unknown_fields_survive_round_trip(self):
        record = StudentRecord.model_validate({"id": "a", "houseColour": "blue"})
        assert record.to_payload()["houseColour"] == "blue"

    def test_blank_age_is_none(self):
        assert StudentRecord.model_validate({"id": "a", "age": ""}).age is None
        assert StudentRecord.model_validate({"id": "a", "age": "4"}).age == 4

    def test_attendance_is_never_negative(self):
        record = StudentRecord(times_present=-3)
        assert record.times_present == 0

    def test_unknown_subject_lookup_raises(self):
        with pytest.raises(KeyError):
            StudentRecord().subject("french")
        with pytest.raises(KeyError):
            StudentRecord().conduct("honesty")


class TestCreateInitialStudent:

    def test_defaults_come_from_settings(self):
        app_settings = AppSettings(
            school_name="Acorns",
            term="Third",
            default_teacher_name="Mrs Bello",
            default_school_crest_url="https://cdn.test/crest.png"
        )
        record = create_initial_student(app_settings)

        assert record.school_name == "Acorns"
        assert record.term == "Third"
        assert record.teacher_name == "Mrs Bello"
        assert record.school_crest_url == "https://cdn.test/crest.png"
        assert record.full_name == ""
        assert record.class_name == "Fabulous 3's"
        assert record.school_opened == 120


class TestIdentity:

    def test_guest_identity_is_guest(self):
        assert guest_identity().is_guest

    def test_account_identity_is_not_guest(self):
        assert not Identity(id="abc-123").is_guest
