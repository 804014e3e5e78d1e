"""
Pydantic schemas for report-card data.

Records are persisted as camelCase JSON blobs (both locally and in the remote
store), so every model serializes by alias. Unknown keys are kept so that data
written by a newer revision survives a round trip through an older one.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Dict, Any, Optional, Literal, get_args
import uuid

CA_SCORE_MAX = 40
EXAM_SCORE_MAX = 60

ConductGrade = Literal["A", "B", "C", "D", "E", "F", ""]
SubjectCategory = Literal["Prime", "Specific"]
Gender = Literal["Male", "Female", ""]

CONDUCT_GRADES = get_args(ConductGrade)
SUBJECT_CATEGORIES = get_args(SubjectCategory)
GENDERS = get_args(Gender)


def clamp_score(value: Any, upper: int) -> float:
    """Coerce a form value to a number in ``[0, upper]``; junk becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if number != number:  # NaN
        number = 0.0
    return min(float(upper), max(0.0, number))


class ReportModel(BaseModel):
    """Base for persisted blobs: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="allow",
    )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SubjectScore(ReportModel):
    id: str
    name: str
    category: SubjectCategory
    ca_score: float = 0
    exam_score: float = 0

    @field_validator("ca_score", mode="before")
    @classmethod
    def clamp_ca(cls, v):
        return clamp_score(v, CA_SCORE_MAX)

    @field_validator("exam_score", mode="before")
    @classmethod
    def clamp_exam(cls, v):
        return clamp_score(v, EXAM_SCORE_MAX)

    @property
    def total(self) -> float:
        return self.ca_score + self.exam_score


class ConductRating(ReportModel):
    id: str
    name: str
    rating: ConductGrade = ""

    @field_validator("rating", mode="before")
    @classmethod
    def normalize_rating(cls, v):
        if v is None:
            return ""
        return str(v).strip().upper()


SUBJECT_CATALOG: List[SubjectScore] = [
    SubjectScore(id="pse", name="Personal, Social & Emotional Dev.", category="Prime"),
    SubjectScore(id="cl", name="Communication & Language", category="Prime"),
    SubjectScore(id="pd", name="Physical Development", category="Prime"),
    SubjectScore(id="lit", name="Literacy", category="Specific"),
    SubjectScore(id="dic", name="Diction", category="Specific"),
    SubjectScore(id="num", name="Numeracy", category="Specific"),
    SubjectScore(id="uw", name="Understanding the World", category="Specific"),
    SubjectScore(id="ead", name="Expressive Art & Design", category="Specific"),
]

CONDUCT_CATALOG: List[ConductRating] = [
    ConductRating(id="att", name="Attentiveness"),
    ConductRating(id="neat", name="Neatness & Orderliness"),
    ConductRating(id="punc", name="Punctuality"),
    ConductRating(id="pol", name="Politeness"),
    ConductRating(id="rel", name="Relationship with Peers"),
]


class AppSettings(ReportModel):
    """Per-identity settings singleton."""

    school_name: str = "LAURASTEPHENS SCHOOL"
    school_address: str = "LauraStephens Road, Lekki Scheme II, Lekki-Epe Expressway, Lagos."
    school_phone: str = "08137022005"
    term: str = "Second (Spring)"
    session: str = "2024/2025"
    next_term_begins: str = "Monday, 28th April, 2025"
    default_teacher_name: str = "Adejolaoluwa Odekoya"
    default_head_name: str = "Ozoro Elohor Sarah"
    default_head_of_school_name: str = "Raymond Adeleke"

    # Images
    default_school_crest_url: Optional[str] = None
    default_teacher_signature_url: Optional[str] = None
    default_head_teacher_stamp_url: Optional[str] = None
    default_head_of_school_stamp_url: Optional[str] = None


DEFAULT_SETTINGS = AppSettings()


class StudentRecord(ReportModel):
    """One child's report data."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    # School info
    school_name: str = ""
    school_address: str = ""
    school_phone: str = ""
    school_logo_url: Optional[str] = None
    school_crest_url: Optional[str] = None

    # Personal info
    full_name: str = ""
    age: Optional[int] = None
    gender: Gender = ""
    class_name: str = "Fabulous 3's"
    roll_number: str = ""
    photo_url: Optional[str] = None

    # Attendance
    school_opened: int = 120
    times_present: int = 0

    subjects: List[SubjectScore] = Field(
        default_factory=lambda: [s.model_copy() for s in SUBJECT_CATALOG]
    )
    conducts: List[ConductRating] = Field(
        default_factory=lambda: [c.model_copy() for c in CONDUCT_CATALOG]
    )

    # Remarks and signers
    teacher_remark: str = ""
    head_remark: str = ""
    teacher_name: str = ""
    head_name: str = ""
    head_of_school_name: str = ""

    # Signatures & stamps
    teacher_signature_url: Optional[str] = None
    head_teacher_stamp_url: Optional[str] = None
    head_of_school_stamp_url: Optional[str] = None

    # Meta
    term: str = ""
    session: str = ""
    next_term_begins: str = ""
    last_updated: Optional[int] = None

    @field_validator("age", mode="before")
    @classmethod
    def blank_age(cls, v):
        # Legacy records store an unset age as ""
        if v == "" or v is None:
            return None
        return v

    @field_validator("times_present", "school_opened", mode="before")
    @classmethod
    def non_negative_days(cls, v):
        try:
            return max(0, int(v))
        except (TypeError, ValueError):
            return 0

    def subject(self, subject_id: str) -> SubjectScore:
        for subject in self.subjects:
            if subject.id == subject_id:
                return subject
        raise KeyError(subject_id)

    def conduct(self, conduct_id: str) -> ConductRating:
        for conduct in self.conducts:
            if conduct.id == conduct_id:
                return conduct
        raise KeyError(conduct_id)


def create_initial_student(settings: AppSettings) -> StudentRecord:
    """Blank record with school, term and signer defaults taken from settings."""
    return StudentRecord(
        school_name=settings.school_name,
        school_address=settings.school_address,
        school_phone=settings.school_phone,
        school_crest_url=settings.default_school_crest_url,
        teacher_name=settings.default_teacher_name,
        head_name=settings.default_head_name,
        head_of_school_name=settings.default_head_of_school_name,
        teacher_signature_url=settings.default_teacher_signature_url,
        head_teacher_stamp_url=settings.default_head_teacher_stamp_url,
        head_of_school_stamp_url=settings.default_head_of_school_stamp_url,
        term=settings.term,
        session=settings.session,
        next_term_begins=settings.next_term_begins,
    )
