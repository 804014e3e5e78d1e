"""
Remark generation client.

Asks a text-generation model for the class teacher's and head of school's
remarks on one report card. A single attempt per call, no caching.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from reportcard.core.config import settings
from reportcard.schemas.report import StudentRecord
from reportcard.utils.grading import calculate_total, get_grade_info

logger = logging.getLogger(__name__)


class RemarkGenerationError(Exception):
    """The remark service was unreachable or returned an unusable answer."""
    pass


@dataclass
class GeneratedRemarks:
    teacher_remark: str
    head_remark: str


def build_remark_prompt(student: StudentRecord) -> str:
    performance_summary = ", ".join(
        f"{s.name}: {calculate_total(s.ca_score, s.exam_score):g}/100 "
        f"({get_grade_info(calculate_total(s.ca_score, s.exam_score)).grade})"
        for s in student.subjects
    )
    conduct_summary = ", ".join(f"{c.name}: {c.rating or 'N/A'}" for c in student.conducts)

    return f"""
You are an experienced preschool teacher writing report card remarks.

Student Name: {student.full_name}
Gender: {student.gender}

Academic Performance:
{performance_summary}

Conduct:
{conduct_summary}

Attendance: Present {student.times_present}/{student.school_opened} days.

Task:
1. Write a "Class Teacher's Remark" (max 30 words). It should be encouraging, highlighting specific strengths based on the data, and gently mentioning areas for improvement if scores are low. Use "He/She" appropriately based on gender.
2. Write a "Head of School's Remark" (max 10 words). Short, punchy, positive endorsement like "Excellent progress!" or "Good effort shown."

Output Format (JSON):
{{
  "teacherRemark": "...",
  "headRemark": "..."
}}
"""


class BaseRemarkGenerator(ABC):
    """Abstract remark generator."""

    @abstractmethod
    async def generate(self, student: StudentRecord) -> GeneratedRemarks:
        pass


class GeminiRemarkGenerator(BaseRemarkGenerator):
    """Calls the Gemini ``generateContent`` REST endpoint and expects JSON back."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_API_URL).rstrip("/")
        self.client = client
        self.timeout = timeout

    async def generate(self, student: StudentRecord) -> GeneratedRemarks:
        if not self.api_key:
            raise RemarkGenerationError("API Key is missing.")

        body = {
            "contents": [{"parts": [{"text": build_remark_prompt(student)}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            if self.client is not None:
                response = await self.client.post(url, params={"key": self.api_key}, json=body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, params={"key": self.api_key}, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error generating remarks: {e}")
            raise RemarkGenerationError(f"Remark service request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Remark service returned a non-JSON body: {e}")
            raise RemarkGenerationError("No response from AI") from e
        return self._parse(data)

    @staticmethod
    def _parse(data: dict) -> GeneratedRemarks:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise RemarkGenerationError("No response from AI")

        try:
            remarks = json.loads(text)
            return GeneratedRemarks(
                teacher_remark=str(remarks["teacherRemark"]).strip(),
                head_remark=str(remarks["headRemark"]).strip(),
            )
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise RemarkGenerationError(f"Malformed remark response: {e}") from e
