"""
Access control for exams, submissions and grading results.

Application-level mirror of the database row-level-security policies, kept
behaviorally identical to them:

EXAMS:
- Educators create exams in their own school and view/update/delete their own
- School admins view every exam in their school

SUBMISSIONS:
- The exam's educator creates/views/updates/deletes submissions
- School admins view submissions for exams in their school

RESULTS:
- The exam's educator creates/views/updates results; nobody deletes them
- School admins view results for exams in their school
- Anyone holding the verification token can verify a result
"""

import hmac
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

SCHOOL_ADMIN = "school_admin"


@dataclass(frozen=True)
class UserContext:
    user_id: str
    school_id: Optional[str]
    roles: FrozenSet[str] = frozenset()

    def is_admin_of(self, school_id: Optional[str]) -> bool:
        """True for a school admin of the given school; a user without a school administers nothing."""
        return (
            SCHOOL_ADMIN in self.roles
            and self.school_id is not None
            and self.school_id == school_id
        )


@dataclass(frozen=True)
class ExamAccess:
    exam_id: str
    educator_id: str
    school_id: str


@dataclass(frozen=True)
class SubmissionAccess:
    submission_id: str
    exam_id: str
    exam_educator_id: str
    exam_school_id: str


@dataclass(frozen=True)
class ResultAccess:
    result_id: str
    verification_token: str
    submission_id: str
    exam_educator_id: str
    exam_school_id: str


def can_view_exam(user: UserContext, exam: ExamAccess) -> bool:
    return exam.educator_id == user.user_id or user.is_admin_of(exam.school_id)


def can_create_exam(user: UserContext, exam: ExamAccess) -> bool:
    return exam.educator_id == user.user_id and exam.school_id == user.school_id


def can_update_exam(user: UserContext, exam: ExamAccess) -> bool:
    return exam.educator_id == user.user_id


def can_delete_exam(user: UserContext, exam: ExamAccess) -> bool:
    return exam.educator_id == user.user_id


def can_view_submission(user: UserContext, submission: SubmissionAccess) -> bool:
    return (
        submission.exam_educator_id == user.user_id
        or user.is_admin_of(submission.exam_school_id)
    )


def can_create_submission(user: UserContext, submission: SubmissionAccess) -> bool:
    return submission.exam_educator_id == user.user_id


def can_update_submission(user: UserContext, submission: SubmissionAccess) -> bool:
    return submission.exam_educator_id == user.user_id


def can_delete_submission(user: UserContext, submission: SubmissionAccess) -> bool:
    return submission.exam_educator_id == user.user_id


def can_view_result(user: UserContext, result: ResultAccess) -> bool:
    return (
        result.exam_educator_id == user.user_id
        or user.is_admin_of(result.exam_school_id)
    )


def can_create_result(user: UserContext, result: ResultAccess) -> bool:
    return result.exam_educator_id == user.user_id


def can_update_result(user: UserContext, result: ResultAccess) -> bool:
    return result.exam_educator_id == user.user_id


def can_delete_result(user: UserContext, result: ResultAccess) -> bool:
    """Results have no delete policy; deletes are denied for every user."""
    return False


def can_verify_result(token: str, result: ResultAccess) -> bool:
    """Public verification by token, compared in constant time."""
    if not token or not result.verification_token:
        return False
    return hmac.compare_digest(token.encode("utf-8"), result.verification_token.encode("utf-8"))


def filter_accessible_exams(user: UserContext, exams: List[ExamAccess]) -> List[ExamAccess]:
    return [exam for exam in exams if can_view_exam(user, exam)]


def filter_accessible_submissions(
    user: UserContext, submissions: List[SubmissionAccess]
) -> List[SubmissionAccess]:
    return [s for s in submissions if can_view_submission(user, s)]


def filter_accessible_results(user: UserContext, results: List[ResultAccess]) -> List[ResultAccess]:
    return [r for r in results if can_view_result(user, r)]


def categorize_exam_access(
    user: UserContext, exams: List[ExamAccess]
) -> Tuple[List[ExamAccess], List[ExamAccess]]:
    """Split exams into (authorized, unauthorized) for the user."""
    authorized, unauthorized = [], []
    for exam in exams:
        (authorized if can_view_exam(user, exam) else unauthorized).append(exam)
    return authorized, unauthorized
