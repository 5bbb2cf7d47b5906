"""Use case layer for the Learning context.

Re-export common use cases for convenient imports in tests.
"""

from .assignments import ListStudentAssignmentsInput, ListStudentAssignmentsUseCase
from .enrollment import EnrollmentService
from .submissions import (
    DeleteSubmissionInput,
    DeleteSubmissionUseCase,
    SubmitAssignmentInput,
    SubmitAssignmentUseCase,
)

__all__ = [
    "DeleteSubmissionInput",
    "DeleteSubmissionUseCase",
    "EnrollmentService",
    "ListStudentAssignmentsInput",
    "ListStudentAssignmentsUseCase",
    "SubmitAssignmentInput",
    "SubmitAssignmentUseCase",
]
