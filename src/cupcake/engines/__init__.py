from .submission_engine import SubmissionEngine

__all__ = ["SubmissionEngine"]
