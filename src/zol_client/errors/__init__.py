from .classifier import classify, extract_signature, format_details, is_retryable, normalize, report
from .program_errors import PROGRAM_ERRORS, ProgramErrorCode

__all__ = [
    "PROGRAM_ERRORS",
    "ProgramErrorCode",
    "classify",
    "extract_signature",
    "format_details",
    "is_retryable",
    "normalize",
    "report",
]
