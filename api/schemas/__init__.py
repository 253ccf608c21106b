# API Pydantic 数据模型
from .response import APIResponse, ErrorDetail, success_response, error_response
from .protein import (
    AnalyzeRequest,
    CompareRequest,
    LigandTrackRequest,
    SearchRequest,
    SimilarRequest,
)

__all__ = [
    "APIResponse",
    "ErrorDetail",
    "success_response",
    "error_response",
    "AnalyzeRequest",
    "CompareRequest",
    "LigandTrackRequest",
    "SearchRequest",
    "SimilarRequest",
]
