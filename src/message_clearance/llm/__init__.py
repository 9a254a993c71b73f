"""
Analysis pipeline -- request execution, extraction, validation, retries.

Usage:
    from .llm import RequestExecutor, RetryOrchestrator

    orchestrator = RetryOrchestrator(RequestExecutor(config))
    result = await orchestrator.run(request, api_key)
    print(result.verdict, result.rewrites.short)
"""

from .cancellation import CancelToken, OperationCancelled, any_token, timeout_token
from .client import RequestExecutor
from .errors import ErrorKind, PipelineError, RequestCancelled
from .extraction import extract
from .retry import RetryOrchestrator, backoff_delay
from .validation import validate_analysis
