"""
MessageClearance -- a pre-flight tone check for messages.

Sends a draft to an LLM via OpenRouter and returns a verdict, the risky
phrases, what's missing and three rewrites (short, warm, confident).

Entry points:
    message_clearance.session.AnalysisSession   state machine a front end drives
    message_clearance.llm.RetryOrchestrator     retrying pipeline
    message_clearance.cli:app                   the `message-clearance` command
"""

__version__ = "0.1.0"
