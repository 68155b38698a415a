"""thread-agent.

Captures Slack threads, summarizes them with OpenAI and files the result in
Notion, with persisted per-run progress and two layers of retry:
- per-step exponential backoff
- whole-run re-attempts by the job executor
"""

__version__ = "0.1.0"

from thread_agent.config import ThreadAgentSettings
from thread_agent.result import Failure, Result, Success

__all__ = ["__version__", "Failure", "Result", "Success", "ThreadAgentSettings"]
