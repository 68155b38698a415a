#!/usr/bin/env python3
"""Programmatic thread-to-Notion example.

This demonstrates using the workflow components directly:

* load settings from `.env`
* record a workflow run for a Slack thread
* execute it through the job executor and print the Notion page link

The thread to capture is passed as arguments (not read from `.env`).
"""

from __future__ import annotations

import argparse
from typing import Sequence

from thread_agent.clients import build_collaborators
from thread_agent.config import ThreadAgentSettings
from thread_agent.errors import ThreadAgentError
from thread_agent.jobs import ProcessWorkflowJob
from thread_agent.logging import configure_logging
from thread_agent.models import WorkflowRun
from thread_agent.orchestrator import WorkflowOrchestrator
from thread_agent.pipeline import build_pipeline
from thread_agent.store import DuplicateRunError, JsonRunStore, TemplateStore


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Summarize a Slack thread into Notion.")
    parser.add_argument("--channel", required=True, help="Slack channel id, e.g. C0123456")
    parser.add_argument("--thread-ts", required=True, help="Timestamp of the thread parent")
    parser.add_argument("--template", default=None, help="Template id (optional)")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = ThreadAgentSettings()
    configure_logging(settings.log_level)

    store = JsonRunStore(settings.runs_state_file)
    try:
        run = store.create(
            WorkflowRun(
                workflow_name="slack_thread_to_notion",
                input_data={"channel_id": args.channel, "thread_ts": args.thread_ts},
                slack_channel_id=args.channel,
                slack_message_id=args.thread_ts,
                slack_thread_ts=args.thread_ts,
                template_id=args.template,
            )
        )
    except DuplicateRunError as exc:
        print(exc.message)
        return 0

    steps = build_pipeline(
        build_collaborators(settings),
        settings,
        TemplateStore(settings.templates_state_file),
    )
    job = ProcessWorkflowJob(store, WorkflowOrchestrator(steps), settings.job_retry_policy())

    try:
        finished = job.run(run.id)
    except ThreadAgentError as exc:
        print(f"Run {run.id} failed: {exc.message}")
        return 1

    print(f"Run {finished.id}: {finished.status.value}")
    if finished.output_data:
        print(f"Notion page: {finished.output_data.get('document_url')}")
    print(f"Persisted to: {settings.runs_state_file}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
