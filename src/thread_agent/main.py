"""CLI entrypoint for thread-agent.

Creates workflow runs for captured Slack threads and executes them through the
job executor.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from thread_agent import __version__
from thread_agent.clients import build_collaborators
from thread_agent.config import ThreadAgentSettings
from thread_agent.errors import ConfigurationError, ThreadAgentError
from thread_agent.jobs import ProcessWorkflowJob
from thread_agent.logging import configure_logging
from thread_agent.models import RunStatus, WorkflowRun
from thread_agent.orchestrator import WorkflowOrchestrator
from thread_agent.pipeline import build_pipeline
from thread_agent.store import DuplicateRunError, JsonRunStore, TemplateStore
from thread_agent.worker import drain_pending_runs

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thread-agent",
        description="Turn Slack threads into Notion documents",
    )
    parser.add_argument("--version", action="version", version=f"thread-agent {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create_run = subparsers.add_parser("create-run", help="Record a new pending workflow run")
    create_run.add_argument("--channel", required=True, help="Slack channel id")
    create_run.add_argument("--thread-ts", required=True, help="Timestamp of the thread parent")
    create_run.add_argument(
        "--message-ts",
        default=None,
        help="Timestamp of the message that triggered the run (defaults to --thread-ts)",
    )
    create_run.add_argument("--template", default=None, help="Template id")
    create_run.add_argument("--prompt", default=None, help="System prompt overriding the template")
    create_run.add_argument(
        "--thread-data",
        type=Path,
        default=None,
        help="JSON file with parent_message and replies; the run then skips the Slack fetch",
    )
    create_run.add_argument("--workflow-name", default="slack_thread_to_notion")

    run = subparsers.add_parser("run", help="Execute one workflow run")
    run.add_argument("run_id")
    run.add_argument(
        "--once",
        action="store_true",
        help="Single attempt, without the job-level retry loop",
    )

    work = subparsers.add_parser("work", help="Execute every pending workflow run")
    work.add_argument("--max-workers", type=int, default=4)

    show = subparsers.add_parser("show", help="Print a workflow run as JSON")
    show.add_argument("run_id")

    subparsers.add_parser("config-status", help="Show which services are configured")

    return parser


def build_job(settings: ThreadAgentSettings, store: JsonRunStore) -> ProcessWorkflowJob:
    steps = build_pipeline(
        build_collaborators(settings),
        settings,
        TemplateStore(settings.templates_state_file),
    )
    return ProcessWorkflowJob(
        store,
        WorkflowOrchestrator(steps),
        settings.job_retry_policy(),
    )


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ThreadAgentSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    store = JsonRunStore(settings.runs_state_file)

    try:
        if args.command == "config-status":
            _print_json(settings.configuration_status())
            return 0

        if args.command == "create-run":
            message_ts = args.message_ts or args.thread_ts
            input_data: dict[str, Any] = {
                "channel_id": args.channel,
                "thread_ts": args.thread_ts,
                "message_id": message_ts,
            }
            if args.prompt:
                input_data["custom_prompt"] = args.prompt
            if args.thread_data is not None:
                input_data["thread_data"] = json.loads(args.thread_data.read_text(encoding="utf-8"))
            record = store.create(
                WorkflowRun(
                    workflow_name=args.workflow_name,
                    input_data=input_data,
                    slack_channel_id=args.channel,
                    slack_message_id=message_ts,
                    slack_thread_ts=args.thread_ts,
                    template_id=args.template,
                )
            )
            print(record.id)
            return 0

        if args.command == "show":
            found = store.get(args.run_id)
            if found is None:
                print(f"Workflow run {args.run_id} not found", file=sys.stderr)
                return 1
            _print_json(found.model_dump(mode="json"))
            return 0

        if args.command == "run":
            job = build_job(settings, store)
            result = job.perform(args.run_id) if args.once else job.run(args.run_id)
            print(f"Workflow run {result.id}: {result.status.value}")
            return 0 if result.status is RunStatus.COMPLETED else 1

        if args.command == "work":
            job = build_job(settings, store)
            outcomes = drain_pending_runs(store, job, max_workers=args.max_workers)
            failed = 0
            for run_id, outcome in outcomes.items():
                if isinstance(outcome, ThreadAgentError):
                    failed += 1
                    print(f"{run_id}: error ({outcome.code})")
                else:
                    print(f"{run_id}: {outcome.status.value}")
            return 1 if failed else 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    except DuplicateRunError as e:
        logger.warning(e.message, extra={"existing_run_id": e.context.get("existing_run_id")})
        print(e.message, file=sys.stderr)
        return 3

    except ThreadAgentError as e:
        # The job executor has already logged the failure.
        print(f"Workflow failed: {e.message}", file=sys.stderr)
        return 1

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
