"""CLI for creating, watching, and controlling backend jobs."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from autoblog_client.adapters.observability import configure_runtime_logging
from autoblog_client.api.jobs import JobStreamHandlers
from autoblog_client.api.operations import select_job_operation
from autoblog_client.api.python_interface import AutoBlogClient
from autoblog_client.domain.errors import AutoBlogClientError
from autoblog_client.domain.models import JobKind, JobRecord, OperationUpdate, UpdateKind


def build_arg_parser() -> argparse.ArgumentParser:
    """Define subcommands for the job lifecycle."""
    parser = argparse.ArgumentParser(description="Create and follow generation jobs.")
    parser.add_argument("--token", default="", help="Bearer token; anonymous session when empty.")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create a job.")
    create.add_argument("--kind", choices=[kind.value for kind in JobKind], required=True)
    create.add_argument("--url", default="", help="Website URL for website-analysis jobs.")
    create.add_argument("--payload", default="", help="JSON payload for content-generation jobs.")
    create.add_argument("--watch", action="store_true", help="Follow the job until it finishes.")

    for name, help_text in (
        ("status", "Print the current job status."),
        ("watch", "Follow a job by stream, or by polling when streaming is unavailable."),
        ("poll", "Follow a job by polling only."),
        ("cancel", "Request cancellation."),
        ("retry", "Retry a failed job."),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("job_id")
    return parser


def _build_client(token: str) -> AutoBlogClient:
    client = AutoBlogClient()
    if token:
        client.set_token(token)
    return client


def _print_record(record: JobRecord) -> None:
    step = f" step={record.current_step}" if record.current_step else ""
    print(f"{record.job_id} status={record.status} progress={record.progress}{step}")


def _print_update(update: OperationUpdate) -> None:
    data = update.data
    if isinstance(data, JobRecord):
        _print_record(data)
    elif update.kind == UpdateKind.PROGRESS and isinstance(data, dict):
        print(f"progress={data.get('progress', '?')} step={data.get('currentStep', '')}")


def _create_payload(parsed: argparse.Namespace) -> dict[str, Any]:
    if not str(parsed.payload).strip():
        return {}
    payload = json.loads(str(parsed.payload))
    if not isinstance(payload, dict):
        raise SystemExit("--payload must be a JSON object.")
    return payload


async def _watch(client: AutoBlogClient, job_id: str, *, poll_only: bool) -> int:
    if poll_only:
        record = await client.jobs.poll_job_status(job_id, on_progress=_print_record)
        return 0 if record.status == "succeeded" else 1
    final = await select_job_operation(client.jobs, job_id).subscribe(_print_update)
    if final.kind == UpdateKind.COMPLETE:
        print(f"{job_id} finished")
        return 0
    error = getattr(final.data, "error", None)
    print(f"{job_id} failed: {error or 'unknown error'}")
    return 1


async def run_jobs_command(parsed: argparse.Namespace) -> int:
    """Execute one parsed subcommand; return the process exit code."""
    async with _build_client(str(parsed.token)) as client:
        command = str(parsed.command)
        if command == "create":
            kind = JobKind(str(parsed.kind))
            if kind == JobKind.WEBSITE_ANALYSIS:
                if not str(parsed.url).strip():
                    raise SystemExit("--url is required for website-analysis jobs.")
                created = await client.jobs.create_website_analysis_job(
                    str(parsed.url), client.identity.session_id
                )
            else:
                created = await client.jobs.create_content_generation_job(_create_payload(parsed))
            print(f"Job id: {created.job_id}")
            if parsed.watch:
                return await _watch(client, created.job_id, poll_only=False)
            return 0
        job_id = str(parsed.job_id)
        if command == "status":
            _print_record(await client.jobs.get_status(job_id))
            return 0
        if command in {"watch", "poll"}:
            return await _watch(client, job_id, poll_only=command == "poll")
        if command == "cancel":
            response = await client.jobs.cancel_job(job_id)
            print(f"Cancel requested: {response.cancelled}")
            return 0
        retried = await client.jobs.retry_job(job_id)
        print(f"Retry job id: {retried.job_id}")
        return 0


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags and run one job command."""
    configure_runtime_logging()
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    try:
        exit_code = asyncio.run(run_jobs_command(parsed))
    except AutoBlogClientError as exc:
        raise SystemExit(f"Job command failed: {exc}") from exc
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
