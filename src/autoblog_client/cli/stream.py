"""CLI for tailing generation and narration streams."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from autoblog_client.adapters.observability import configure_runtime_logging
from autoblog_client.api.narration import SectionNarrationHandlers
from autoblog_client.api.python_interface import AutoBlogClient
from autoblog_client.api.stream_connector import StreamHandlers
from autoblog_client.core.content_stream import ContentAccumulator
from autoblog_client.core.narration import NarrationController
from autoblog_client.core.stream_events import NarrationSection
from autoblog_client.domain.errors import AutoBlogClientError, FeatureUnavailableError


def build_arg_parser() -> argparse.ArgumentParser:
    """Define CLI flags for stream tailing."""
    parser = argparse.ArgumentParser(description="Tail a generation or narration stream.")
    parser.add_argument("--token", default="", help="Bearer token; anonymous session when empty.")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--connection-id", default="", help="Existing generation stream id.")
    source.add_argument("--endpoint", default="", help="POST endpoint that starts a stream.")
    source.add_argument("--narrative-job", default="", help="Job id for the narrative stream.")
    source.add_argument(
        "--narration-section",
        choices=[section.value for section in NarrationSection],
        default="",
        help="Section narration stream (requires --organization-id).",
    )
    parser.add_argument("--payload", default="{}", help="JSON body for --endpoint.")
    parser.add_argument("--organization-id", default="")
    return parser


def _build_client(token: str) -> AutoBlogClient:
    client = AutoBlogClient()
    if token:
        client.set_token(token)
    return client


def _write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


async def _tail_connection(client: AutoBlogClient, connection_id: str) -> int:
    accumulator = ContentAccumulator()
    errors: list[Exception] = []
    handle = client.connect_to_stream(
        connection_id,
        StreamHandlers(
            on_content_chunk=lambda data: _write(accumulator.append_chunk(data)),
            on_complete=accumulator.complete,
            on_error=errors.append,
        ),
    )
    await handle.wait()
    print()
    if errors:
        print(f"Stream failed: {errors[0]}", file=sys.stderr)
        return 1
    return 0


async def _tail_narrative(client: AutoBlogClient, job_id: str) -> int:
    controller = NarrationController()
    available = await client.narration.follow_narrative(job_id, controller)
    session = controller.session
    if not available:
        print("Narration unavailable; continuing without it.")
        return 0
    print(session.scraping_narrative.strip())
    print(session.analysis_narrative)
    for card in session.insight_cards:
        print(f"- {card.title}: {card.content}")
    return 0


async def run_stream_command(parsed: argparse.Namespace) -> int:
    """Tail the selected stream; return the process exit code."""
    async with _build_client(str(parsed.token)) as client:
        if str(parsed.connection_id):
            return await _tail_connection(client, str(parsed.connection_id))
        if str(parsed.endpoint):
            payload = json.loads(str(parsed.payload) or "{}")
            await client.stream_content(str(parsed.endpoint), payload, on_chunk=_write)
            print()
            return 0
        if str(parsed.narrative_job):
            return await _tail_narrative(client, str(parsed.narrative_job))
        if not str(parsed.organization_id):
            raise SystemExit("--organization-id is required for --narration-section.")
        section = NarrationSection(str(parsed.narration_section))
        try:
            await client.narration.stream_section_narration(
                section,
                organization_id=str(parsed.organization_id),
                handlers=SectionNarrationHandlers(on_chunk=_write),
            )
        except FeatureUnavailableError:
            print("Narration unavailable; continuing without it.")
            return 0
        print()
        return 0


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags and tail one stream."""
    configure_runtime_logging()
    parser = build_arg_parser()
    parsed = parser.parse_args(argv)
    try:
        exit_code = asyncio.run(run_stream_command(parsed))
    except AutoBlogClientError as exc:
        raise SystemExit(f"Stream failed: {exc}") from exc
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
