"""
Resource Entry Points.

This module serves as the entry point of the ``check`` and ``in`` resource
scripts. Each invocation:
- reads one JSON request from stdin
- resolves the merge request service client from the source configuration
- runs the version resolver (``check``) or the worktree materializer (``in``)
- writes one JSON response to stdout

Fatal errors are logged to stderr as ``<step>: <error>`` and end the process
with exit status 1 without writing anything to stdout.
"""

import asyncio
import sys
from typing import List, NoReturn, Optional, TextIO, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from clients.base import MergeRequestClient
from clients.gitlab_client import GitLabClient
from config import logger, settings
from errors import ResourceError
from materializers.worktree import WorktreeMaterializer
from protocol.models import CheckRequest, InRequest, InResponse, Source, Version
from resolvers.version_resolver import VersionResolver

RequestT = TypeVar("RequestT", bound=BaseModel)

VERSIONS = TypeAdapter(List[Version])


def fatal(message: str) -> NoReturn:
    logger.error({"message": message})
    sys.exit(1)


def read_request(model: Type[RequestT], stream: Optional[TextIO] = None) -> RequestT:
    """Parse the request envelope, aborting on malformed input."""
    stream = stream or sys.stdin
    try:
        return model.model_validate_json(stream.read())
    except ValidationError as e:
        fatal(f"reading request from stdin: {e}")


def create_client(source: Source) -> MergeRequestClient:
    return GitLabClient(
        source.base_url,
        source.private_token.get_secret_value(),
        insecure=source.insecure,
    )


async def check(
    request: CheckRequest, client: Optional[MergeRequestClient] = None
) -> List[Version]:
    resolver = VersionResolver(client or create_client(request.source), settings)
    return await resolver.resolve(request.source, request.version)


async def fetch(
    request: InRequest,
    destination: str,
    client: Optional[MergeRequestClient] = None,
) -> InResponse:
    materializer = WorktreeMaterializer(client or create_client(request.source))
    return await materializer.materialize(request.source, request.version, destination)


def check_main() -> None:
    """Run ``check``: print the new versions as a JSON array."""
    request = read_request(CheckRequest)
    try:
        versions = asyncio.run(check(request))
    except ResourceError as e:
        fatal(str(e))

    sys.stdout.write(VERSIONS.dump_json(versions).decode() + "\n")


def in_main(argv: Optional[List[str]] = None) -> None:
    """Run ``in <destination>``: print the version and its metadata."""
    argv = sys.argv if argv is None else argv
    if len(argv) < 2:
        sys.stderr.write(f"usage: {argv[0] if argv else 'in'} <destination>\n")
        sys.exit(1)

    request = read_request(InRequest)
    try:
        response = asyncio.run(fetch(request, argv[1]))
    except ResourceError as e:
        fatal(str(e))

    sys.stdout.write(response.model_dump_json() + "\n")
