#!/usr/bin/env python3
"""
Rehearse Answer Uploader

Uploads a video file as the answer to one interview question, using the
credentials saved by a previous login (``settings.token_store_path``).

Usage:
    python scripts/upload_response.py 12 34 answer.webm --duration 95
    python scripts/upload_response.py 12 34 answer.mp4 --content-type video/mp4
    python scripts/upload_response.py 12 34 answer.webm --legacy
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

# Ensure project root is on sys.path for ``src`` imports
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.client.api_client import APIClient  # noqa: E402
from src.client.credentials import FileTokenStore  # noqa: E402
from src.core.config import configure_logging  # noqa: E402
from src.core.exceptions import RehearseError  # noqa: E402
from src.core.validators import validate_video_file  # noqa: E402
from src.services.interviews import create_upload_coordinator  # noqa: E402
from src.services.media.base import RecordedArtifact  # noqa: E402
from src.services.media.mime import DEFAULT_VIDEO_TYPE  # noqa: E402


def guess_content_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or DEFAULT_VIDEO_TYPE


def print_progress(percent: int) -> None:
    bar = "#" * (percent // 5)
    print(f"\r  Uploading [{bar:<20}] {percent:3d}%", end="", flush=True)


async def upload(args: argparse.Namespace) -> int:
    """Validate the file and run the upload. Returns the exit code."""
    path: Path = args.file
    if not path.is_file():
        print(f"File not found: {path}")
        return 1

    content_type = args.content_type or guess_content_type(path)
    error = validate_video_file(path.stat().st_size, content_type)
    if error:
        print(error)
        return 1

    store = FileTokenStore()
    if not store.is_authenticated():
        print("Not signed in: no saved token found.")
        return 1

    artifact = RecordedArtifact(
        data=path.read_bytes(), mime_type=content_type, duration=args.duration
    )

    async with APIClient(token_store=store) as api:
        uploader = create_upload_coordinator(api)
        try:
            if args.legacy:
                result = await uploader.submit_legacy(
                    args.interview_id, args.question_id, artifact
                )
            else:
                result = await uploader.submit(
                    args.interview_id, args.question_id, artifact, on_progress=print_progress
                )
                print()
        except RehearseError as exc:
            print(f"\nUpload failed: {exc.detail}")
            return 1
        finally:
            await uploader.aclose()

    print(f"{result.message} (interview={result.interview_id}, question={result.question_id})")
    return 0


def main() -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Upload a recorded answer for a Rehearse interview question",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("interview_id", type=int, help="Interview ID")
    parser.add_argument("question_id", type=int, help="Question ID being answered")
    parser.add_argument("file", type=Path, help="Video file (WebM or MP4)")
    parser.add_argument(
        "--content-type",
        type=str,
        default=None,
        help="MIME type (default: guessed from the file name, else video/webm)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Answer length in whole seconds, forwarded to the backend",
    )
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="Use the deprecated multipart endpoint instead of a presigned URL",
    )
    args = parser.parse_args()

    configure_logging()
    return asyncio.run(upload(args))


if __name__ == "__main__":
    sys.exit(main())
