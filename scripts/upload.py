#!/usr/bin/env python
"""
Ingest one image (and optionally its RAW file) into the photo library.

Usage:
  python scripts/upload.py photo.jpg --title "A320 on final" --tags "airbus,a320"
  STORAGE_PATH=/srv/uploads python scripts/upload.py IMG_0001.jpg --title Test --raw IMG_0001.CR2
"""
from __future__ import annotations

import argparse
from contextlib import ExitStack
from pathlib import Path

from quanphotos.core.config import IngestConfig, database_url_from_env
from quanphotos.core.env import configure_logging, load_dotenv_if_present
from quanphotos.core.models import UploadedFile, UploadRequest
from quanphotos.index import PhotoStore, init_db, session_factory
from quanphotos.ingest import Uploader, sanitize_filename
from quanphotos.storage import LocalBlobStore


def _open_upload(stack: ExitStack, path: Path) -> UploadedFile:
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    stream = stack.enter_context(path.open("rb"))
    return UploadedFile(filename=sanitize_filename(path.name), size=path.stat().st_size, stream=stream)


def main() -> None:
    parser = argparse.ArgumentParser(description="Upload a photo into the library.")
    parser.add_argument("image", type=Path, help="Image file (jpg, png, webp, ...)")
    parser.add_argument("--title", required=True)
    parser.add_argument("--description", default="")
    parser.add_argument("--raw", type=Path, default=None, help="Optional camera RAW file")
    parser.add_argument("--tags", default="", help="Comma-separated tag names")
    parser.add_argument("--user-id", type=int, default=1)
    parser.add_argument("--category-id", type=int, default=None)
    parser.add_argument("--aircraft-type", default="")
    parser.add_argument("--airline", default="")
    parser.add_argument("--registration", default="")
    parser.add_argument("--airport", default="")
    args = parser.parse_args()

    load_dotenv_if_present()
    configure_logging()
    config = IngestConfig.from_env()
    engine = init_db(database_url_from_env())
    store = PhotoStore(session_factory(engine))
    blobs = LocalBlobStore(config.storage_path, base_url=config.base_url)
    uploader = Uploader(store, blobs, config)

    with ExitStack() as stack:
        request = UploadRequest(
            user_id=args.user_id,
            file=_open_upload(stack, args.image),
            raw_file=_open_upload(stack, args.raw) if args.raw else None,
            title=args.title,
            description=args.description,
            aircraft_type=args.aircraft_type,
            airline=args.airline,
            registration=args.registration,
            airport=args.airport,
            category_id=args.category_id,
            tags=args.tags,
        )
        result = uploader.upload(request)

    photo = store.load_photo(result.id)
    print(f"Upload complete: photo {result.id} ({result.status}) stored as {blobs.url(photo.file_path)}")


if __name__ == "__main__":
    main()
