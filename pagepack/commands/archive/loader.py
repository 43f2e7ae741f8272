"""Load and write WACZ containers (.wacz zip files)."""

from __future__ import annotations

from datetime import datetime, timezone
import hashlib
from io import BytesIO
from pathlib import Path
import zipfile

from pydantic import ValidationError

from pagepack.commands.archive.types import ArchiveContainer
from pagepack.formats.wacz import (
    DATAPACKAGE_DIGEST_PATH,
    DATAPACKAGE_PATH,
    PAGES_FORMAT,
    PAGES_PATH,
    SUPPORTED_WACZ_VERSIONS,
    WARC_PATH,
    DataPackage,
    DataPackageDigest,
    PageLine,
    PagesHeader,
    Resource,
)

REQUIRED_FILES = (DATAPACKAGE_PATH, PAGES_PATH, WARC_PATH)


class DecodeError(Exception):
    """The container is malformed or uses an unsupported format version."""


def _sha256(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def _pages_bytes(pages: list[PageLine]) -> bytes:
    lines = [PagesHeader().model_dump_json()]
    lines.extend(page.model_dump_json() for page in pages)
    return ("\n".join(lines) + "\n").encode("utf-8")


def container_to_bytes(container: ArchiveContainer) -> bytes:
    """Serialize a container to WACZ bytes.

    Entries are stored uncompressed so WARC records stay randomly accessible
    inside the zip.
    """
    files = dict(container.files)
    files[PAGES_PATH] = _pages_bytes(container.pages)

    datapackage = DataPackage(
        title=container.title,
        created=datetime.now(timezone.utc).isoformat(),
        main_page_url=container.main_page_url,
        main_page_date=container.pages[0].ts if container.pages else None,
        resources=[
            Resource(name=Path(path).name, path=path, hash=_sha256(data), bytes=len(data))
            for path, data in files.items()
        ],
        extras=container.extras,
    )
    datapackage_bytes = datapackage.model_dump_json(
        by_alias=True, exclude_none=True, indent=2
    ).encode("utf-8")
    digest = DataPackageDigest(hash=_sha256(datapackage_bytes))

    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_STORED) as zf:
        for path, data in files.items():
            zf.writestr(path, data)
        zf.writestr(DATAPACKAGE_PATH, datapackage_bytes)
        zf.writestr(DATAPACKAGE_DIGEST_PATH, digest.model_dump_json(indent=2))
    return buf.getvalue()


def write_container(container: ArchiveContainer, path: str | Path) -> None:
    """Write a container to a .wacz file."""
    Path(path).write_bytes(container_to_bytes(container))


def _parse_pages(data: bytes) -> list[PageLine]:
    try:
        lines = [line for line in data.decode("utf-8").splitlines() if line.strip()]
    except UnicodeDecodeError as e:
        raise DecodeError(f"{PAGES_PATH} is not valid UTF-8") from e
    if not lines:
        raise DecodeError(f"{PAGES_PATH} is empty")
    try:
        header = PagesHeader.model_validate_json(lines[0])
        pages = [PageLine.model_validate_json(line) for line in lines[1:]]
    except ValidationError as e:
        raise DecodeError(f"Malformed line in {PAGES_PATH}: {e}") from e
    if header.format != PAGES_FORMAT:
        raise DecodeError(f"Unsupported pages format: {header.format!r}")
    return pages


def _verify_datapackage(zf: zipfile.ZipFile, datapackage_bytes: bytes) -> DataPackage:
    try:
        datapackage = DataPackage.model_validate_json(datapackage_bytes)
    except ValidationError as e:
        raise DecodeError(f"Malformed {DATAPACKAGE_PATH}: {e}") from e
    if datapackage.wacz_version not in SUPPORTED_WACZ_VERSIONS:
        raise DecodeError(f"Unsupported WACZ version: {datapackage.wacz_version!r}")

    names = set(zf.namelist())
    if DATAPACKAGE_DIGEST_PATH in names:
        try:
            digest = DataPackageDigest.model_validate_json(zf.read(DATAPACKAGE_DIGEST_PATH))
        except ValidationError as e:
            raise DecodeError(f"Malformed {DATAPACKAGE_DIGEST_PATH}: {e}") from e
        if digest.hash != _sha256(datapackage_bytes):
            raise DecodeError(f"{DATAPACKAGE_PATH} does not match its digest")

    for resource in datapackage.resources:
        if resource.path not in names:
            raise DecodeError(f"Resource listed but missing: {resource.path}")
        data = zf.read(resource.path)
        if len(data) != resource.bytes or _sha256(data) != resource.hash:
            raise DecodeError(f"Resource does not match its digest: {resource.path}")
    return datapackage


def read_container(data: bytes) -> ArchiveContainer:
    """Parse and validate WACZ bytes into a container."""
    try:
        zf = zipfile.ZipFile(BytesIO(data), "r")
    except zipfile.BadZipFile as e:
        raise DecodeError("Not a WACZ file (invalid zip)") from e

    with zf:
        names = set(zf.namelist())
        for required in REQUIRED_FILES:
            if required not in names:
                raise DecodeError(f"Missing required file: {required}")

        datapackage = _verify_datapackage(zf, zf.read(DATAPACKAGE_PATH))
        pages = _parse_pages(zf.read(PAGES_PATH))
        derived = {PAGES_PATH, DATAPACKAGE_PATH, DATAPACKAGE_DIGEST_PATH}
        files = {
            name: zf.read(name)
            for name in zf.namelist()
            if name not in derived and not name.endswith("/")
        }

    return ArchiveContainer(
        files=files,
        pages=pages,
        extras=datapackage.extras,
        title=datapackage.title,
        main_page_url=datapackage.main_page_url,
    )


def load_container(path: str | Path) -> ArchiveContainer:
    """Load a container from a .wacz file on disk."""
    return read_container(Path(path).read_bytes())
