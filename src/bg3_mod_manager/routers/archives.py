"""Read-only inspection of LSPK archives."""

from fastapi import APIRouter, HTTPException, Query

from bg3_mod_manager.archive import ArchiveError, ArchiveIOError, LspkReader
from bg3_mod_manager.schemas.load_order import ArchiveEntryOut, ArchiveListing

router = APIRouter(prefix="/archives", tags=["archives"])


@router.get("/entries", response_model=ArchiveListing)
def list_archive_entries(path: str = Query(...)) -> ArchiveListing:
    try:
        with LspkReader(path) as reader:
            entries = reader.list_entries()
            header = reader.header
    except ArchiveIOError as exc:
        raise HTTPException(404, str(exc)) from exc
    except ArchiveError as exc:
        raise HTTPException(400, str(exc)) from exc
    return ArchiveListing(
        path=path,
        version=header.version,
        solid=header.solid,
        entries=[
            ArchiveEntryOut(
                name=e.name,
                offset=e.offset,
                compressed_size=e.compressed_size,
                uncompressed_size=e.uncompressed_size,
                compression=e.compression.name.lower(),
                archive_part=e.archive_part,
            )
            for e in entries
        ],
    )
