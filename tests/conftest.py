import os
import struct
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

os.environ.setdefault("BG3MM_DATA_DIR", tempfile.mkdtemp(prefix="bg3mm-test-"))

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

import bg3_mod_manager.models  # noqa: F401 (registers all tables)
from bg3_mod_manager.archive.codecs import CompressionMethod, compress
from bg3_mod_manager.database import get_session
from bg3_mod_manager.main import app
from bg3_mod_manager.routers.deps import get_mod_set
from bg3_mod_manager.schemas.mod import DependencyRef, MetadataSource, ModRecord
from bg3_mod_manager.services.category_inference import CategoryInferenceService
from bg3_mod_manager.services.mod_set import ModSet

PakFiles = list[tuple[str, bytes]] | dict[str, bytes]


def _memory_engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(eng)
    return eng


@pytest.fixture
def engine():
    return _memory_engine()


@pytest.fixture
def app_engine(session, monkeypatch):
    """Engine the app lifespan creates tables on and disposes at shutdown.

    Kept apart from the shared test engine so shutdown cannot close the
    connection that the session and mod_set fixtures still hold. Depends on
    session so this patch of ``database.engine`` is applied last.
    """
    eng = _memory_engine()
    monkeypatch.setattr("bg3_mod_manager.database.engine", eng)
    return eng


@pytest.fixture
def session(engine, monkeypatch):
    monkeypatch.setattr("bg3_mod_manager.database.engine", engine)
    monkeypatch.setattr("bg3_mod_manager.routers.deps.engine", engine)
    with Session(engine) as sess:
        yield sess


@pytest.fixture
def mod_set(session):
    return ModSet(categories=CategoryInferenceService(session))


@pytest.fixture
def game_dirs(tmp_path, monkeypatch):
    """Point the settings at an empty fake Larian folder under tmp_path."""
    from bg3_mod_manager.config import settings

    larian = tmp_path / "Larian"
    mods = larian / "Mods"
    mods.mkdir(parents=True)
    modsettings = larian / "PlayerProfiles" / "Public" / "modsettings.lsx"
    monkeypatch.setattr(settings, "larian_dir", larian)
    monkeypatch.setattr(settings, "mods_dir", mods)
    monkeypatch.setattr(settings, "modsettings_path", modsettings)
    monkeypatch.setattr(settings, "hazard_dir", larian / "ModCrashSanityCheck")
    monkeypatch.setattr(settings, "game_binary_dir", tmp_path / "game" / "bin")
    monkeypatch.setattr(settings, "extension_data_dir", tmp_path / "BG3SE")
    return settings


@pytest.fixture
def client(engine, app_engine, mod_set, game_dirs):
    def _override_session() -> Generator[Session, None, None]:
        with Session(engine) as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_mod_set] = lambda: mod_set
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _header(version: int, list_offset: int, list_size: int, flags: int, num_parts: int) -> bytes:
    if version == 15:
        body = struct.pack("<IQIBB16s", version, list_offset, list_size, flags, 0, b"\x00" * 16)
    else:
        body = struct.pack(
            "<IQIBB16sH", version, list_offset, list_size, flags, 0, b"\x00" * 16, num_parts
        )
    return b"LSPK" + body


def _entry(version: int, name: str, offset: int, on_disk: int, size: int, part: int, method: int) -> bytes:
    raw_name = name.encode("utf-8").ljust(256, b"\x00")
    if version >= 18:
        return struct.pack(
            "<256sIHBBII", raw_name, offset & 0xFFFFFFFF, offset >> 32, part, method, on_disk, size
        )
    return struct.pack("<256sQQQIIII", raw_name, offset, on_disk, size, part, method, 0, 0)


def build_pak(
    path: Path,
    files: PakFiles,
    *,
    version: int = 18,
    method: CompressionMethod = CompressionMethod.ZLIB,
    solid: bool = False,
    compress_table: bool = False,
    parts: dict[str, int] | None = None,
    raw: set[str] = frozenset(),
) -> Path:
    """Write an LSPK archive holding *files* to *path*.

    *parts* maps entry names to a data part; part N > 0 lands in
    ``<stem>_N<suffix>`` next to *path*. Entries named in *raw* are stored
    uncompressed but still carry *method* in their flags.
    """
    items = list(files.items()) if isinstance(files, dict) else list(files)
    parts = parts or {}
    header_len = len(_header(version, 0, 0, 0, 1))
    data = {0: bytearray()}
    table = bytearray()

    if solid:
        stream = compress(b"".join(content for _, content in items), method, solid=True)
        start = header_len
        data[0] += stream
        for name, content in items:
            table += _entry(version, name, start, len(stream), len(content), 0, method)
    else:
        for name, content in items:
            part = parts.get(name, 0)
            buf = data.setdefault(part, bytearray())
            stored = content if name in raw else compress(content, method)
            offset = (header_len if part == 0 else 0) + len(buf)
            buf += stored
            table += _entry(version, name, offset, len(stored), len(content), part, method)

    stored_table = compress(bytes(table), CompressionMethod.LZ4, solid=solid) if compress_table else bytes(table)
    file_list = struct.pack("<II", len(items), len(stored_table)) + stored_table
    list_offset = header_len + len(data[0])
    flags = 0x04 if solid else 0
    num_parts = max(data) + 1
    path.write_bytes(
        _header(version, list_offset, len(file_list), flags, num_parts) + bytes(data[0]) + file_list
    )
    for part, buf in data.items():
        if part:
            path.with_name(f"{path.stem}_{part}{path.suffix}").write_bytes(bytes(buf))
    return path


def meta_lsx(
    uuid: str,
    name: str,
    *,
    folder: str = "",
    author: str = "Tester",
    version64: int | None = 36028797018963968,
    dependencies: list[tuple[str, str]] = (),
    conflicts: list[tuple[str, str]] = (),
    tags: str = "",
) -> bytes:
    """A minimal ``meta.lsx`` document. Dependencies are ``(uuid, name)`` pairs."""

    def short_descs(node_id: str, refs) -> str:
        if not refs:
            return ""
        inner = "".join(
            f'<node id="ModuleShortDesc">'
            f'<attribute id="UUID" type="FixedString" value="{ref_id}"/>'
            f'<attribute id="Name" type="LSString" value="{ref_name}"/>'
            f'<attribute id="Folder" type="LSString" value="{ref_name}"/>'
            f"</node>"
            for ref_id, ref_name in refs
        )
        return f'<node id="{node_id}"><children>{inner}</children></node>'

    version_attr = (
        f'<attribute id="Version64" type="int64" value="{version64}"/>' if version64 is not None else ""
    )
    tags_attr = f'<attribute id="Tags" type="LSString" value="{tags}"/>' if tags else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<save><version major="4" minor="0" revision="9" build="331"/>'
        '<region id="Config"><node id="root"><children>'
        + short_descs("Dependencies", dependencies)
        + short_descs("Conflicts", conflicts)
        + '<node id="ModuleInfo">'
        f'<attribute id="UUID" type="FixedString" value="{uuid}"/>'
        f'<attribute id="Name" type="LSString" value="{name}"/>'
        f'<attribute id="Folder" type="LSString" value="{folder or name}"/>'
        f'<attribute id="Author" type="LSString" value="{author}"/>'
        f'<attribute id="Description" type="LSString" value="{name} description"/>'
        + version_attr
        + tags_attr
        + "</node></children></node></region></save>"
    ).encode("utf-8")


def modsettings_lsx(entries: list[tuple[str, str]], *, with_mod_order: bool = True) -> bytes:
    """A ``modsettings.lsx`` listing ``(uuid, name)`` pairs, GustavDev first."""
    from bg3_mod_manager.constants import GUSTAV_DEV_UUID

    all_entries = [(GUSTAV_DEV_UUID, "GustavDev"), *entries]
    order = "".join(
        f'<node id="Module"><attribute id="UUID" type="FixedString" value="{uid}"/></node>'
        for uid, _ in all_entries
    )
    mods = "".join(
        f'<node id="ModuleShortDesc">'
        f'<attribute id="Folder" type="LSString" value="{name}"/>'
        f'<attribute id="Name" type="LSString" value="{name}"/>'
        f'<attribute id="UUID" type="FixedString" value="{uid}"/>'
        f'<attribute id="Version64" type="int64" value="36028797018963968"/>'
        f"</node>"
        for uid, name in all_entries
    )
    mod_order = f'<node id="ModOrder"><children>{order}</children></node>' if with_mod_order else ""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<save><version major="4" minor="7" revision="1" build="3"/>'
        '<region id="ModuleSettings"><node id="root"><children>'
        + mod_order
        + f'<node id="Mods"><children>{mods}</children></node>'
        + "</children></node></region></save>"
    ).encode("utf-8")


def make_mod(
    mod_id: str,
    name: str | None = None,
    *,
    deps: list[str] = (),
    conflicts: list[str] = (),
    source: MetadataSource = MetadataSource.embedded,
    **kwargs,
) -> ModRecord:
    return ModRecord(
        id=mod_id,
        display_name=name or mod_id,
        folder_name=name or mod_id,
        dependencies=[DependencyRef(id=d) for d in deps],
        conflicts=[DependencyRef(id=c) for c in conflicts],
        metadata_source=source,
        **kwargs,
    )


@pytest.fixture
def make_pak(tmp_path) -> Callable[..., Path]:
    def _make(files: PakFiles, name: str = "Mod.pak", **kwargs) -> Path:
        return build_pak(tmp_path / name, files, **kwargs)

    return _make


@pytest.fixture
def builders():
    """Document builders shared across test packages."""

    class _Builders:
        build_pak = staticmethod(build_pak)
        meta_lsx = staticmethod(meta_lsx)
        modsettings_lsx = staticmethod(modsettings_lsx)
        make_mod = staticmethod(make_mod)

    return _Builders
