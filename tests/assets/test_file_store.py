"""文件存储层测试：内容编解码、完整性校验、搜索与文件夹路径维护。"""

from __future__ import annotations

import base64

import pytest
from sqlalchemy.orm import Session

from app.packages.assets.core.enums import EntityRef
from app.packages.assets.core.exceptions import (
    BlobMissing,
    DataCorrupted,
    FileNotFound,
    FolderCycle,
    FolderNotFound,
    InvalidFolder,
    UploadFailed,
)
from app.packages.assets.models.file_asset import FileAsset
from app.packages.assets.services.file_store import FileDraft, FileStore


def _raw_update(db: Session, file_id: str, **values) -> None:
    db.query(FileAsset).filter(FileAsset.id == file_id).update(values, synchronize_session=False)
    db.commit()


def test_blob_round_trip_is_byte_identical(db_session_fixture, store: FileStore, make_file):
    payload = bytes(range(256)) * 4
    file_id = make_file(payload, name="binary.bin")

    blob = store.get_blob(db_session_fixture, file_id)

    assert blob == payload
    stored = db_session_fixture.query(FileAsset.file_data).filter(FileAsset.id == file_id).scalar()
    assert base64.b64encode(blob).decode("ascii") == stored


def test_create_sets_version_and_next_sort_order(db_session_fixture, store: FileStore, make_file):
    first = make_file(b"one", name="1.txt")
    second = make_file(b"two", name="2.txt")

    a = store.get_metadata(db_session_fixture, first)
    b = store.get_metadata(db_session_fixture, second)
    assert (a.version, a.sort_order) == (1, 0)
    assert (b.version, b.sort_order) == (1, 1)
    assert a.file_size == 3
    assert a.filename.endswith("_1.txt")


def test_metadata_read_does_not_load_blob(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"payload")
    db_session_fixture.expire_all()

    asset = store.get_metadata(db_session_fixture, file_id)

    assert "file_data" not in asset.__dict__


def test_missing_file_raises_not_found(db_session_fixture, store: FileStore):
    with pytest.raises(FileNotFound):
        store.get_metadata(db_session_fixture, "does-not-exist")
    with pytest.raises(FileNotFound):
        store.get_blob(db_session_fixture, "does-not-exist")


def test_undecodable_blob_is_data_corrupted(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"hello")
    _raw_update(db_session_fixture, file_id, file_data="***not base64***")

    with pytest.raises(DataCorrupted):
        store.get_blob(db_session_fixture, file_id)


def test_size_mismatch_is_data_corrupted(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"hello")
    _raw_update(db_session_fixture, file_id, file_size=99)

    with pytest.raises(DataCorrupted):
        store.get_blob(db_session_fixture, file_id)


def test_empty_blob_column_is_blob_missing(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"hello")
    _raw_update(db_session_fixture, file_id, file_data=None)

    with pytest.raises(BlobMissing):
        store.get_blob(db_session_fixture, file_id)


def test_create_rejects_empty_and_oversized_uploads(db_session_fixture, entity: EntityRef):
    small_store = FileStore(upload_max_bytes=4)
    with pytest.raises(UploadFailed):
        small_store.create(db_session_fixture, FileDraft(entity=entity, original_name="e.txt"), b"")
    with pytest.raises(UploadFailed):
        small_store.create(db_session_fixture, FileDraft(entity=entity, original_name="big.txt"), b"12345")


def test_create_rejects_folder_of_another_entity(db_session_fixture, store: FileStore, entity: EntityRef):
    other = EntityRef.of("episodes", "ep-1")
    folder = store.create_folder(db_session_fixture, other, "Elsewhere")

    with pytest.raises(UploadFailed):
        store.create(
            db_session_fixture,
            FileDraft(entity=entity, original_name="x.txt", folder_id=folder.id),
            b"x",
        )


def test_list_by_entity_is_scoped_and_ordered(db_session_fixture, store: FileStore, entity: EntityRef, make_file):
    folder = store.create_folder(db_session_fixture, entity, "Scripts")
    root_a = make_file(b"a", name="a.txt")
    root_b = make_file(b"b", name="b.txt")
    nested = make_file(b"c", name="c.txt", folder_id=folder.id)

    root = store.list_by_entity(db_session_fixture, entity)
    inside = store.list_by_entity(db_session_fixture, entity, folder.id)
    everything = store.list_by_entity(db_session_fixture, entity, all_folders=True)

    assert [f.id for f in root] == [root_a, root_b]
    assert [f.id for f in inside] == [nested]
    assert {f.id for f in everything} == {root_a, root_b, nested}


def test_search_matches_names_and_tags_case_insensitive(db_session_fixture, store: FileStore, entity: EntityRef, make_file):
    by_name = make_file(b"1", name="Morning_Show_Intro.mp3")
    by_tag = make_file(b"2", name="track02.wav", tags=["Jingle", "morning"])
    make_file(b"3", name="unrelated.txt")

    found = store.search_by_name_or_tag(db_session_fixture, "  MORNING ", entity)

    assert {f.id for f in found} == {by_name, by_tag}


def test_search_below_minimum_length_returns_empty(db_session_fixture, store: FileStore, make_file):
    make_file(b"1", name="a.txt")
    assert store.search_by_name_or_tag(db_session_fixture, "a") == []
    assert store.search_by_name_or_tag(db_session_fixture, "   ") == []
    assert store.search_by_name_or_tag(db_session_fixture, None) == []


def test_search_treats_wildcards_literally(db_session_fixture, store: FileStore, entity: EntityRef, make_file):
    literal = make_file(b"1", name="100%_final.txt")
    make_file(b"2", name="100 final.txt")

    found = store.search_by_name_or_tag(db_session_fixture, "0%_", entity)

    assert [f.id for f in found] == [literal]


def test_replace_content_bumps_version(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"v1")

    asset = store.replace_content(db_session_fixture, file_id, b"version two")

    assert asset.version == 2
    assert asset.file_size == len(b"version two")
    assert store.get_blob(db_session_fixture, file_id) == b"version two"


def test_update_metadata_replaces_tags_as_set(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"x", tags=["a", "b"])

    asset = store.update_metadata(
        db_session_fixture,
        file_id,
        {"tags": ["b", " c ", "c", ""], "original_name": "renamed.txt", "is_archived": True},
    )

    assert asset.tag_names == ["b", "c"]
    assert asset.original_name == "renamed.txt"
    assert asset.is_archived is True


def test_delete_removes_file(db_session_fixture, store: FileStore, entity: EntityRef, make_file):
    file_id = make_file(b"x", tags=["t"])

    scope = store.delete(db_session_fixture, file_id)

    assert scope.entity == entity
    assert scope.folder_id is None
    with pytest.raises(FileNotFound):
        store.get_metadata(db_session_fixture, file_id)


def test_record_access_increments_counter(db_session_fixture, store: FileStore, make_file):
    file_id = make_file(b"x")

    store.record_access(db_session_fixture, file_id, 1)
    store.record_access(db_session_fixture, file_id, 1)

    db_session_fixture.expire_all()
    asset = store.get_metadata(db_session_fixture, file_id)
    assert asset.download_count == 2
    assert asset.last_accessed_at is not None


def test_record_access_on_missing_file_raises(db_session_fixture, store: FileStore):
    with pytest.raises(FileNotFound):
        store.record_access(db_session_fixture, "missing", 10)


# ----------------------------
# 文件夹
# ----------------------------
def test_folder_paths_follow_parent_chain(db_session_fixture, store: FileStore, entity: EntityRef):
    season = store.create_folder(db_session_fixture, entity, "Season 1")
    episode = store.create_folder(db_session_fixture, entity, "Episode 3", parent_folder_id=season.id)

    assert season.folder_path == "/Season 1"
    assert episode.folder_path == "/Season 1/Episode 3"


def test_rename_folder_rewrites_descendant_paths(db_session_fixture, store: FileStore, entity: EntityRef):
    top = store.create_folder(db_session_fixture, entity, "Drafts")
    child = store.create_folder(db_session_fixture, entity, "Act 1", parent_folder_id=top.id)
    grandchild = store.create_folder(db_session_fixture, entity, "Scene 2", parent_folder_id=child.id)

    store.rename_folder(db_session_fixture, top.id, "Final")

    db_session_fixture.expire_all()
    assert store.get_folder(db_session_fixture, child.id).folder_path == "/Final/Act 1"
    assert store.get_folder(db_session_fixture, grandchild.id).folder_path == "/Final/Act 1/Scene 2"


def test_rename_does_not_touch_sibling_with_common_prefix(db_session_fixture, store: FileStore, entity: EntityRef):
    a = store.create_folder(db_session_fixture, entity, "Audio")
    ab = store.create_folder(db_session_fixture, entity, "Audio Raw")
    child = store.create_folder(db_session_fixture, entity, "Takes", parent_folder_id=ab.id)

    store.rename_folder(db_session_fixture, a.id, "Sound")

    db_session_fixture.expire_all()
    assert store.get_folder(db_session_fixture, ab.id).folder_path == "/Audio Raw"
    assert store.get_folder(db_session_fixture, child.id).folder_path == "/Audio Raw/Takes"


def test_move_folder_updates_paths_and_rejects_cycles(db_session_fixture, store: FileStore, entity: EntityRef):
    a = store.create_folder(db_session_fixture, entity, "A")
    b = store.create_folder(db_session_fixture, entity, "B", parent_folder_id=a.id)
    c = store.create_folder(db_session_fixture, entity, "C")

    with pytest.raises(FolderCycle):
        store.move_folder(db_session_fixture, a.id, b.id)
    with pytest.raises(FolderCycle):
        store.move_folder(db_session_fixture, a.id, a.id)

    store.move_folder(db_session_fixture, a.id, c.id)

    db_session_fixture.expire_all()
    assert store.get_folder(db_session_fixture, a.id).folder_path == "/C/A"
    assert store.get_folder(db_session_fixture, b.id).folder_path == "/C/A/B"


def test_folder_names_must_be_unique_among_siblings(db_session_fixture, store: FileStore, entity: EntityRef):
    store.create_folder(db_session_fixture, entity, "Promo")
    with pytest.raises(InvalidFolder):
        store.create_folder(db_session_fixture, entity, "Promo")
    with pytest.raises(InvalidFolder):
        store.create_folder(db_session_fixture, entity, "bad/name")


def test_delete_folder_moves_files_to_root_in_order(db_session_fixture, store: FileStore, entity: EntityRef, make_file):
    existing_root = make_file(b"r", name="root.txt")
    parent = store.create_folder(db_session_fixture, entity, "Parent")
    child = store.create_folder(db_session_fixture, entity, "Child", parent_folder_id=parent.id)
    p1 = make_file(b"1", name="p1.txt", folder_id=parent.id)
    p2 = make_file(b"2", name="p2.txt", folder_id=parent.id)
    c1 = make_file(b"3", name="c1.txt", folder_id=child.id)

    removal = store.delete_folder(db_session_fixture, parent.id)

    assert set(removal.folder_ids) == {parent.id, child.id}
    db_session_fixture.expire_all()
    root = store.list_by_entity(db_session_fixture, entity)
    assert [f.id for f in root] == [existing_root, p1, p2, c1]
    assert [f.sort_order for f in root] == [0, 1, 2, 3]
    with pytest.raises(FolderNotFound):
        store.get_folder(db_session_fixture, child.id)
