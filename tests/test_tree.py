import pytest

from app.core.exceptions import PayloadTooLargeError
from app.services.tree import safe_segment, walk_folder
from fakes import make_file, make_folder


def test_nested_tree_paths_are_relative_to_exported_folder(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Root")
        a = await make_folder(store, "A", root)
        b = await make_folder(store, "B", root)
        c = await make_folder(store, "C", b)
        await make_file(store, "file1.txt", a)
        await make_file(store, "file2.txt", c)
        return await walk_folder(store, root)

    entries = run_with_store(scenario)
    assert sorted(e.archive_path for e in entries) == ["A/file1.txt", "B/C/file2.txt"]


def test_file_count_and_depth_match_tree(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Root")
        await make_file(store, "top.txt", root)
        level1 = await make_folder(store, "l1", root)
        await make_file(store, "one.txt", level1)
        await make_file(store, "two.txt", level1)
        level2 = await make_folder(store, "l2", level1)
        await make_file(store, "deep.txt", level2)
        await make_folder(store, "empty", level2)
        entries = await walk_folder(store, root)
        return entries

    entries = run_with_store(scenario)
    paths = {e.archive_path: e for e in entries}
    assert len(entries) == 4
    assert len(paths) == 4
    assert paths["top.txt"]
    assert "l1/one.txt" in paths and "l1/two.txt" in paths
    assert "l1/l2/deep.txt" in paths
    assert all(e.storage_key.startswith("uploads/") for e in entries)


def test_sub_folders_are_walked_before_sibling_files(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Root")
        await make_file(store, "later.txt", root)
        sub = await make_folder(store, "sub", root)
        await make_file(store, "inner.txt", sub)
        return await walk_folder(store, root)

    entries = run_with_store(scenario)
    assert [e.archive_path for e in entries] == ["sub/inner.txt", "later.txt"]


def test_empty_folder_yields_nothing(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Empty")
        return await walk_folder(store, root)

    assert run_with_store(scenario) == []


def test_folder_with_only_empty_subfolders_yields_nothing(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Root")
        sub = await make_folder(store, "sub", root)
        await make_folder(store, "subsub", sub)
        await make_folder(store, "other", root)
        return await walk_folder(store, root)

    assert run_with_store(scenario) == []


def test_deep_tree_does_not_hit_recursion_limit(run_with_store):
    depth = 1100

    async def scenario(store):
        root = await make_folder(store, "Root")
        parent = root
        for i in range(depth):
            parent = await make_folder(store, f"d{i}", parent)
        await make_file(store, "bottom.txt", parent)
        return await walk_folder(store, root)

    entries = run_with_store(scenario)
    assert len(entries) == 1
    assert entries[0].archive_path.count("/") == depth
    assert entries[0].archive_path.endswith("d1099/bottom.txt")


def test_unauthorized_sub_folders_are_skipped(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Root")
        await make_file(store, "open.txt", root)
        locked = await make_folder(store, "locked", root)
        await make_file(store, "secret.txt", locked)

        async def can_enter(folder):
            return folder.id != locked.id

        return await walk_folder(store, root, can_enter=can_enter)

    entries = run_with_store(scenario)
    assert [e.archive_path for e in entries] == ["open.txt"]


def test_entry_ceiling_refuses_oversized_exports(run_with_store):
    async def scenario(store):
        root = await make_folder(store, "Root")
        for i in range(4):
            await make_file(store, f"f{i}.txt", root)
        await walk_folder(store, root, max_entries=3)

    with pytest.raises(PayloadTooLargeError):
        run_with_store(scenario)


def test_names_cannot_escape_archive_root():
    assert safe_segment("../etc/passwd") == ".._etc_passwd"
    assert safe_segment("..") == "_"
    assert safe_segment("a\\b") == "a_b"
    assert safe_segment("") == "_"
