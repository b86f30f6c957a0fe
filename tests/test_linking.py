from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock
import os
import shutil
import tempfile
import unittest

from assetbundler.console import Console
from assetbundler.errors import ConfigurationError
from assetbundler.linking import (
    AssetLinker,
    LinkMethod,
    LinkStatus,
    SystemFileOperations,
)


class AssetLinkerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.source = self.root / "source"
        (self.source / "textures" / "ui").mkdir(parents=True)
        (self.source / "model.fbx").write_bytes(b"\x00\x01model")
        (self.source / "textures" / "hero.png").write_bytes(b"png-data")
        (self.source / "textures" / "ui" / "icon.png").write_bytes(b"icon-data")
        self.target = self.root / "workspace" / "Assets" / "Data" / "bundle"
        self.ops = SystemFileOperations()
        self.linker = AssetLinker(file_operations=self.ops, console=Console("silent"), platform_name="linux")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _relative_files(self, root: Path) -> dict[str, bytes]:
        return {
            path.relative_to(root).as_posix(): path.read_bytes()
            for path in root.rglob("*")
            if path.is_file()
        }

    def test_copy_creates_independent_tree(self) -> None:
        result = self.linker.link(self.source, self.target, LinkMethod.COPY)

        self.assertTrue(result.ok)
        self.assertEqual(result.path, self.target)
        expected = self._relative_files(self.source)
        self.assertEqual(self._relative_files(self.target), expected)

        shutil.rmtree(self.source)
        self.assertEqual(self._relative_files(self.target), expected)

    def test_existing_target_is_replaced(self) -> None:
        self.target.mkdir(parents=True)
        (self.target / "stale.txt").write_text("old")

        result = self.linker.link(self.source, self.target, "copy")

        self.assertTrue(result.ok)
        self.assertFalse((self.target / "stale.txt").exists())
        self.assertTrue((self.target / "model.fbx").exists())

    def test_missing_source_is_reported(self) -> None:
        result = self.linker.link(self.root / "missing", self.target, LinkMethod.COPY)

        self.assertEqual(result.status, LinkStatus.NOT_FOUND)
        self.assertIn("missing", result.message)

    @unittest.skipIf(os.name == "nt", "symlinks need privileges on Windows")
    def test_symlink_points_at_source(self) -> None:
        result = self.linker.link(self.source, self.target, LinkMethod.SYMLINK)

        self.assertTrue(result.ok)
        self.assertTrue(self.target.is_symlink())
        self.assertEqual((self.target / "model.fbx").read_bytes(), b"\x00\x01model")

    def test_hardlink_shares_file_contents(self) -> None:
        result = self.linker.link(self.source, self.target, LinkMethod.HARDLINK)

        self.assertTrue(result.ok)
        linked = self.target / "textures" / "ui" / "icon.png"
        self.assertTrue(linked.exists())
        self.assertTrue(os.path.samefile(linked, self.source / "textures" / "ui" / "icon.png"))

    def test_junction_is_unsupported_outside_windows(self) -> None:
        result = self.linker.link(self.source, self.target, LinkMethod.JUNCTION)

        self.assertEqual(result.status, LinkStatus.UNSUPPORTED_ON_PLATFORM)
        self.assertFalse(result.ok)
        self.assertFalse(self.target.exists())

    def test_permission_errors_become_tagged_results(self) -> None:
        ops = MagicMock(wraps=self.ops)
        ops.copy_tree.side_effect = PermissionError("denied")
        linker = AssetLinker(file_operations=ops, console=Console("silent"), platform_name="linux")

        result = linker.link(self.source, self.target, LinkMethod.COPY)

        self.assertEqual(result.status, LinkStatus.PERMISSION_DENIED)

    def test_unknown_method_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            self.linker.link(self.source, self.target, "teleport")

    def test_link_once_skips_duplicate_sources(self) -> None:
        ops = MagicMock(wraps=self.ops)
        linker = AssetLinker(file_operations=ops, console=Console("silent"), platform_name="linux")
        second_target = self.target.parent / "other"

        first = linker.link_once(self.source, self.target, LinkMethod.COPY)
        second = linker.link_once(self.source / "textures" / "..", second_target, LinkMethod.COPY)

        self.assertTrue(first.ok)
        self.assertTrue(second.ok)
        self.assertTrue(second.reused)
        self.assertEqual(second.path, self.target)
        self.assertEqual(ops.copy_tree.call_count, 1)
        self.assertFalse(second_target.exists())


class LinkMethodTests(unittest.TestCase):
    def test_parse_is_case_insensitive(self) -> None:
        self.assertIs(LinkMethod.parse("HardLink"), LinkMethod.HARDLINK)
        self.assertIs(LinkMethod.parse(LinkMethod.JUNCTION), LinkMethod.JUNCTION)


if __name__ == "__main__":
    unittest.main()
