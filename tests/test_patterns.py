from __future__ import annotations

import unittest

from assetbundler.patterns import filter_paths, glob_to_regex, is_excluded, is_included, matches


class GlobTranslationTests(unittest.TestCase):
    def test_translates_common_patterns(self) -> None:
        cases = {
            "*.txt": r"^(.*/)?[^/]*\.txt$",
            "backup/*": r"^(.*/)?backup/[^/]*$",
            "**/*.log": r"^(.*/)?[^/]*\.log$",
            "/absolute/*.txt": r"^absolute/[^/]*\.txt$",
            "dir/": r"^(.*/)?dir(/.*)?$",
        }
        for pattern, expected in cases.items():
            with self.subTest(pattern=pattern):
                self.assertEqual(glob_to_regex(pattern), expected)

    def test_single_star_matches_at_any_depth(self) -> None:
        self.assertTrue(matches("image.png", "*.png"))
        self.assertTrue(matches("path/to/image.png", "*.png"))
        self.assertFalse(matches("image.jpg", "*.png"))

    def test_double_star_prefix_matches_root_and_nested(self) -> None:
        self.assertTrue(matches("image.png", "**/*.png"))
        self.assertTrue(matches("deep/nested/image.png", "**/*.png"))

    def test_trailing_star_matches_direct_children_only(self) -> None:
        self.assertTrue(matches("dir/file.txt", "dir/*"))
        self.assertFalse(matches("dir", "dir/*"))
        self.assertFalse(matches("dir/sub/file.txt", "dir/*"))

    def test_trailing_double_star_matches_descendants_only(self) -> None:
        self.assertTrue(matches("Assets/Sounds/file.wav", "Assets/Sounds/**"))
        self.assertTrue(matches("Assets/Sounds/sfx/hit.wav", "Assets/Sounds/**"))
        self.assertFalse(matches("Assets/Sounds", "Assets/Sounds/**"))

    def test_trailing_slash_matches_directory_and_contents(self) -> None:
        self.assertTrue(matches("cache", "cache/"))
        self.assertTrue(matches("cache/a/b.bin", "cache/"))
        self.assertFalse(matches("cachefile", "cache/"))

    def test_literal_path_matches_exactly(self) -> None:
        self.assertTrue(matches("Assets/Sounds", "Assets/Sounds"))
        self.assertFalse(matches("Other/Assets/Sounds", "Assets/Sounds"))
        self.assertFalse(matches("Assets/Sounds/file.wav", "Assets/Sounds"))

    def test_question_mark_matches_one_character_within_a_segment(self) -> None:
        self.assertEqual(glob_to_regex("tex?.png"), r"^(.*/)?tex[^/]\.png$")
        self.assertTrue(matches("tex1.png", "tex?.png"))
        self.assertTrue(matches("ui/texA.png", "tex?.png"))
        self.assertFalse(matches("tex.png", "tex?.png"))
        self.assertFalse(matches("tex12.png", "tex?.png"))
        self.assertFalse(matches("a/b", "a?b"))

    def test_matching_is_case_insensitive(self) -> None:
        self.assertTrue(matches("Textures/Hero.PNG", "*.png"))

    def test_windows_and_posix_separators_match_identically(self) -> None:
        for pattern in ("*.png", "path/*/*.png", "**/to/*", "path/to/file.png"):
            with self.subTest(pattern=pattern):
                self.assertEqual(
                    matches("path\\to\\file.png", pattern),
                    matches("path/to/file.png", pattern),
                )
                self.assertTrue(matches("path\\to\\file.png", pattern))


class IncludeExcludeTests(unittest.TestCase):
    def test_empty_patterns(self) -> None:
        for path in ("a.txt", "deep/dir/b.png", ""):
            self.assertTrue(is_included(path, []))
            self.assertTrue(is_included(path, None))
            self.assertFalse(is_excluded(path, []))
            self.assertFalse(is_excluded(path, None))

    def test_include_requires_a_match(self) -> None:
        patterns = ["*.png", "textures/*"]
        self.assertTrue(is_included("ui/icon.png", patterns))
        self.assertTrue(is_included("textures/sprite.tga", patterns))
        self.assertFalse(is_included("other/sprite.tga", patterns))

    def test_exclude_matches_any_pattern(self) -> None:
        patterns = ["*.tmp", "backup/"]
        self.assertTrue(is_excluded("work/file.tmp", patterns))
        self.assertTrue(is_excluded("backup/old/model.fbx", patterns))
        self.assertFalse(is_excluded("models/model.fbx", patterns))

    def test_filter_paths_applies_both_lists(self) -> None:
        paths = ["a.png", "ui/b.png", "ui/b.psd", "backup/c.png"]

        self.assertEqual(filter_paths(paths, ["*.png"], ["backup/"]), ["a.png", "ui/b.png"])
        self.assertEqual(filter_paths(paths), paths)


if __name__ == "__main__":
    unittest.main()
