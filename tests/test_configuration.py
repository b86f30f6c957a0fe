from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock
import os
import tempfile
import textwrap
import unittest

from assetbundler.configuration import CliOverrides, check_bundle_name, resolve_configuration
from assetbundler.errors import ConfigurationError
from assetbundler.linking import LinkMethod


class ResolveConfigurationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config_path = self.root / ".assetbundler.toml"
        self._write_config(
            """
            [global]
            unity_version = "2022.3.35f1"
            unity_editor_path = "/opt/unity/Editor/Unity"
            unity_hub_path = "/opt/unityhub/unityhub"
            allowed_targets = ["windows", "linux"]
            output_directory = "out"
            include_patterns = ["*.png"]
            filename = "[bundle_name]_[platform]"

            [bundles.alpha]
            bundle_name = "author.alpha"
            asset_directory = "assets/alpha"

            [bundles.beta]
            bundle_name = "author.beta"
            asset_directory = "assets/beta"
            allowed_targets = ["mac"]
            include_patterns = ["*.fbx"]
            output_path = "custom/beta"

            [bundles.gamma]
            asset_directory = "assets/gamma"
            targetless = true
            """
        )

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _write_config(self, content: str) -> None:
        self.config_path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")

    def _resolve(self, **overrides):
        return resolve_configuration(CliOverrides(**overrides), cwd=self.root, environ={})

    def test_auto_detects_config_in_working_directory(self) -> None:
        config = self._resolve()

        self.assertEqual(config.config_path, self.config_path)
        self.assertEqual(config.selected, ["alpha", "beta", "gamma"])
        self.assertEqual(config.validate(), [])

    def test_single_bundle_is_auto_selected(self) -> None:
        self._write_config(
            """
            [global]
            unity_version = "2022.3.35f1"

            [bundles.only]
            asset_directory = "assets"
            """
        )

        self.assertEqual(self._resolve().selected, ["only"])

    def test_bundle_inherits_global_values(self) -> None:
        bundle = self._resolve().resolve_bundle("alpha")

        self.assertEqual(bundle.bundle_name, "author.alpha")
        self.assertEqual(bundle.asset_directory, Path(os.path.normpath(str(self.root / "assets" / "alpha"))))
        self.assertEqual(bundle.output_directory, Path(os.path.normpath(str(self.root / "out"))))
        self.assertEqual(bundle.include_patterns, ("*.png",))
        self.assertEqual(bundle.filename, "[bundle_name]_[platform]")
        self.assertEqual(bundle.targets, ("windows", "linux"))
        self.assertFalse(bundle.targetless)

    def test_bundle_values_win_over_global(self) -> None:
        bundle = self._resolve().resolve_bundle("beta")

        self.assertEqual(bundle.include_patterns, ("*.fbx",))
        self.assertEqual(bundle.targets, ("mac",))
        self.assertEqual(bundle.output_directory, Path(os.path.normpath(str(self.root / "custom" / "beta"))))

    def test_targetless_bundle_ignores_target_restrictions(self) -> None:
        bundle = self._resolve(targets=["windows"]).resolve_bundle("gamma")

        self.assertTrue(bundle.targetless)
        self.assertEqual(bundle.targets, ())
        self.assertEqual(bundle.bundle_name, "gamma")

    def test_cli_targets_win_over_bundle_restriction(self) -> None:
        config = self._resolve(targets=["linux"])

        self.assertEqual(config.resolve_bundle("beta").targets, ("linux",))
        self.assertEqual(config.resolve_bundle("alpha").targets, ("linux",))

    def test_target_none_means_targetless(self) -> None:
        bundle = self._resolve(targets=["none"]).resolve_bundle("alpha")

        self.assertTrue(bundle.targetless)

    def test_cli_overrides_win_and_lists_append(self) -> None:
        config = self._resolve(
            unity_version="6000.0.1f1",
            link_method="hardlink",
            include_patterns=["*.wav"],
            output_directory="elsewhere",
            bundles=["beta"],
        )

        self.assertEqual(config.settings.unity_version, "6000.0.1f1")
        self.assertIs(config.link_method, LinkMethod.HARDLINK)
        self.assertEqual(config.settings.include_patterns, ["*.png", "*.wav"])
        bundle = config.resolve_bundle("beta")
        self.assertEqual(bundle.include_patterns, ("*.fbx", "*.wav"))
        self.assertEqual(bundle.output_directory, (self.root / "elsewhere").resolve())

    def test_ci_environment_variable_enables_ci_mode(self) -> None:
        config = resolve_configuration(CliOverrides(), cwd=self.root, environ={"CI": "true"})
        self.assertTrue(config.ci_mode)
        self.assertTrue(config.non_interactive)

        config = resolve_configuration(CliOverrides(), cwd=self.root, environ={"CI": "false"})
        self.assertFalse(config.ci_mode)

    def test_ci_mode_does_not_require_hub(self) -> None:
        self._write_config(
            """
            [global]
            unity_editor_path = "/opt/unity/Editor/Unity"
            unity_version = "2022.3.35f1"
            ci_mode = true

            [bundles.one]
            asset_directory = "assets"
            output_directory = "out"
            """
        )

        self.assertEqual(self._resolve().validate(), [])

    def test_validation_accumulates_every_problem(self) -> None:
        self._write_config(
            """
            [global]
            allowed_targets = ["windows", "playstation"]

            [bundles.bad]
            bundle_name = "My.Bundle"
            asset_directory = "assets"
            output_directory = "out"
            """
        )

        errors = self._resolve(bundles=["bad", "ghost"], targets=["xbox"]).validate()

        self.assertIn("Unity version is required in the configuration file", errors)
        self.assertIn("Unity hub path is required in the configuration file", errors)
        self.assertIn('Invalid build target: "xbox". Valid values are: windows, mac, linux', errors)
        self.assertIn('Invalid build target: "playstation". Valid values are: windows, mac, linux', errors)
        self.assertIn("Bundle name cannot end with .framework or .bundle: my.bundle", errors)
        self.assertTrue(any("Bundle configuration 'ghost' not found" in error and "Available bundles: bad" in error for error in errors))

    def test_missing_config_file_is_reported(self) -> None:
        self.config_path.unlink()

        errors = self._resolve(unity_editor_path="/opt/unity", ci_mode=True).validate()

        self.assertEqual(
            errors[0],
            "Configuration file is required (use --config or place .assetbundler.toml in current directory)",
        )

    def test_unknown_bundle_raises_on_resolution(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            self._resolve().resolve_bundle("missing")
        self.assertIn("Available bundles: alpha, beta, gamma", str(ctx.exception))

    def test_detects_missing_tools(self) -> None:
        self._write_config(
            """
            [global]
            unity_version = "2022.3.35f1"

            [bundles.one]
            asset_directory = "assets"
            output_directory = "out"
            """
        )
        config = self._resolve()
        locator = MagicMock()
        locator.find_editor.return_value = Path("/detected/Unity")
        locator.find_hub.return_value = None

        config.detect_tools(locator)

        locator.find_editor.assert_called_once_with("2022.3.35f1")
        self.assertEqual(config.unity_editor_path, Path("/detected/Unity"))
        self.assertEqual(config.validate(), ["Unity hub path is required in the configuration file"])

    def test_output_directory_defaults_to_working_directory(self) -> None:
        self._write_config(
            """
            [global]
            unity_version = "2022.3.35f1"
            unity_editor_path = "/opt/unity/Editor/Unity"

            [bundles.mod]
            bundle_name = "author.modname"
            asset_directory = "assets"
            targetless = true
            """
        )
        config = self._resolve(ci_mode=True)

        self.assertEqual(config.validate(), [])
        self.assertEqual(config.resolve_bundle("mod").output_directory, self.root)

    def test_missing_editor_hint_respects_non_interactive(self) -> None:
        locator = MagicMock()
        locator.find_editor.return_value = None
        locator.find_hub.return_value = Path("/opt/unityhub/unityhub")
        console = MagicMock()
        config = self._resolve()
        config.unity_editor_path = None

        config.detect_tools(locator, console)

        console.warning.assert_called_once_with("Unity 2022.3.35f1 was not found on this system")
        console.info.assert_called_once()

        console.reset_mock()
        config = self._resolve(non_interactive=True)
        config.unity_editor_path = None

        config.detect_tools(locator, console)

        console.warning.assert_called_once_with("Unity 2022.3.35f1 was not found on this system")
        console.info.assert_not_called()


class BundleNameTests(unittest.TestCase):
    def test_forbidden_suffixes_are_rejected_case_insensitively(self) -> None:
        for name in ("test.framework", "My.Bundle", "ASSETS.FRAMEWORK"):
            with self.subTest(name=name):
                self.assertEqual(
                    check_bundle_name(name),
                    f"Bundle name cannot end with .framework or .bundle: {name.lower()}",
                )

    def test_regular_names_are_accepted(self) -> None:
        for name in ("author.modname", "bundle_data", "frameworks.pack"):
            self.assertIsNone(check_bundle_name(name))

    def test_resolution_rejects_forbidden_suffix(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            path = Path(temp) / "config.toml"
            path.write_text('[bundles.x]\nbundle_name = "test.framework"\n', encoding="utf-8")
            config = resolve_configuration(CliOverrides(config_path=str(path)), cwd=Path(temp), environ={})

            with self.assertRaises(ConfigurationError) as ctx:
                config.resolve_bundle("x")
        self.assertIn("test.framework", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
