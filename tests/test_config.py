from __future__ import annotations

from dataclasses import FrozenInstanceError
from pathlib import Path
import json
import tempfile
import textwrap
import unittest

from localbuild.application import LocalApplication, find_applications
from localbuild.errors import ConfigurationError
from localbuild.settings import BuildSettings, LocalConfig


class LocalConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_defaults(self) -> None:
        config = LocalConfig()

        self.assertEqual(config.layout_paths(), ("builds", "www", "shared", ".build-archives"))
        self.assertEqual(config.keep_builds, 5)
        self.assertIsNone(config.max_build_age)
        self.assertTrue((config.resources_dir / "drupal" / "settings.local.php.dist").is_file())

    def test_loads_local_table_from_toml(self) -> None:
        path = self.root / "local.toml"
        path.write_text(
            textwrap.dedent(
                """
                [local]
                builds_dir = "_builds/"
                keep_builds = 3
                max_build_age = 86400
                archive_format = "tar.gz"
                """
            )
        )

        config = LocalConfig.load(path)

        self.assertEqual(config.builds_dir, "_builds")
        self.assertEqual(config.keep_builds, 3)
        self.assertEqual(config.max_build_age, 86400)
        self.assertEqual(config.archive_format, "gztar")

    def test_later_files_override_earlier_ones(self) -> None:
        (self.root / "base.yaml").write_text("local:\n  web_root: web\n  shared_dir: state\n")
        (self.root / "override.json").write_text(json.dumps({"local": {"web_root": "docroot"}}))

        config = LocalConfig.load(self.root / "base.yaml", self.root / "override.json")

        self.assertEqual(config.web_root, "docroot")
        self.assertEqual(config.shared_dir, "state")

    def test_rejects_unknown_and_invalid_values(self) -> None:
        with self.assertRaises(ConfigurationError):
            LocalConfig.from_mapping({"local": {"build_dir": "x"}})
        with self.assertRaises(ConfigurationError):
            LocalConfig.from_mapping({"keep_builds": -1})
        with self.assertRaises(ConfigurationError):
            LocalConfig.from_mapping({"web_root": "/"})
        with self.assertRaises(ConfigurationError):
            LocalConfig.from_mapping({"archive_format": "rar"})


class BuildSettingsTests(unittest.TestCase):
    def test_settings_are_read_only(self) -> None:
        settings = BuildSettings(copy=True)

        with self.assertRaises(FrozenInstanceError):
            settings.copy = False  # type: ignore[misc]

    def test_archive_fingerprint_ignores_unrelated_flags(self) -> None:
        first = BuildSettings(no_clean=True, environment_id="main")
        second = BuildSettings(no_clean=False, environment_id="feature")

        self.assertEqual(first.archive_fingerprint(), second.archive_fingerprint())
        self.assertNotEqual(first.archive_fingerprint(), BuildSettings(copy=True).archive_fingerprint())


class ApplicationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.source = Path(self.temp_dir.name).resolve() / "project"
        self.source.mkdir()
        self.config = LocalConfig()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def write(self, relative: str, content: str = "") -> None:
        path = self.source / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    def test_tree_without_app_config_is_one_application(self) -> None:
        self.write("index.html", "<h1>hi</h1>")

        apps = find_applications(self.source, self.config)

        self.assertEqual(len(apps), 1)
        self.assertEqual(apps[0].name, "default")
        self.assertEqual(apps[0].root, self.source)
        self.assertTrue(apps[0].single)
        self.assertEqual(dict(apps[0].config), {})

    def test_finds_nested_applications(self) -> None:
        self.write("api/.platform.app.yaml", "name: api\nweb:\n  document_root: web\nbuild:\n  flavor: Composer\n")
        self.write("front/.platform.app.yaml", "name: front\n")
        self.write("builds/old/.platform.app.yaml", "name: stale\n")
        self.write(".hidden/.platform.app.yaml", "name: hidden\n")

        apps = find_applications(self.source, self.config)

        self.assertEqual([app.name for app in apps], ["api", "front"])
        self.assertFalse(apps[0].single)
        self.assertEqual(apps[0].document_root(), "web")
        self.assertEqual(apps[0].toolstack_key, "composer")
        self.assertIsNone(apps[1].toolstack_key)

    def test_duplicate_application_names(self) -> None:
        self.write("one/.platform.app.yaml", "name: app\n")
        self.write("two/.platform.app.yaml", "name: app\n")

        with self.assertRaises(ConfigurationError):
            find_applications(self.source, self.config)

    def test_invalid_application_config(self) -> None:
        self.write(".platform.app.yaml", "- just\n- a list\n")

        with self.assertRaises(ConfigurationError):
            find_applications(self.source, self.config)

    def test_shared_mounts(self) -> None:
        app = LocalApplication(
            root=self.source,
            source_dir=self.source,
            config={
                "mounts": {
                    "/public/sites/default/files": "shared:files/files",
                    "tmp": {"source": "local", "source_path": "tmp"},
                    "/remote": {"source": "service", "service": "files"},
                }
            },
        )

        self.assertEqual(app.shared_mounts, {"public/sites/default/files": "files", "tmp": "tmp"})

    def test_shared_dir_per_application(self) -> None:
        single = LocalApplication(root=self.source, source_dir=self.source)
        multi = LocalApplication(
            root=self.source / "api",
            source_dir=self.source,
            config={"name": "My App"},
            single=False,
        )

        self.assertEqual(single.shared_dir(self.config), self.source / "shared")
        self.assertEqual(multi.shared_dir(self.config), self.source / "shared" / "My-App")

    def test_move_to_root(self) -> None:
        app = LocalApplication(root=self.source, source_dir=self.source)
        self.assertTrue(app.should_move_to_root())

        (self.source / "public").mkdir()
        self.assertFalse(app.should_move_to_root())

        custom = LocalApplication(root=self.source, source_dir=self.source, config={"web": {"document_root": "/web/"}})
        self.assertEqual(custom.document_root(), "web")
        self.assertFalse(custom.should_move_to_root())

    def test_build_hooks(self) -> None:
        as_text = LocalApplication(root=self.source, source_dir=self.source, config={"hooks": {"build": "set -e\nmake\n"}})
        as_list = LocalApplication(root=self.source, source_dir=self.source, config={"hooks": {"build": ["one", "two"]}})
        broken = LocalApplication(root=self.source, source_dir=self.source, config={"hooks": {"build": {"a": 1}}})

        self.assertEqual(as_text.build_hooks, ["set -e\nmake"])
        self.assertEqual(as_list.build_hooks, ["one", "two"])
        with self.assertRaises(ConfigurationError):
            broken.build_hooks


if __name__ == "__main__":
    unittest.main()
