import unittest

from ghwatchdog.analyzers.content_checker import (
    RepositoryContentChecker,
    find_loader_artifacts,
    readme_has_markers,
)

from support import FakeGitHubAPI, make_item

LURE_README = "# Cheat Tool\n\n# [Download Link](https://example.invalid)\n\n# PASSWORD: 2025\n"


class MarkerTests(unittest.TestCase):
    def test_both_markers_in_any_case(self) -> None:
        self.assertTrue(readme_has_markers(LURE_README))
        self.assertTrue(readme_has_markers("# [DOWNLOAD LINK]\n# password"))

    def test_one_marker_is_not_enough(self) -> None:
        self.assertFalse(readme_has_markers("# [download link]\nhello"))
        self.assertFalse(readme_has_markers("# password"))

    def test_missing_readme(self) -> None:
        self.assertFalse(readme_has_markers(None))
        self.assertFalse(readme_has_markers(""))

    def test_loader_artifacts_match_base_name_exactly(self) -> None:
        names = ["bin/LOADER.ZIP", "loader.rar", "myloader.zip", "loader.zip.txt", "docs/loader"]
        self.assertEqual(find_loader_artifacts(names), ["bin/LOADER.ZIP", "loader.rar"])


class RepositoryContentCheckerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.api = FakeGitHubAPI()
        self.item = make_item("mallory", "free-cheats", size=50)
        self.checker = RepositoryContentChecker()

    def test_readme_lure_short_circuits(self) -> None:
        self.api.readmes["mallory/free-cheats"] = LURE_README
        verdict = self.checker.check(self.api, self.item)
        self.assertTrue(verdict.flag)
        self.assertEqual(verdict.name, "readme-markers")
        self.assertEqual(self.api.calls["get_tree_files"], 0)

    def test_loader_in_tree_independent_of_readme(self) -> None:
        self.api.readmes["mallory/free-cheats"] = "A perfectly normal project"
        self.api.trees["mallory/free-cheats"] = ["README.md", "LOADER.ZIP"]
        verdict = self.checker.check(self.api, self.item)
        self.assertTrue(verdict.flag)
        self.assertIn("LOADER.ZIP", verdict.description)
        self.assertEqual(self.api.calls["list_release_assets"], 0)

    def test_loader_in_release_assets(self) -> None:
        self.api.assets["mallory/free-cheats"] = ["Loader.rar"]
        self.assertTrue(self.checker.check(self.api, self.item).flag)

    def test_clean_repository(self) -> None:
        self.api.readmes["mallory/free-cheats"] = "# [download link]"
        self.api.trees["mallory/free-cheats"] = ["setup.py"]
        verdict = self.checker.check(self.api, self.item)
        self.assertFalse(verdict.flag)


if __name__ == "__main__":
    unittest.main()
