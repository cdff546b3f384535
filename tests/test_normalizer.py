"""
Unit tests for path normalization and the platform-noise deny-list.
"""
from diskproof.core.normalizer import (
    PathNormalizer, is_noise_name, is_platform_noise, split_container)


class TestPlatformNoise:
    def test_noise_file_names(self):
        assert is_noise_name(".DS_Store")
        assert is_noise_name("._IMG_0001.JPG")
        assert not is_noise_name("IMG_0001.JPG")
        assert not is_noise_name(".hidden")

    def test_noise_anywhere_in_path(self):
        assert is_platform_noise("/Volumes/Old/.Spotlight-V100/Store-V2/db")
        assert is_platform_noise("clips/.Trashes/501/a.mov")
        assert is_platform_noise("clips/.DS_Store")
        assert is_platform_noise(".fseventsd")

    def test_regular_paths_are_not_noise(self):
        assert not is_platform_noise("/Volumes/Old/clips/a.mov")
        assert not is_platform_noise("Spotlight/notes.txt")
        assert not is_platform_noise("")


class TestContainerSplit:
    def test_unwraps_container_entries(self):
        assert split_container("/Volumes/New/odd.zip:clips/b.mov") == "clips/b.mov"

    def test_only_first_colon_separates(self):
        assert split_container("odd.zip:clips/b:c.mov") == "clips/b:c.mov"

    def test_plain_paths_are_not_containers(self):
        assert split_container("/Volumes/New/clips/b.mov") is None

    def test_windows_drive_is_not_a_container(self):
        assert split_container("C:\\Users\\me\\a.txt") is None
        assert split_container("D:/data/a.txt") is None


class TestPathNormalizer:
    def test_strips_root_prefix(self):
        normalizer = PathNormalizer({"/Volumes/Old": ""})
        assert normalizer.normalize("/Volumes/Old/clips/a.mov") == "clips/a.mov"

    def test_longest_prefix_wins(self):
        normalizer = PathNormalizer({"/Volumes/New": "other", "/Volumes/New/3": ""})
        assert normalizer.normalize("/Volumes/New/3/clips/a.mov") == "clips/a.mov"
        assert normalizer.normalize("/Volumes/New/x.mov") == "other/x.mov"

    def test_prefix_must_end_at_separator(self):
        """"/Volumes/New/3" must not eat "/Volumes/New/30/..."."""
        normalizer = PathNormalizer({"/Volumes/New/3": ""})
        assert normalizer.normalize("/Volumes/New/30/a.mov") == "Volumes/New/30/a.mov"

    def test_rewrite_to_canonical_prefix(self):
        normalizer = PathNormalizer({"/mnt/old/": "archive"})
        assert normalizer.normalize("/mnt/old/a/b.txt") == "archive/a/b.txt"

    def test_container_then_prefix(self):
        normalizer = PathNormalizer({"/Volumes/New/3": ""})
        assert normalizer.normalize("/Volumes/New/3/odd.zip:clips/b:c.mov") == "clips/b:c.mov"
        assert normalizer.is_container_entry("/Volumes/New/3/odd.zip:clips/b:c.mov")

    def test_without_mapping_only_leading_separators_are_trimmed(self):
        assert PathNormalizer().normalize("/a/b.txt") == "a/b.txt"

    def test_for_roots(self):
        normalizer = PathNormalizer.for_roots(["/Volumes/Old/"])
        assert normalizer.normalize("/Volumes/Old/a.txt") == "a.txt"
