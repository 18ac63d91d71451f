import pytest

from blossom.packages.modes import CATEGORIES, PackageMode, categoriesForMode, parsePackageMode


def test_normal_selects_every_category_in_fixed_order():
    assert categoriesForMode(PackageMode.NORMAL) == ("other", "models", "controllers", "views")
    assert categoriesForMode(PackageMode.NORMAL | PackageMode.VIEWS) == CATEGORIES


def test_other_always_comes_first():
    mode = PackageMode.VIEWS | PackageMode.OTHER | PackageMode.MODELS
    assert categoriesForMode(mode) == ("other", "models", "views")


def test_flag_values_match_bitmask():
    assert int(PackageMode.MODELS) == 0x01
    assert int(PackageMode.VIEWS) == 0x02
    assert int(PackageMode.CONTROLLERS) == 0x04
    assert int(PackageMode.OTHER) == 0x08
    assert int(PackageMode.NORMAL) == 0x10


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, PackageMode.NORMAL),
        ("normal", PackageMode.NORMAL),
        ("models|other", PackageMode.MODELS | PackageMode.OTHER),
        ("Views, controllers", PackageMode.VIEWS | PackageMode.CONTROLLERS),
        (["models"], PackageMode.MODELS),
        (0x09, PackageMode.MODELS | PackageMode.OTHER),
        (PackageMode.VIEWS, PackageMode.VIEWS),
    ],
)
def test_parse_package_mode(value, expected):
    assert parsePackageMode(value) == expected


@pytest.mark.parametrize("value", ["", "widgets", 0, 0x40, [], True])
def test_parse_package_mode_rejects_garbage(value):
    with pytest.raises((ValueError, TypeError)):
        parsePackageMode(value)
