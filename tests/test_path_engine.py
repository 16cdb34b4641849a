import pytest

from path_engine import branch_name_for, normalize_repo_path


def test_branch_name_is_deterministic_for_a_timestamp():
    assert branch_name_for(0) == "auto-dev-19700101-000000-000"
    assert branch_name_for(1_760_000_000.25) == "auto-dev-20251009-085320-250"
    assert branch_name_for(1_760_000_000.25) == branch_name_for(1_760_000_000.25)


def test_branch_names_differ_by_millisecond():
    assert branch_name_for(1.0015) != branch_name_for(1.0025)


def test_end_of_second_does_not_wrap_to_start_of_same_second():
    early = branch_name_for(1_760_000_000.0001)
    late = branch_name_for(1_760_000_000.9996)
    assert early == "auto-dev-20251009-085320-000"
    assert late == "auto-dev-20251009-085320-999"
    assert early != late


def test_branch_prefix():
    assert branch_name_for(0, prefix="x").startswith("x-")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("public/index.html", "public/index.html"),
        ("/public/index.html", "public/index.html"),
        ("./public//index.html", "public/index.html"),
        ("public\\index.html", "public/index.html"),
    ],
)
def test_normalize_repo_path(raw, expected):
    assert normalize_repo_path(raw) == expected


@pytest.mark.parametrize("raw", ["", "  ", "/", "../secret", "a/../../b"])
def test_normalize_repo_path_rejects(raw):
    with pytest.raises(ValueError):
        normalize_repo_path(raw)
