import pytest

from nxhost.netstatus import Interface, InterfaceFlag, diff, diff_addrs

UP = int(InterfaceFlag.UP)


@pytest.mark.parametrize(
    "old,new,want",
    [
        (None, None, ""),
        ([], [Interface("eth0")], "eth0 added"),
        ([Interface("lo")], [Interface("lo"), Interface("eth0")], "eth0 added"),
        ([Interface("eth0")], [], "eth0 removed"),
        ([Interface("eth0"), Interface("lo")], [Interface("lo")], "eth0 removed"),
        ([Interface("eth0")], [Interface("eth0", UP)], "eth0 up"),
        ([Interface("eth0", UP)], [Interface("eth0")], "eth0 down"),
    ],
    ids=["empty", "new", "inserted", "removed", "removed head", "up", "down"],
)
def test_diff(old, new, want):
    assert diff(old, new) == want


def test_diff_addrs_added():
    assert diff_addrs(["a"], ["a", "b"]) == "b added"


def test_diff_addrs_removed():
    assert diff_addrs(["a", "b"], ["a"]) == "b removed"


def test_diff_addrs_in_interface():
    old = [Interface("eth0", UP, ["a"])]
    new = [Interface("eth0", UP, ["a", "b"])]
    assert diff(old, new) == "eth0 b added"


def test_diff_same_is_empty():
    ifs = [Interface("eth0", UP, ["a"])]
    assert diff(ifs, list(ifs)) == ""