import pytest

from accessgate.subjects import StaticDirectory, Subject, resolve_subject


def _directory():
    return StaticDirectory(
        [
            Subject(id="u2", attributes={"department": "Finance"}, grants={"finance-create"}),
            Subject(id="u1", attributes={"department": "Engineering"}, grants={"developer"}),
        ]
    )


def test_static_directory_lookups():
    directory = _directory()
    assert directory.subject_ids() == ["u1", "u2"]
    assert directory.attributes_for("u1") == {"department": "Engineering"}
    assert directory.grants_for("u2") == frozenset({"finance-create"})
    assert directory.attributes_for("missing") is None
    assert directory.grants_for("missing") == frozenset()


def test_resolve_subject_combines_sources():
    directory = _directory()
    subject = resolve_subject("u2", directory, directory, risk_factors={"Peer Outlier": 0.4})
    assert subject.attributes == {"department": "Finance"}
    assert subject.grants == frozenset({"finance-create"})
    assert subject.risk_factors == {"Peer Outlier": 0.4}


def test_resolve_unknown_subject_raises():
    directory = _directory()
    with pytest.raises(LookupError):
        resolve_subject("ghost", directory, directory)


def test_put_replaces_snapshot():
    directory = _directory()
    directory.put(Subject(id="u1", attributes={"department": "Sales"}))
    assert directory.snapshot("u1").attributes == {"department": "Sales"}
    assert directory.grants_for("u1") == frozenset()
