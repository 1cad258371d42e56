import pytest

from cjms.version import VersionFileError, VersionInfo, read_version, write_version


def test_read_version_success(tmp_path):
    path = tmp_path / "version-test.yml"
    path.write_text("commit: a1b2c3\nsource: source\nversion: version")
    result = read_version(str(path))
    assert result.commit == "a1b2c3"
    assert result.source == "source"
    assert result.version == "version"


def test_read_version_fails_if_no_file(tmp_path):
    with pytest.raises(VersionFileError, match="Couldn't read version file."):
        read_version(str(tmp_path / "missing.yml"))


def test_read_version_fails_if_contents_not_parseable(tmp_path):
    path = tmp_path / "version-test.yml"
    path.write_text("not a version file")
    with pytest.raises(VersionFileError, match="Couldn't parse YAML from version file."):
        read_version(str(path))


def test_read_version_fails_if_field_missing(tmp_path):
    path = tmp_path / "version-test.yml"
    path.write_text("commit: a1b2c3\nsource: source\n")
    with pytest.raises(VersionFileError, match="Couldn't parse YAML from version file."):
        read_version(str(path))


def test_read_version_accepts_numeric_commit(tmp_path):
    path = tmp_path / "version.yaml"
    path.write_text("\ncommit: 123456\nsource: a source\nversion: the version\n    ")
    result = read_version(str(path))
    assert result.source == "a source"
    assert result.commit == "123456"


def test_write_version_success(tmp_path):
    path = tmp_path / "version-test.yml"
    write_version(str(path), VersionInfo(commit="a1b2c3", source="source", version="version"))
    contents = path.read_text()
    assert "commit: a1b2c3" in contents, contents
    assert "source: source" in contents, contents
    assert "version: version" in contents, contents


def test_write_then_read_round_trip(tmp_path):
    path = tmp_path / "round.yml"
    data = VersionInfo(commit="ff00", source="somewhere", version="1.2.3")
    write_version(str(path), data)
    assert read_version(str(path)) == data


def test_write_version_fails_if_directory_missing(tmp_path):
    target = tmp_path / "no-such-dir" / "version.yml"
    with pytest.raises(VersionFileError, match="Couldn't create version file."):
        write_version(str(target), VersionInfo(commit="a", source="b", version="c"))