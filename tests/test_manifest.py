"""包清单测试 - 编解码 + 顺序 + OCI URL + profile + 读写"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from modfile.core.config import Config
from modfile.core.dependency import Dependencies, Dependency
from modfile.core.exceptions import (
    MalformedManifestError,
    ManifestNotFoundError,
    UnknownSourceKindError,
)
from modfile.core.manifest import (
    ModFile,
    Package,
    Profile,
    load_mod_file,
    mod_file_exists,
    new_mod_file,
)
from modfile.core.source import GitSource, LocalSource, OciSource
from modfile.utils import toml_io


def _git_dep() -> Dependency:
    return Dependency(
        name="MyKcl1",
        full_name="MyKcl1_v0.0.2",
        source=GitSource(url="https://github.com/test/MyKcl1.git", tag="v0.0.2"),
    )


def _oci_dep() -> Dependency:
    return Dependency(
        name="MyOciKcl1",
        full_name="MyOciKcl1_0.0.1",
        version="0.0.1",
        source=OciSource(tag="0.0.1"),
    )


def _mod_file(*deps: Dependency) -> ModFile:
    return ModFile(
        package=Package(
            name="MyKcl",
            edition="v0.0.1",
            version="v0.0.1",
            include=["src/", "README.md", "LICENSE"],
            exclude=["target/", ".git/", "*.log"],
        ),
        dependencies=Dependencies((d.name, d) for d in deps),
    )


class TestMarshal:
    def test_marshal_toml(self, testdata: Path) -> None:
        got = _mod_file(_oci_dep(), _git_dep()).to_toml()
        expected = (testdata / "toml" / "expected.toml").read_text(encoding="utf-8")
        assert got == expected

    def test_order_sensitivity(self, testdata: Path) -> None:
        """插入顺序不同的同内容依赖表输出不同文本，各自按原顺序解码"""
        ab = _mod_file(_oci_dep(), _git_dep())
        ba = _mod_file(_git_dep(), _oci_dep())
        text_ab, text_ba = ab.to_toml(), ba.to_toml()

        assert ab == ba
        assert text_ab != text_ba
        assert text_ba == (testdata / "toml" / "expected_reversed.toml").read_text(encoding="utf-8")

        decoded_ab = ModFile.from_toml(text_ab)
        decoded_ba = ModFile.from_toml(text_ba)
        assert decoded_ab.dependencies.keys() == ["MyOciKcl1", "MyKcl1"]
        assert decoded_ba.dependencies.keys() == ["MyKcl1", "MyOciKcl1"]
        assert decoded_ab.dependencies == ab.dependencies
        assert decoded_ba.dependencies == ba.dependencies

    def test_empty_dependencies_header(self) -> None:
        text = ModFile(package=Package(name="a", edition="v0.9.0", version="0.0.1")).to_toml()
        assert text == (
            '[package]\nname = "a"\nedition = "v0.9.0"\nversion = "0.0.1"\n'
            "\n[dependencies]\n"
        )

    def test_no_profile_block_when_absent(self) -> None:
        assert "profile" not in _mod_file(_git_dep()).to_toml()

    def test_keys_with_dots(self) -> None:
        mod = _mod_file()
        mod.dependencies.set("MyOciKcl1_0.0.1", _oci_dep())
        text = mod.to_toml()
        assert '[dependencies."MyOciKcl1_0.0.1"]' in text
        assert 'name = "MyOciKcl1"' in text
        decoded = ModFile.from_toml(text)
        assert decoded.dependencies["MyOciKcl1_0.0.1"] == _oci_dep()

    def test_sum_never_written(self) -> None:
        dep = _git_dep()
        dep.sum = "hjkasdahjksdasdhjk"
        assert "sum" not in _mod_file(dep).to_toml()

    def test_save_is_idempotent(self, tmp_path: Path) -> None:
        mod = _mod_file(_oci_dep(), _git_dep())
        path = tmp_path / "kcl.mod"
        mod.save(path)
        first = path.read_bytes()
        mod.save(path)
        assert path.read_bytes() == first

    @pytest.mark.parametrize("package", [
        Package(name="p", version=""),
        Package(name="", version="0.1"),
    ])
    def test_empty_identity_not_written(self, package: Package, tmp_path: Path) -> None:
        """写不出无法再次加载的清单"""
        with pytest.raises(MalformedManifestError, match="缺失或为空"):
            ModFile(package=package).save(tmp_path / "kcl.mod")
        assert not (tmp_path / "kcl.mod").exists()

    def test_profile_written_before_dependencies(self) -> None:
        mod = _mod_file(_git_dep())
        mod.profile = Profile(entries=["main.k"])
        text = mod.to_toml()
        assert text.index("[profile]") < text.index("[dependencies.MyKcl1]")


class TestUnmarshal:
    def test_unmarshal_toml(self, testdata: Path) -> None:
        mod = ModFile.load(testdata / "toml" / "expected.toml")
        assert mod.package.name == "MyKcl"
        assert mod.package.edition == "v0.0.1"
        assert mod.package.version == "v0.0.1"
        assert mod.package.include == ["src/", "README.md", "LICENSE"]
        assert mod.package.exclude == ["target/", ".git/", "*.log"]
        assert len(mod.dependencies) == 2

        git = mod.dependencies.get("MyKcl1")
        assert git is not None
        assert git.name == "MyKcl1"
        assert git.full_name == "MyKcl1_v0.0.2"
        assert isinstance(git.source, GitSource)
        assert git.source.url == "https://github.com/test/MyKcl1.git"
        assert git.source.tag == "v0.0.2"

        oci = mod.dependencies.get("MyOciKcl1")
        assert oci is not None
        assert oci.name == "MyOciKcl1"
        assert oci.full_name == "MyOciKcl1_0.0.1"
        assert isinstance(oci.source, OciSource)
        assert oci.source.tag == "0.0.1"

    def test_unmarshal_with_profile(self, testdata: Path) -> None:
        mod = load_mod_file(testdata / "test_profile")
        assert mod.package.name == "kpm"
        assert mod.package.version == "0.0.1"
        assert mod.package.edition == "0.0.1"
        assert mod.has_profile()
        assert mod.get_entries() == ["main.k", "xxx/xxx/dir", "test.yaml"]
        assert len(mod.dependencies) == 0

    def test_profile_round_trip(self) -> None:
        mod = _mod_file(_git_dep())
        mod.profile = Profile(entries=["main.k", "xxx/xxx/dir", "test.yaml"])
        decoded = ModFile.from_toml(mod.to_toml())
        assert decoded.get_entries() == ["main.k", "xxx/xxx/dir", "test.yaml"]
        assert decoded == mod

    def test_profiles_key_accepted(self) -> None:
        text = (
            '[package]\nname = "a"\nversion = "0.0.1"\n'
            '[profiles]\nentries = ["main.k"]\n'
        )
        assert ModFile.from_toml(text).get_entries() == ["main.k"]

    def test_shorthand_and_inline_tables(self) -> None:
        text = (
            '[package]\nname = "a"\nversion = "0.0.1"\n'
            "[dependencies]\n"
            'k8s = "1.28"\n'
            'local = { path = "../local" }\n'
            'git = { url = "https://github.com/x/y.git", branch = "main" }\n'
        )
        deps = ModFile.from_toml(text).dependencies
        assert deps.keys() == ["k8s", "local", "git"]
        assert deps["k8s"] == Dependency(name="k8s", version="1.28", source=OciSource(tag="1.28"))
        assert deps["local"].source == LocalSource(path="../local")
        assert deps["git"].source == GitSource(url="https://github.com/x/y.git", branch="main")

    def test_full_name_default_fill(self) -> None:
        text = (
            '[package]\nname = "a"\nversion = "0.0.1"\n'
            "[dependencies.MyKcl1]\n"
            'version = "v0.0.2"\nurl = "https://github.com/test/MyKcl1.git"\n'
        )
        assert ModFile.from_toml(text).dependencies["MyKcl1"].full_name == "MyKcl1_v0.0.2"


class TestOciUrl:
    @pytest.mark.parametrize("case, reg", [
        ("unmarshal_0", "ghcr.io"),
        ("unmarshal_1", "localhost:5001"),
        ("unmarshal_2", "ghcr.io"),
    ])
    def test_unmarshal_oci_url(self, testdata: Path, case: str, reg: str) -> None:
        mod = load_mod_file(testdata / "test_oci_url" / case)
        assert len(mod.dependencies) == 1
        dep = mod.dependencies["oci_pkg_name"]
        assert dep.name == "oci_pkg_name"
        assert dep.full_name == "oci_pkg_name_0.0.1"
        assert dep.version == "0.0.1"
        assert dep.source == OciSource(reg=reg, repo="test/helloworld", tag="0.0.1")

    def test_marshal_oci_url(self, testdata: Path, tmp_path: Path) -> None:
        expect = load_mod_file(testdata / "test_oci_url" / "marshal_0" / "kcl_mod_bk")

        mod = ModFile(package=Package(name="marshal_0", edition="v0.9.0", version="0.0.1"))
        mod.dependencies.set("oci_pkg", Dependency(
            name="oci_pkg",
            full_name="oci_pkg_0.0.1",
            version="0.0.1",
            source=OciSource(reg="ghcr.io", repo="kcl-lang/oci_pkg", tag="0.0.1"),
        ))
        mod.store(tmp_path)
        got = load_mod_file(tmp_path)

        assert got.package == expect.package
        assert got.dependencies.same_order(expect.dependencies)
        got_src, expect_src = got.dependencies["oci_pkg"].source, expect.dependencies["oci_pkg"].source
        assert isinstance(got_src, OciSource) and isinstance(expect_src, OciSource)
        assert got_src.into_canonical_url() == expect_src.into_canonical_url()
        assert 'oci = "oci://ghcr.io/kcl-lang/oci_pkg"' in (tmp_path / "kcl.mod").read_text(encoding="utf-8")

    def test_marshal_oci_url_into_file(self, testdata: Path) -> None:
        """手写清单 (短写 / 内联表) 重写为规范格式"""
        case = testdata / "test_oci_url" / "marshal_2"
        mod = ModFile.load(case / "kcl.mod")
        assert mod.to_toml() == (case / "expect.mod").read_text(encoding="utf-8")

    def test_fill_dependencies_info(self, testdata: Path) -> None:
        mod = ModFile.load(testdata / "test_oci_url" / "marshal_2" / "kcl.mod")
        mod.fill_dependencies_info(Config(default_oci_registry="localhost:5001"))
        src = mod.dependencies["helloworld"].source
        assert isinstance(src, OciSource)
        assert src.into_canonical_url() == "localhost:5001/kcl-lang/helloworld:0.1.0"
        assert mod.dependencies["local_dep"].source == LocalSource(path="../local_dep")
        assert mod.dependencies.keys() == ["helloworld", "oci_pkg", "local_dep"]


class TestRoundTrip:
    @pytest.mark.parametrize("dep", [
        _git_dep(),
        _oci_dep(),
        Dependency(name="renamed", full_name="legacy_full", source=LocalSource(path="/abs/p")),
        Dependency(name="g", version="1.0", source=GitSource(url="u", tag="t", branch="b", commit="c")),
        Dependency(name="o", source=OciSource(reg="localhost:5001", repo="a/b")),
        Dependency(name="p", source=OciSource(reg="ghcr.io")),
        Dependency(name="e", source=OciSource()),
    ])
    def test_round_trip(self, dep: Dependency) -> None:
        mod = _mod_file(_git_dep())
        mod.dependencies.set("entry", dep)
        mod.profile = Profile(entries=["main.k"])
        decoded = ModFile.from_toml(mod.to_toml())
        assert decoded == mod
        assert decoded.dependencies.same_order(mod.dependencies)
        assert decoded.to_toml() == mod.to_toml()

    def test_stale_full_name_preserved_by_default(self) -> None:
        mod = _mod_file(Dependency(name="a", full_name="a_old", version="2.0", source=LocalSource("p")))
        assert ModFile.from_toml(mod.to_toml()).dependencies["a"].full_name == "a_old"

    def test_stale_full_name_healed_when_configured(self) -> None:
        cfg = Config(recompute_full_name=True)
        mod = _mod_file(Dependency(name="a", full_name="a_old", version="2.0", source=LocalSource("p")))
        assert ModFile.from_toml(mod.to_toml(cfg), cfg).dependencies["a"].full_name == "a_2.0"

    @pytest.mark.parametrize("path", [
        r"C:\xdeps\foo",
        r"..\x41",
        "deps\x7fctl",
        "with space/and\ttab",
        "中文/依赖",
    ])
    def test_local_paths_with_special_characters(self, path: str, tmp_path: Path) -> None:
        mod = ModFile(package=Package(name="p", version="0.1"))
        mod.dependencies.set("d", Dependency(name="d", source=LocalSource(path)))
        mod.store(tmp_path)
        loaded = load_mod_file(tmp_path)
        assert loaded.dependencies["d"].source == LocalSource(path)
        assert loaded == mod

    @pytest.mark.parametrize("key", ['x"y', "with space", "a\\b", "pkg.v1"])
    def test_keys_needing_quotes(self, key: str) -> None:
        mod = ModFile(package=Package(name="p", version="0.1"))
        mod.dependencies.set(key, Dependency(name="dep", source=GitSource(url="u", tag="v1")))
        decoded = ModFile.from_toml(mod.to_toml())
        assert decoded.dependencies.keys() == [key]
        assert decoded == mod


class TestLeniency:
    TEXT = '[package]\nname = "a"\nversion = "0.0.1"\n[workspace]\nmembers = ["x"]\n'

    def test_unknown_keys_ignored_by_default(self) -> None:
        mod = ModFile.from_toml(self.TEXT)
        assert mod.extra == {}
        assert "workspace" not in mod.to_toml()

    def test_unknown_keys_preserved(self) -> None:
        cfg = Config(unknown_keys="preserve")
        mod = ModFile.from_toml(self.TEXT, cfg)
        assert mod.extra == {"workspace": {"members": ["x"]}}
        assert ModFile.from_toml(mod.to_toml(cfg), cfg) == mod

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(MalformedManifestError, match="workspace"):
            ModFile.from_toml(self.TEXT, Config(unknown_keys="error"))


class TestMalformed:
    @pytest.mark.parametrize("text, match", [
        ('name = "a"\n', r"\[package\]"),
        ('package = "a"\n', r"\[package\]"),
        ('[package]\nversion = "0.0.1"\n', "package.name"),
        ('[package]\nname = "a"\n', "package.version"),
        ('[package]\nname = "a"\nversion = "0.0.1"\nedition = 1\n', "edition"),
        ('[package]\nname = "a"\nversion = "0.0.1"\ninclude = "src"\n', "include"),
        ('[package]\nname = "a"\nversion = "0.0.1"\n[profile]\nentries = [1]\n', "entries"),
        ('dependencies = 1\n[package]\nname = "a"\nversion = "0.0.1"\n', "dependencies"),
        ('[package]\nname = "a"\nversion = "0.0.1"\n[dependencies]\nx = 1\n', "'x'"),
        ('[package]\nname = "a"\nversion = "0.0.1"\n[dependencies]\nx = ""\n', "'x'"),
        ('[package]\nname = "a"\nversion = "0.0.1"\n[profile]\n[profiles]\n', "profile"),
    ])
    def test_malformed(self, text: str, match: str) -> None:
        with pytest.raises(MalformedManifestError, match=match):
            ModFile.from_toml(text)

    @pytest.mark.parametrize("text", [
        '[package]\nname = "a"\nname = "b"\n',
        '[package]\nname = "a"\nversion = "1"\n[dependencies]\na = {path = }',
        "[package\n",
    ])
    def test_unparsable(self, text: str) -> None:
        with pytest.raises(MalformedManifestError, match="TOML"):
            ModFile.from_toml(text)

    def test_unknown_source_kind_carries_path(self, tmp_path: Path) -> None:
        path = tmp_path / "kcl.mod"
        path.write_text(
            '[package]\nname = "a"\nversion = "0.0.1"\n'
            '[dependencies.x]\npath = "p"\nurl = "u"\n',
            encoding="utf-8",
        )
        with pytest.raises(UnknownSourceKindError) as excinfo:
            load_mod_file(tmp_path)
        assert excinfo.value.path == str(path)
        assert str(path) in str(excinfo.value)


class TestLoadSave:
    def test_not_found(self, tmp_path: Path) -> None:
        assert not mod_file_exists(tmp_path)
        with pytest.raises(ManifestNotFoundError) as excinfo:
            load_mod_file(tmp_path)
        assert excinfo.value.code == "NOT_FOUND"

    def test_new_mod_file_store_and_load(self, tmp_path: Path) -> None:
        mod = new_mod_file("helloworld")
        assert mod.package == Package(name="helloworld", edition="v0.9.0", version="0.0.1")
        mod.dependencies.set("k8s", Dependency.from_shorthand("k8s", "1.28"))
        path = mod.store(tmp_path)
        assert path == tmp_path / "kcl.mod"
        assert mod_file_exists(tmp_path)
        assert load_mod_file(tmp_path) == mod

    def test_custom_file_name(self, tmp_path: Path, testdata: Path) -> None:
        cfg = Config(mod_file_name="package.mod")
        shutil.copy(testdata / "test_profile" / "kcl.mod", tmp_path / "package.mod")
        assert load_mod_file(tmp_path, cfg).package.name == "kpm"

    def test_invalid_utf8_is_malformed(self, tmp_path: Path) -> None:
        path = tmp_path / "kcl.mod"
        path.write_bytes(b'[package]\nname = "\xff"\nversion = "1"\n')
        with pytest.raises(MalformedManifestError, match="UTF-8") as excinfo:
            load_mod_file(tmp_path)
        assert excinfo.value.path == str(path)

    def test_oversize_is_malformed(
        self, tmp_path: Path, testdata: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        shutil.copy(testdata / "test_profile" / "kcl.mod", tmp_path / "kcl.mod")
        monkeypatch.setattr(toml_io, "MAX_TOML_SIZE", 8)
        with pytest.raises(MalformedManifestError, match="过大"):
            load_mod_file(tmp_path)
