from __future__ import annotations

import sys
import zipfile
from pathlib import Path

import pytest

import stack_provisioner.builder as builder_module
from stack_provisioner.adapter import GENERATED_MARKER, render_adapter
from stack_provisioner.builder import ArtifactBuilder, executable_name
from stack_provisioner.config import ProvisionConfig
from stack_provisioner.errors import BuildError
from stack_provisioner.functions import LambdaFunction

PRELUDE = "var BINARY_NAME = 'service.lambda.amd64';\n"


def _write_compiler(script_path: Path, *, fail: bool = False, produce: bool = True) -> None:
    lines = ["import os, sys", "from pathlib import Path"]
    if fail:
        lines += ["print('main.go:12: undefined: helloWorld', file=sys.stderr)", "sys.exit(2)"]
    elif produce:
        lines += [
            "assert os.environ['GOOS'] == 'linux'",
            "assert os.environ['GOARCH'] == 'amd64'",
            "Path(sys.argv[1]).write_bytes(b'\\x7fELF stub binary')",
            "print('build ok')",
        ]
    script_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _builder(tmp_path: Path, **compiler: bool) -> ArtifactBuilder:
    script = tmp_path / "fake_compiler.py"
    _write_compiler(script, **compiler)
    config = ProvisionConfig(work_dir=str(tmp_path), build_command=(sys.executable, str(script), "{output}"))
    return ArtifactBuilder(config, prelude=PRELUDE)


def _functions() -> list[LambdaFunction]:
    return [
        LambdaFunction(name="main.hello", role_name="exec"),
        LambdaFunction(name="main.goodbye", role_name="exec"),
    ]


def test_adapter_exports_follow_declaration_order() -> None:
    source = render_adapter(_functions(), "svc.lambda.amd64", prelude=PRELUDE)

    assert source.startswith(PRELUDE + GENERATED_MARKER)
    assert source.splitlines()[-3:] == [
        'exports["mainhello"] = createForwarder("/main.hello");',
        'exports["maingoodbye"] = createForwarder("/main.goodbye");',
        'BINARY_NAME="svc.lambda.amd64";',
    ]
    reordered = render_adapter(list(reversed(_functions())), "svc.lambda.amd64", prelude=PRELUDE)
    assert reordered != source


def test_default_prelude_defines_forwarder() -> None:
    source = render_adapter(_functions(), "svc.lambda.amd64")
    assert "function createForwarder" in source
    assert source.endswith('BINARY_NAME="svc.lambda.amd64";\n')


def test_build_packages_binary_and_adapter(tmp_path: Path) -> None:
    builder = _builder(tmp_path)

    archive = builder.build("hello-service", _functions())

    assert archive.executable_name == "helloservice.lambda.amd64"
    assert archive.path.parent == tmp_path
    assert archive.path.name.startswith("helloservice-")
    assert archive.path.suffix == ".zip"
    with zipfile.ZipFile(archive.path) as zf:
        assert zf.namelist() == ["helloservice.lambda.amd64", "index.js"]
        assert zf.read("helloservice.lambda.amd64") == b"\x7fELF stub binary"
        assert zf.read("index.js").decode("utf-8") == archive.adapter_source
        mode = (zf.getinfo("helloservice.lambda.amd64").external_attr >> 16) & 0o777
        assert mode == 0o755
    assert not (tmp_path / "helloservice.lambda.amd64").exists()


def test_repeated_builds_are_byte_identical(tmp_path: Path) -> None:
    builder = _builder(tmp_path)

    first = builder.build("svc", _functions())
    second = builder.build("svc", _functions())

    assert first.path != second.path
    assert first.adapter_source == second.adapter_source
    assert first.path.read_bytes() == second.path.read_bytes()


def test_compile_failure_carries_compiler_output(tmp_path: Path) -> None:
    builder = _builder(tmp_path, fail=True)

    with pytest.raises(BuildError, match="COMPILE_FAILED") as excinfo:
        builder.build("svc", _functions())

    assert "undefined: helloWorld" in str(excinfo.value)
    assert not list(tmp_path.glob("*.zip"))


def test_missing_compiler_is_build_error(tmp_path: Path) -> None:
    config = ProvisionConfig(work_dir=str(tmp_path), build_command=("definitely-not-a-compiler-xyz", "{output}"))

    with pytest.raises(BuildError, match="COMPILER_MISSING"):
        ArtifactBuilder(config, prelude=PRELUDE).build("svc", _functions())


def test_missing_binary_fails_stat(tmp_path: Path) -> None:
    builder = _builder(tmp_path, produce=False)

    with pytest.raises(BuildError, match="BINARY_STAT_FAILED"):
        builder.build("svc", _functions())

    assert not list(tmp_path.glob("*.zip"))


def test_archive_creation_failure_is_build_error(tmp_path: Path) -> None:
    builder = _builder(tmp_path)
    binary = tmp_path / executable_name("svc", "amd64")
    binary.write_bytes(b"binary")
    builder.work_dir = tmp_path / "missing-dir"

    with pytest.raises(BuildError, match="ARCHIVE_CREATE_FAILED"):
        builder.package("svc", _functions(), binary)


def test_relative_work_dir_is_resolved_before_compiling(tmp_path: Path, monkeypatch) -> None:
    script = tmp_path / "fake_compiler.py"
    _write_compiler(script)
    (tmp_path / "build").mkdir()
    monkeypatch.chdir(tmp_path)
    config = ProvisionConfig(work_dir="build", build_command=(sys.executable, str(script), "{output}"))

    archive = ArtifactBuilder(config, prelude=PRELUDE).build("svc", _functions())

    assert archive.path.parent == (tmp_path / "build").resolve()
    assert not (tmp_path / "build" / "build").exists()
    assert sorted(path.name for path in (tmp_path / "build").iterdir()) == [archive.path.name]


def test_binary_entry_write_failure_removes_partial_archive(tmp_path: Path, monkeypatch) -> None:
    builder = _builder(tmp_path)

    def broken_copy(*_args, **_kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(builder_module.shutil, "copyfileobj", broken_copy)

    with pytest.raises(BuildError, match="ARCHIVE_ENTRY_FAILED:svc.lambda.amd64"):
        builder.build("svc", _functions())

    assert not list(tmp_path.glob("*.zip"))
    assert not (tmp_path / "svc.lambda.amd64").exists()


def test_adapter_entry_write_failure_removes_partial_archive(tmp_path: Path, monkeypatch) -> None:
    builder = _builder(tmp_path)

    def broken_writestr(self, *_args, **_kwargs):
        raise OSError(5, "Input/output error")

    monkeypatch.setattr(builder_module.zipfile.ZipFile, "writestr", broken_writestr)

    with pytest.raises(BuildError, match="ARCHIVE_ENTRY_FAILED:index.js"):
        builder.build("svc", _functions())

    assert not list(tmp_path.glob("*.zip"))
    assert not (tmp_path / "svc.lambda.amd64").exists()
