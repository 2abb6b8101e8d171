"""Compile the service binary and package it with the Node.js adapter."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .adapter import load_prelude, render_adapter
from .config import ProvisionConfig
from .errors import BuildError
from .models import FunctionDeclaration, sanitized_name

logger = logging.getLogger("stack_provisioner.builder")

ADAPTER_ENTRY_NAME = "index.js"
# Fixed entry timestamp so identical inputs produce identical archive bytes.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_EXECUTABLE_MODE = 0o100755
_REGULAR_MODE = 0o100644


@dataclass(frozen=True)
class PackagedArchive:
    path: Path
    executable_name: str
    adapter_source: str
    size_bytes: int


def executable_name(service_name: str, arch: str) -> str:
    return f"{sanitized_name(service_name)}.lambda.{arch}"


def _zip_info(arcname: str, mode: int) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(arcname, date_time=_ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.create_system = 3
    info.external_attr = (mode & 0xFFFF) << 16
    return info


class ArtifactBuilder:
    def __init__(self, config: ProvisionConfig, *, prelude: str | None = None) -> None:
        self.config = config
        # {output} must name the same file from inside the compiler's cwd.
        self.work_dir = Path(config.work_dir).resolve()
        self._prelude = prelude

    def build(self, service_name: str, functions: Sequence[FunctionDeclaration]) -> PackagedArchive:
        binary_name = executable_name(service_name, self.config.target_arch)
        binary_path = self.work_dir / binary_name
        self.compile(binary_path)
        try:
            return self.package(service_name, functions, binary_path)
        finally:
            binary_path.unlink(missing_ok=True)

    def compile(self, output: Path) -> None:
        command = [part.replace("{output}", str(output)) for part in self.config.build_command]
        logger.info("Compiling binary: %s (%s/%s)", output.name, self.config.target_os, self.config.target_arch)
        logger.debug("Build command: %s", command)
        try:
            result = subprocess.run(
                command,
                cwd=str(self.work_dir),
                env=self.config.compiler_env(),
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise BuildError("COMPILER_MISSING", command[0] if command else "") from exc
        output_text = "\n".join(part.strip() for part in (result.stdout, result.stderr) if part and part.strip())
        if output_text:
            logger.debug("Compiler output:\n%s", output_text)
        if result.returncode != 0:
            output.unlink(missing_ok=True)
            raise BuildError("COMPILE_FAILED", output_text or f"exit status {result.returncode}")

    def package(
        self,
        service_name: str,
        functions: Sequence[FunctionDeclaration],
        binary_path: Path,
    ) -> PackagedArchive:
        try:
            stat = binary_path.stat()
        except OSError as exc:
            raise BuildError("BINARY_STAT_FAILED", str(binary_path)) from exc
        logger.debug("Executable binary size (MB): %s", stat.st_size // (1024 * 1024))

        prelude = self._prelude if self._prelude is not None else load_prelude()
        adapter_source = render_adapter(functions, binary_path.name, prelude=prelude)
        logger.debug("Generated Node.js adapter:\n%s", adapter_source)

        try:
            handle, raw_path = tempfile.mkstemp(
                prefix=f"{sanitized_name(service_name)}-",
                suffix=".zip",
                dir=str(self.work_dir),
            )
            os.close(handle)
        except OSError as exc:
            raise BuildError("ARCHIVE_CREATE_FAILED", str(exc)) from exc
        archive_path = Path(raw_path)

        logger.info("Creating ZIP archive for upload: %s", archive_path)
        try:
            with zipfile.ZipFile(archive_path, mode="w") as archive:
                self._write_entry(archive, _zip_info(binary_path.name, _EXECUTABLE_MODE), binary_path)
                try:
                    archive.writestr(_zip_info(ADAPTER_ENTRY_NAME, _REGULAR_MODE), adapter_source.encode("utf-8"))
                except OSError as exc:
                    raise BuildError("ARCHIVE_ENTRY_FAILED", ADAPTER_ENTRY_NAME) from exc
        except BuildError:
            archive_path.unlink(missing_ok=True)
            raise
        except OSError as exc:
            archive_path.unlink(missing_ok=True)
            raise BuildError("ARCHIVE_WRITE_FAILED", f"{archive_path} ({exc})") from exc

        return PackagedArchive(
            path=archive_path,
            executable_name=binary_path.name,
            adapter_source=adapter_source,
            size_bytes=archive_path.stat().st_size,
        )

    def _write_entry(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, source: Path) -> None:
        try:
            with source.open("rb") as reader, archive.open(info, mode="w") as writer:
                shutil.copyfileobj(reader, writer)
        except OSError as exc:
            raise BuildError("ARCHIVE_ENTRY_FAILED", info.filename) from exc
