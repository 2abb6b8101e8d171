"""Node.js adapter generation for the packaged archive."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from .models import FunctionDeclaration, sanitized_name

PRELUDE_PATH = Path(__file__).resolve().parent / "resources" / "index.js"
GENERATED_MARKER = "// DO NOT EDIT - CONTENT UNTIL EOF IS AUTOMATICALLY GENERATED\n"


def load_prelude(path: Path | None = None) -> str:
    return (path or PRELUDE_PATH).read_text(encoding="utf-8")


def export_entry(function: FunctionDeclaration) -> str:
    # exports["mainhello"] = createForwarder("/main.hello");
    export_name = sanitized_name(function.name)
    return f"exports[{json.dumps(export_name)}] = createForwarder({json.dumps('/' + function.name)});\n"


def render_adapter(
    functions: Iterable[FunctionDeclaration],
    binary_name: str,
    *,
    prelude: str | None = None,
) -> str:
    """Append one export per function (declaration order) and the binary name to the prelude."""
    source = prelude if prelude is not None else load_prelude()
    if source and not source.endswith("\n"):
        source += "\n"
    source += GENERATED_MARKER
    for function in functions:
        source += export_entry(function)
    source += f"BINARY_NAME={json.dumps(binary_name)};\n"
    return source
