import hashlib
import os
from pathlib import Path
from typing import Optional

import platformdirs

ENCODER_SUFFIXES = (
    "-encoder.onnx",
    "-encoder.int8.onnx",
    "-encoder.fp16.onnx",
    "encoder.onnx",
    "encoder.int8.onnx",
    "encoder.fp16.onnx",
)


def get_models_dir() -> Path:
    return platformdirs.user_data_path("scribeflow", appauthor=False) / "models"


def find_file_by_suffix(directory, *suffixes: str) -> Optional[str]:
    try:
        for filename in sorted(os.listdir(directory)):
            for suffix in suffixes:
                if filename.endswith(suffix):
                    return os.path.join(directory, filename)
    except OSError:
        pass
    return None


def has_file_with_suffix(directory, *suffixes: str) -> bool:
    return find_file_by_suffix(directory, *suffixes) is not None


def find_file_exact(directory, candidates: list[str]) -> Optional[str]:
    for name in candidates:
        path = os.path.join(directory, name)
        if os.path.exists(path):
            return path
    return None


def is_valid_model_dir(model_path) -> bool:
    if not os.path.isdir(model_path):
        return False
    has_tokens = has_file_with_suffix(model_path, "-tokens.txt", "tokens.txt")
    has_encoder = has_file_with_suffix(model_path, *ENCODER_SUFFIXES)
    return has_tokens and has_encoder


def compute_directory_checksum(directory) -> str:
    """sha256 over every file below ``directory`` in a stable order."""
    digest = hashlib.sha256()
    root = Path(directory)
    for path in sorted(p for p in root.rglob("*") if p.is_file()):
        digest.update(path.relative_to(root).as_posix().encode("utf-8"))
        with open(path, "rb") as f:
            for block in iter(lambda: f.read(1024 * 1024), b""):
                digest.update(block)
    return f"sha256:{digest.hexdigest()}"
