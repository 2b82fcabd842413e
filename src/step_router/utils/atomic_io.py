"""Atomic JSON persistence for finished tasks."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Type, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def atomic_write_json(file_path: Path, content: str) -> None:
    """
    Write content through a sibling temp file and ``os.replace``.

    Readers see either the previous file or the complete new one.

    Raises:
        OSError: If the write or the rename fails
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, file_path)
    except OSError as e:
        logger.error(f"Failed to write {file_path}: {e}")
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def atomic_write_model(file_path: Path, model: BaseModel, indent: int = 2) -> None:
    """Atomically write a Pydantic model to JSON file."""
    atomic_write_json(file_path, model.model_dump_json(indent=indent))


def read_model(file_path: Path, model_cls: Type[ModelT]) -> ModelT:
    """Load a model written by ``atomic_write_model``."""
    return model_cls.model_validate_json(Path(file_path).read_text(encoding="utf-8"))
