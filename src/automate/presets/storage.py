"""Filesystem storage for preset documents."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from automate.errors import LoadError, PresetNotFoundError, SchemaValidationError
from automate.presets.schema import check_preset, validate_preset
from automate.presets.types import Preset, PresetSummary

logger = logging.getLogger(__name__)

PRESET_SUFFIX = ".json"


def preset_file_name(name: str) -> str:
    """Canonical file name for a preset display name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    if not slug:
        raise ValueError(f"Cannot derive a file name from preset name {name!r}")
    return f"{slug}{PRESET_SUFFIX}"


class PresetStorage:
    """Loads, lists and saves presets in a directory.

    Example:
        storage = PresetStorage(Path("~/.automate/presets").expanduser())
        preset = storage.load_preset("nightly-backup")
    """

    def __init__(self, presets_dir: Path) -> None:
        self._presets_dir = presets_dir

    @property
    def presets_dir(self) -> Path:
        return self._presets_dir

    def ensure(self) -> None:
        self._presets_dir.mkdir(parents=True, exist_ok=True)

    def resolve(self, name_or_path: str) -> Path:
        """Resolve a preset name or literal path to an existing file.

        Resolution order:
            1. An existing .json file at the given path.
            2. <presets_dir>/<name>.json
            3. <presets_dir>/<name>

        Raises:
            PresetNotFoundError: If nothing matches.
        """
        direct = Path(name_or_path).expanduser()
        if direct.suffix == PRESET_SUFFIX and direct.is_file():
            return direct.resolve()

        candidates = [
            self._presets_dir / f"{name_or_path}{PRESET_SUFFIX}",
            self._presets_dir / name_or_path,
        ]
        for candidate in candidates:
            if candidate.is_file():
                return candidate

        searched = [str(direct.resolve())] + [str(c) for c in candidates]
        raise PresetNotFoundError(name_or_path, searched)

    def load_preset(self, name_or_path: str) -> Preset:
        """Load and fully validate a preset.

        Raises:
            PresetNotFoundError: If the preset cannot be found.
            SchemaValidationError: If the file is not valid JSON or fails
                structural or graph validation.
        """
        path = self.resolve(name_or_path)
        raw = self._read_json(path)
        preset = check_preset(raw, source=str(path))
        logger.debug(
            "preset_loaded",
            extra={"preset.name": preset.name, "file.path": str(path)},
        )
        return preset

    def list_presets(self) -> list[PresetSummary]:
        """List presets in the directory.

        Files that fail to parse or validate are skipped with a warning;
        graph integrity is not checked here.
        """
        if not self._presets_dir.is_dir():
            return []

        summaries: list[PresetSummary] = []
        for path in sorted(self._presets_dir.glob(f"*{PRESET_SUFFIX}")):
            try:
                preset = validate_preset(self._read_json(path), source=str(path))
            except LoadError as e:
                logger.warning(
                    "preset_skipped",
                    extra={"file.path": str(path), "error.message": str(e)},
                )
                continue
            summaries.append(
                PresetSummary(
                    name=preset.name,
                    file_name=path.name,
                    description=preset.description,
                    step_count=len(preset.steps),
                )
            )
        return summaries

    def save_preset(self, preset: Preset) -> Path:
        """Write a preset to <presets_dir>/<slug>.json and return the path."""
        self.ensure()
        path = self._presets_dir / preset_file_name(preset.name)
        path.write_text(
            json.dumps(preset.to_document(), indent=2) + "\n", encoding="utf-8"
        )
        logger.info(
            "preset_saved",
            extra={"preset.name": preset.name, "file.path": str(path)},
        )
        return path

    @staticmethod
    def _read_json(path: Path) -> object:
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise SchemaValidationError([f"cannot read file: {e}"], source=str(path)) from e
        except UnicodeDecodeError as e:
            raise SchemaValidationError(
                [f"file is not valid UTF-8: {e.reason} at byte {e.start}"], source=str(path)
            ) from e
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise SchemaValidationError(
                [f"invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})"],
                source=str(path),
            ) from e
