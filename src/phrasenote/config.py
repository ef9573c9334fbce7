"""
YAML configuration loading for phrasenote.

Example file:

    capacity_bytes: 5242880
    scan_batch_size: 100
    similar_count: 5
    sorters:
      - name: English
        prefix: 1
        suffix: 2
        insertables: "lst"
        similars: ["aeiou"]
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from phrasenote.exceptions import ConfigError
from phrasenote.models import Sorter
from phrasenote.store import DEFAULT_CAPACITY_BYTES


@dataclass
class IndexConfig:
    """Tunable parameters of a phrase index."""
    capacity_bytes: int = DEFAULT_CAPACITY_BYTES
    scan_batch_size: int = 100
    similar_count: int = 5
    sorters: List[Sorter] = field(default_factory=list)

    def sorter_named(self, name: str) -> Optional[Sorter]:
        for sorter in self.sorters:
            if sorter.name == name:
                return sorter
        return None


def load_config(
    source: Union[str, Path, Dict[str, Any], None] = None,
) -> IndexConfig:
    """Load configuration from a YAML file, YAML string or dictionary.

    Args:
        source: Path to YAML file, YAML string, parsed dictionary, or None
            for the defaults

    Returns:
        IndexConfig object

    Raises:
        ConfigError: If the source cannot be parsed or is invalid
        FileNotFoundError: If the file does not exist
    """
    if source is None:
        return IndexConfig()
    if isinstance(source, dict):
        data = source
    elif isinstance(source, Path) or _is_file_path(source):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = _load_yaml(f.read())
    else:
        data = _load_yaml(source)

    return _parse_config(data)


def _is_file_path(s: str) -> bool:
    """Check if a string looks like a file path."""
    if "\n" in s:
        return False
    if "/" in s or "\\" in s:
        return True
    return s.endswith((".yaml", ".yml"))


def _load_yaml(s: str) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(s)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line_num = mark.line + 1 if mark else None
        raise ConfigError(f"Invalid YAML: {e}", line=line_num) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("YAML root must be a mapping (dictionary)")
    return data


def _parse_config(data: Dict[str, Any]) -> IndexConfig:
    config = IndexConfig()
    for name in ("capacity_bytes", "scan_batch_size", "similar_count"):
        if name in data:
            value = data[name]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"Field '{name}' must be a positive integer")
            setattr(config, name, value)

    sorters = data.get("sorters") or []
    if not isinstance(sorters, list):
        raise ConfigError("Field 'sorters' must be a list")
    for i, entry in enumerate(sorters):
        config.sorters.append(_parse_sorter(entry, i))

    unknown = set(data) - {
        "capacity_bytes", "scan_batch_size", "similar_count", "sorters"
    }
    if unknown:
        raise ConfigError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    return config


def _parse_sorter(entry: Any, index: int) -> Sorter:
    if not isinstance(entry, dict):
        raise ConfigError(f"Sorter #{index + 1} must be a mapping")
    name = entry.get("name")
    if not name or not isinstance(name, str):
        raise ConfigError(f"Sorter #{index + 1}: missing required field 'name'")
    for margin in ("prefix", "suffix"):
        value = entry.get(margin, 0)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ConfigError(
                f"Sorter {name!r}: '{margin}' must be a non-negative integer"
            )
    similars = entry.get("similars") or []
    if not isinstance(similars, list) or not all(isinstance(g, str) for g in similars):
        raise ConfigError(f"Sorter {name!r}: 'similars' must be a list of strings")
    return Sorter(
        name=" ".join(name.split()),
        pk=-1,
        description=str(entry.get("description") or ""),
        prefix=entry.get("prefix", 0),
        suffix=entry.get("suffix", 0),
        insertables=str(entry.get("insertables") or ""),
        similars=tuple(similars),
    )
