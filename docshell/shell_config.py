import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

ENV_PREFIX = "DOCSHELL_"


@dataclass
class ShellConfig:
    """Connection and runtime settings for a shell instance."""
    host: str = "localhost"
    port: int = 27017
    default_database: str = "test"
    op_timeout: Optional[float] = 30.0
    backend: str = "mongo"
    backend_url: Optional[str] = None
    history_file: str = "~/.docshell_history"
    output_format: str = "json"

    @classmethod
    def field_names(cls):
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'ShellConfig':
        cfg = cls()
        cfg.update(data)
        return cfg

    @classmethod
    def load(cls, path: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None,
             environ: Optional[Mapping[str, str]] = None) -> 'ShellConfig':
        """Defaults, then the YAML file, then DOCSHELL_* variables, then explicit overrides."""
        cfg = cls()
        if path:
            text = Path(path).expanduser().read_text(encoding="utf-8")
            data = yaml.safe_load(text) or {}
            if not isinstance(data, dict):
                raise ValueError(f"config file {path} must contain a mapping")
            cfg.update(data)
        env = os.environ if environ is None else environ
        cfg.update({
            key[len(ENV_PREFIX):].lower(): value
            for key, value in env.items()
            if key.startswith(ENV_PREFIX) and key[len(ENV_PREFIX):].lower() in cls.field_names()
        })
        if overrides:
            cfg.update({k: v for k, v in overrides.items() if v is not None})
        return cfg

    def update(self, data: Mapping[str, Any]):
        names = self.field_names()
        for key, value in data.items():
            key = str(key).replace('-', '_')
            if key not in names:
                raise ValueError(f"unknown config key: {key}")
            setattr(self, key, self._coerce(key, value))

    def _coerce(self, key: str, value: Any) -> Any:
        match key:
            case "port":
                return int(value)
            case "op_timeout":
                # YAML reads a bare `off` as False
                if value is None or value is False or (isinstance(value, str) and value.strip().lower() in ("", "none", "off")):
                    return None
                return float(value)
            case "backend":
                value = str(value).lower()
                if value not in ("mongo", "http"):
                    raise ValueError(f"unknown backend: {value}")
                return value
            case "output_format":
                value = str(value).lower()
                if value not in ("json", "yaml"):
                    raise ValueError(f"unknown output format: {value}")
                return value
            case _:
                return value if value is None else str(value)

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)
