"""kdd configuration.

Two kinds of configuration live here:

* ``Settings`` -- tool-level knobs (container engine binary, default local
  registry, watch pacing...). Pydantic v2 model, overridable from the
  environment.
* ``KddConfig`` -- the project described by ``kdd.yaml``: system name,
  blocks, builders and realms. Loaded once at startup and treated as
  read-only for the process lifetime.

``kdd.yaml`` is either a single YAML document, or two documents separated by
``---``. In the latter case the first ("pre") document declares ``vars``
(``from_env`` / ``from_file``) and ``overlays``; the second is the main
document. The main document is rendered with Jinja2 against those variables
before being parsed.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from jinja2 import Environment, TemplateError
from pydantic import BaseModel, Field, ValidationError

from kdd.errors import (
    InvalidKddYamlError,
    InvalidSettingsError,
    KddError,
    NoKddFileError,
    NoSystemError,
)
from kdd.models import Block, Builder, Realm, scalar_to_str
from kdd.utils import print_error, print_info, print_warning

KDD_FILE_NAME = "kdd.yaml"
REALM_BASE_KEY = "_base_"

_DOC_SEPARATOR = re.compile(r"(?m)^---.*\n?")

# Settings field -> environment variable
_SETTINGS_ENV = {
    "watch_spawn_delay": "KDD_WATCH_DELAY",
    "default_registry": "KDD_DEFAULT_REGISTRY",
    "container_engine": "KDD_CONTAINER_ENGINE",
    "kubectl_binary": "KDD_KUBECTL",
}


class Settings(BaseModel):
    """Tool settings (not project data)."""

    watch_spawn_delay: float = Field(
        default=2.0, ge=0.0, description="Seconds between two watcher starts"
    )
    default_registry: str = Field(
        default="localhost:5000", description="Registry used to tag locally built images"
    )
    container_engine: str = Field(default="docker")
    kubectl_binary: str = Field(default="kubectl")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            KDD_WATCH_DELAY, KDD_DEFAULT_REGISTRY, KDD_CONTAINER_ENGINE, KDD_KUBECTL.
        """
        kwargs: dict[str, Any] = {
            field: os.environ[variable]
            for field, variable in _SETTINGS_ENV.items()
            if os.environ.get(variable)
        }
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            error = exc.errors()[0]
            variable = _SETTINGS_ENV.get(str(error["loc"][0]), "KDD_*")
            raise InvalidSettingsError(variable, error["msg"]) from exc


class KddConfig(BaseModel):
    """A loaded kdd project."""

    dir: Path = Field(default=Path("./"))
    system: str
    block_base_dir: Optional[str] = None
    image_tag: Optional[str] = None
    blocks: list[Block] = Field(default_factory=list)
    builders: list[Builder] = Field(default_factory=list)
    realms: dict[str, Realm] = Field(default_factory=dict)
    vars: dict[str, str] = Field(default_factory=dict)

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def block_dir(self, block: Block) -> Path:
        """Directory of *block*, relative to the process cwd when ``dir`` is."""
        if block.dir is not None:
            path = Path(block.dir)
        elif self.block_base_dir is not None:
            path = Path(self.block_base_dir) / block.name
        else:
            path = Path(block.name)
        return self.dir / path

    def rel_path(self, block: Block, path: str) -> Path:
        """Resolve *path* against the block dir when it starts with ``./``,
        otherwise against the kdd dir."""
        if path.startswith("./"):
            return self.block_dir(block) / path[2:]
        return self.dir / path

    # ------------------------------------------------------------------
    # Image naming
    # ------------------------------------------------------------------

    @property
    def image_tag_or_default(self) -> str:
        return self.image_tag or "default"

    def image_name(self, block: Block) -> str:
        return f"{self.system}-{block.name}"

    # ------------------------------------------------------------------
    # Realms
    # ------------------------------------------------------------------

    def realm_for_context(self, context: str) -> Optional[Realm]:
        for realm in self.realms.values():
            if realm.context == context:
                return realm
        return None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, dir: str | Path) -> "KddConfig":
        """Load ``<dir>/kdd.yaml`` (and its overlays).

        Raises:
            NoKddFileError: If there is no ``kdd.yaml`` in *dir*.
            InvalidKddYamlError: If the file is not valid or has more than
                two documents.
            NoSystemError: If the main document has no ``system``.
        """
        dir = Path(dir)
        kdd_path = dir / KDD_FILE_NAME
        if not kdd_path.is_file():
            raise NoKddFileError(str(dir))

        root_vars: dict[str, str] = {
            "dir": str(dir),
            "dir_abs": str(dir.resolve()),
        }

        main_text, extra_vars, overlays = _split_raw_part(dir, kdd_path.read_text(encoding="utf-8"))
        root_vars.update(extra_vars)

        main_doc = _parse_part(main_text, root_vars)

        system = main_doc.get("system")
        if not isinstance(system, str):
            raise NoSystemError()
        root_vars["system"] = system

        realm_base, realms = _parse_realms(main_doc.get("realms"), None)

        for overlay_text in overlays:
            overlay_main, overlay_vars, _ = _split_raw_part(dir, overlay_text)
            root_vars.update(overlay_vars)
            overlay_doc = _parse_part(overlay_main, root_vars)
            _, overlay_realms = _parse_realms(overlay_doc.get("realms"), realm_base)
            realms.update(overlay_realms)

        return cls(
            dir=dir,
            system=system,
            block_base_dir=main_doc.get("block_base_dir"),
            image_tag=scalar_to_str(main_doc.get("image_tag")),
            blocks=_parse_list(main_doc.get("blocks"), Block.from_yaml),
            builders=_parse_list(main_doc.get("builders"), Builder.from_yaml),
            realms=realms,
            vars=root_vars,
        )


# ---------------------------------------------------------------------------
# Raw part: pre document (vars, overlays) + main document text
# ---------------------------------------------------------------------------


def _split_raw_part(dir: Path, content: str) -> tuple[str, dict[str, str], list[str]]:
    """Split a kdd file into ``(main_text, vars, overlay_texts)``."""
    splits = _DOC_SEPARATOR.split(content)
    if len(splits) == 1:
        return splits[0], {}, []
    if len(splits) != 2:
        raise InvalidKddYamlError(
            "kdd.yaml must have one or two documents (one for vars and the other for the document itself)"
        )

    pre_text, main_text = splits
    try:
        pre_doc = yaml.safe_load(pre_text) or {}
    except yaml.YAMLError as exc:
        raise InvalidKddYamlError(f"kdd.yaml failed to parse. Cause: {exc}") from exc
    if not isinstance(pre_doc, dict):
        pre_doc = {}

    return main_text, _load_vars(dir, pre_doc), _load_overlays(dir, pre_doc)


def _load_vars(dir: Path, pre_doc: dict[str, Any]) -> dict[str, str]:
    vars: dict[str, str] = {}
    for item in pre_doc.get("vars") or []:
        if not isinstance(item, dict):
            continue
        has_file = "from_file" in item
        has_env = "from_env" in item
        if has_file and has_env:
            print_warning("KDD WARNING - vars items cannot have from_file and from_env. Skip")
        elif has_file:
            vars.update(_load_vars_from_file(dir, item))
        elif has_env:
            vars.update(_load_vars_from_env(item))
        else:
            print_warning("KDD WARNING - no valid vars yaml item. Skip.")
    return vars


def _load_vars_from_env(item: dict[str, Any]) -> dict[str, str]:
    names = item.get("from_env") or []
    return {name: os.environ[name] for name in names if isinstance(name, str) and name in os.environ}


def _load_vars_from_file(dir: Path, item: dict[str, Any]) -> dict[str, str]:
    file = item.get("from_file")
    extract = item.get("extract")
    if not isinstance(file, str) or not isinstance(extract, list):
        return {}

    path = dir / file
    if path.suffix.lower() != ".json":
        print_warning(f"KDD WARNING - file {path} not supported as a variable source. - SKIP")
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        print_warning(f"KDD WARNING - Cannot read from {path} because {exc} - SKIP")
        return {}
    except json.JSONDecodeError as exc:
        print_warning(f"KDD WARNING - Invalid json for {path} ex: {exc} - SKIP")
        return {}

    vars: dict[str, str] = {}
    for key in extract:
        value = data.get(key) if isinstance(data, dict) else None
        if isinstance(key, str) and isinstance(value, str):
            vars[key] = value
    return vars


def _load_overlays(dir: Path, pre_doc: dict[str, Any]) -> list[str]:
    files = pre_doc.get("overlays") or []
    if isinstance(files, str):
        files = [files]

    overlays: list[str] = []
    for file in files:
        path = dir / file
        if path.is_file():
            print_info(f"KDD INFO - overlay file {file} loaded")
            overlays.append(path.read_text(encoding="utf-8"))
    return overlays


# ---------------------------------------------------------------------------
# Main document
# ---------------------------------------------------------------------------

_jinja = Environment(keep_trailing_newline=True)


def _parse_part(text: str, root_vars: dict[str, str]) -> dict[str, Any]:
    """Render *text* with the root vars, parse it, and add its top-level
    string values to *root_vars*."""
    try:
        rendered = _jinja.from_string(text).render(**root_vars)
    except TemplateError as exc:
        raise InvalidKddYamlError(f"kdd.yaml failed to parse. Cause: {exc}") from exc

    try:
        doc = yaml.safe_load(rendered) or {}
    except yaml.YAMLError as exc:
        raise InvalidKddYamlError(f"kdd.yaml failed to parse. Cause: {exc}") from exc
    if not isinstance(doc, dict):
        raise InvalidKddYamlError("kdd.yaml main document must be a mapping")

    for key, value in doc.items():
        if isinstance(key, str) and isinstance(value, str):
            root_vars[key] = value
    return doc


def _parse_list(items: Any, parse: Any) -> list[Any]:
    if not isinstance(items, list):
        return []
    return [parsed for parsed in (parse(item) for item in items) if parsed is not None]


def _parse_realms(
    y_realms: Any,
    inherited_base: Optional[dict[str, Any]],
) -> tuple[Optional[dict[str, Any]], dict[str, Realm]]:
    """Parse the ``realms`` mapping.

    ``_base_`` (of this document, and *inherited_base* from the main document
    when parsing an overlay) only fills keys the realm does not define.
    """
    if not isinstance(y_realms, dict):
        return None, {}

    base = y_realms.get(REALM_BASE_KEY)
    base = base if isinstance(base, dict) else None

    realms: dict[str, Realm] = {}
    for name, data in y_realms.items():
        if name == REALM_BASE_KEY or not isinstance(name, str):
            continue
        merged = dict(data) if isinstance(data, dict) else {}
        for defaults in (base, inherited_base):
            if defaults:
                for key, value in defaults.items():
                    merged.setdefault(key, value)
        try:
            realms[name] = Realm.from_yaml(name, merged)
        except KddError as exc:
            print_error(f"KDD ERROR - Fail to parse realm {name}. Cause: {exc}")
    return base, realms
