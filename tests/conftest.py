"""Shared pytest fixtures for the kdd test suite.

Provides reusable fixtures for:
- Temporary kdd project trees (block dirs, trigger files, Dockerfiles)
- In-memory ``KddConfig`` factories
- A realistic ``kdd.yaml`` with vars, overlays and realms
- Mock subprocess helpers
"""

from __future__ import annotations

import json
import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from kdd.config import KddConfig
from kdd.models import Block, Builder, Exec, Realm, RunOccurrence


# ---------------------------------------------------------------------------
# Project trees
# ---------------------------------------------------------------------------

def _touch(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _make_builder(
    name: str,
    when_file: Optional[str] = None,
    cmd: str = "echo",
    run: RunOccurrence = RunOccurrence.BLOCK,
    replace: Optional[str] = None,
    args: Optional[list[str]] = None,
    watch_args: Optional[list[str]] = None,
    cwd: str = "block_dir",
) -> Builder:
    """Builder built from the same dict shape as ``kdd.yaml``."""
    exec_data: dict[str, Any] = {"cmd": cmd, "args": args or [name], "cwd": cwd}
    if watch_args is not None:
        exec_data["watch_args"] = watch_args
    return Builder(
        name=name,
        when_file=when_file,
        run=run,
        replace=replace,
        exec=Exec.from_dict(exec_data, builder_name=name),
    )


@pytest.fixture
def write_file() -> Callable[..., Path]:
    """Write a file (creating its parent dirs) and return its path."""
    return _touch


@pytest.fixture
def make_builder() -> Callable[..., Builder]:
    """Factory for builders, see ``_make_builder`` for the parameters."""
    return _make_builder


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., KddConfig]:
    """Factory building a ``KddConfig`` rooted in a temp dir.

    Every block gets its directory created under ``services/``. ``files``
    maps a block name to files to create in its dir (``"Dockerfile"``,
    ``"package.json"``...).

    Usage:
        def test_something(make_config, make_builder):
            config = make_config(
                blocks=[Block(name="db"), Block(name="web", dependencies=["db"])],
                builders=[make_builder("npm", when_file="./package.json")],
                files={"db": ["package.json"], "web": ["package.json"]},
            )
    """
    def factory(
        blocks: list[Block],
        builders: Optional[list[Builder]] = None,
        files: Optional[dict[str, list[str]]] = None,
        realms: Optional[dict[str, Realm]] = None,
        system: str = "cstar",
        image_tag: Optional[str] = None,
    ) -> KddConfig:
        config = KddConfig(
            dir=tmp_path,
            system=system,
            block_base_dir="services",
            image_tag=image_tag,
            blocks=blocks,
            builders=builders or [],
            realms=realms or {},
        )
        for block in blocks:
            config.block_dir(block).mkdir(parents=True, exist_ok=True)
        for block_name, names in (files or {}).items():
            block = next(b for b in blocks if b.name == block_name)
            for name in names:
                _touch(config.block_dir(block) / name)
        return config

    return factory


@pytest.fixture
def kdd_project(tmp_path: Path) -> Path:
    """A kdd project dir with a two-document ``kdd.yaml``, an overlay, a
    json vars file and two realms inheriting from ``_base_``."""
    project = tmp_path / "app"
    project.mkdir()

    _touch(project / "package.json", json.dumps({"version": "1.2.3", "name": "cstar"}))

    _touch(
        project / "kdd.yaml",
        textwrap.dedent(
            """\
            overlays:
              - kdd-override.yaml
            vars:
              - from_file: package.json
                extract: ["version"]
              - from_env: ["KDD_TEST_ENV_VAR"]
            ---
            system: cstar
            block_base_dir: services/
            image_tag: "{{ version }}"
            blocks:
              - db
              - name: web
                dir: frontends/web/
                dependencies: ["db", "_common"]
                replicas: 2
              - name: web-server
                dependencies: ["db"]
              - _common
            builders:
              - name: npm_install
                when_file: ./package.json
                exec:
                  cmd: npm
                  args: ["install", "--color"]
              - name: tsc
                when_file: ./tsconfig.json
                replace: npm_install
                exec:
                  cmd: node_modules/.bin/tsc
                  args: ["-p", "./tsconfig.json"]
                  watch_args: ["-w", "-p", "./tsconfig.json"]
              - name: cargo_build
                run: session
                when_file: Cargo.toml
                exec:
                  cmd: cargo
                  cwd: base_dir
                  args: ["build"]
              - name: orphan
                exec:
                  cmd: echo
            realms:
              _base_:
                yaml_dir: k8s/base/
                ext_port: 8080
                env_label: "{{ KDD_TEST_ENV_VAR }}"
              dev:
                context: docker-desktop
                confirm_delete: false
                dev_stuff: Some dev stuff
                ext_port: 9090
              aws:
                context: arn:aws:eks:us-west-2:123456789:cluster/cstar-cluster
                registry: 123456789.dkr.ecr.us-west-2.amazonaws.com/
                profile: jc-root
            """
        ),
    )

    _touch(
        project / "kdd-override.yaml",
        textwrap.dedent(
            """\
            realms:
              app-prod:
                context: gke_cstar-prod_us-west1-a_cstar-cluster
                registry: gcr.io/cstar-prod/
                project: cstar-prod
                prod_stuff: Some prod stuff
            """
        ),
    )
    return project


# ---------------------------------------------------------------------------
# Mock Subprocess (generic)
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory
