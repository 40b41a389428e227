"""Scratch workspaces: one isolated directory per oracle invocation."""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from ..errors import ResourceError

logger = logging.getLogger(__name__)

WORKSPACE_PREFIX = "lineSearch-"


@contextmanager
def scratch_workspace(root: Path | None = None, *, prefix: str = WORKSPACE_PREFIX) -> Iterator[Path]:
    """
    Create a fresh directory and remove it on every exit path.

    Raises:
        ResourceError: if the directory cannot be created, or cannot be removed
            after a successful evaluation.
    """
    try:
        workspace = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    except OSError as exc:
        raise ResourceError(f"could not create scratch workspace under '{root}': {exc}") from exc

    logger.debug("created scratch workspace %s", workspace)
    try:
        yield workspace
    except BaseException:
        # Keep the original failure; a removal problem is only reported.
        _remove(workspace, strict=False)
        raise
    _remove(workspace, strict=True)


def stage_files(workspace: Path, sources: Iterable[Path], *, required: bool = False) -> list[Path]:
    """Copy ``sources`` into ``workspace``; missing optional files are skipped."""
    staged: list[Path] = []
    for source in sources:
        if not source.is_file():
            if required:
                raise ResourceError(f"could not stage missing file '{source}'")
            logger.debug("not staging missing file %s", source)
            continue
        try:
            staged.append(Path(shutil.copy(source, workspace)))
        except OSError as exc:
            raise ResourceError(f"could not copy '{source}' into '{workspace}': {exc}") from exc
    return staged


def _remove(workspace: Path, *, strict: bool) -> None:
    try:
        shutil.rmtree(workspace)
    except FileNotFoundError:
        return
    except OSError as exc:
        if strict:
            raise ResourceError(f"could not remove scratch workspace '{workspace}': {exc}") from exc
        logger.error("could not remove scratch workspace %s: %s", workspace, exc)
        return
    logger.debug("removed scratch workspace %s", workspace)
