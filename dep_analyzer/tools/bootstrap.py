"""Version enforcement and self-bootstrapping of external tools."""

from __future__ import annotations

import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath

import httpx
import structlog

from dep_analyzer.exceptions import (
    BootstrapError,
    BootstrapErrorKind,
    ProcessError,
    VersionError,
)
from dep_analyzer.tools.base import CommandLineTool, VersionCheck, check_version
from dep_analyzer.tools.version import VersionRequirement

log = structlog.get_logger("dep_analyzer.tools")

_DOWNLOAD_TIMEOUT = 300


def ensure_tool(
    tool: CommandLineTool,
    requirement: VersionRequirement | None = None,
    *,
    ignore_mismatch: bool | None = None,
    allow_bootstrap: bool = True,
) -> VersionCheck:
    """Make sure *tool* is present in a version satisfying *requirement*.

    If the tool is missing or incompatible and no explicit install path was
    configured, a bootstrappable tool installs a compliant copy. The
    bootstrapped copy is checked again and rejected with
    ``BootstrapError(VERSION_STILL_MISMATCHED)`` if it still does not fit.
    """
    requirement = requirement or tool.version_requirement
    name = tool.identity.name

    if tool.is_available():
        try:
            return check_version(tool, requirement, ignore_mismatch=ignore_mismatch)
        except VersionError as e:
            if tool.identity.install_path is not None:
                # An explicitly configured tool is never replaced.
                raise
            reason = str(e)
    else:
        reason = f"'{name}' was not found in PATH."

    if not tool.supports_bootstrap:
        raise BootstrapError(
            BootstrapErrorKind.NOT_SUPPORTED,
            f"{reason} Bootstrapping '{name}' is not supported.",
        )
    if not allow_bootstrap:
        raise BootstrapError(
            BootstrapErrorKind.NOT_SUPPORTED,
            f"{reason} Bootstrapping is disabled.",
        )

    log.info("tool.bootstrap", tool=name, requirement=str(requirement), reason=reason)
    previous = tool.identity
    tool.identity = tool.bootstrap()

    try:
        check = check_version(tool, requirement, ignore_mismatch=False)
    except (VersionError, ProcessError) as e:
        tool.identity = previous
        raise BootstrapError(
            BootstrapErrorKind.VERSION_STILL_MISMATCHED,
            f"Bootstrapped '{name}' does not fulfill {requirement}: {e}",
        ) from e

    log.info("tool.bootstrapped", tool=name, version=check.version, path=str(tool.identity.resolve()))
    return check


def download_tool_archive(
    url: str,
    target_dir: Path,
    *,
    client: httpx.Client | None = None,
) -> Path:
    """Download a ``.tar.gz`` or ``.zip`` archive and unpack it into *target_dir*.

    Returns *target_dir*. Download and extraction problems are reported as
    ``BootstrapError(DOWNLOAD_FAILED)``.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    own_client = client is None
    http = client or httpx.Client(timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True)

    log.info("tool.download", url=url, target=str(target_dir))
    try:
        with tempfile.TemporaryDirectory(prefix="dep-analyzer-dl-") as tmpdir:
            archive = Path(tmpdir) / PurePosixPath(httpx.URL(url).path).name
            with http.stream("GET", url) as resp:
                resp.raise_for_status()
                with open(archive, "wb") as fh:
                    for chunk in resp.iter_bytes():
                        fh.write(chunk)
            _extract(archive, target_dir)
    except httpx.HTTPError as e:
        raise BootstrapError(BootstrapErrorKind.DOWNLOAD_FAILED, f"Download of {url} failed: {e}") from e
    except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
        raise BootstrapError(
            BootstrapErrorKind.DOWNLOAD_FAILED, f"Unpacking {url} failed: {e}"
        ) from e
    finally:
        if own_client:
            http.close()

    return target_dir


def _extract(archive: Path, target_dir: Path) -> None:
    root = target_dir.resolve()
    if archive.name.endswith(".zip"):
        with zipfile.ZipFile(archive) as zf:
            for member in zf.namelist():
                _check_inside(root, member)
            zf.extractall(root)
        return

    with tarfile.open(archive, "r:*") as tf:
        for member in tf.getmembers():
            _check_inside(root, member.name)
            if member.issym() or member.islnk():
                _check_inside(root, str(PurePosixPath(member.name).parent / member.linkname))
        tf.extractall(root)


def _check_inside(root: Path, member: str) -> None:
    """Reject archive members that would land outside *root*."""
    dest = (root / member).resolve()
    if dest != root and root not in dest.parents:
        raise BootstrapError(
            BootstrapErrorKind.DOWNLOAD_FAILED,
            f"Archive member {member!r} escapes the target directory",
        )
