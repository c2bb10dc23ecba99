from __future__ import annotations

import platform
import subprocess
import sys
from dataclasses import dataclass
from importlib import metadata


@dataclass(frozen=True)
class GitInfo:
    commit: str | None
    branch: str | None
    dirty: bool


def _git(*args: str) -> str:
    return subprocess.check_output(["git", *args], text=True, stderr=subprocess.DEVNULL).strip()


def get_git_info() -> GitInfo:
    try:
        return GitInfo(
            commit=_git("rev-parse", "HEAD"),
            branch=_git("rev-parse", "--abbrev-ref", "HEAD"),
            dirty=bool(_git("status", "--porcelain")),
        )
    except (OSError, subprocess.CalledProcessError):
        return GitInfo(commit=None, branch=None, dirty=False)


def _safe_pkg_version(name: str) -> str | None:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return None


def get_build_info() -> dict[str, object]:
    """빌드/실행 식별 정보.

    - /version 응답과 export artifact에 같이 기록해서
      "어떤 코드로 학습된 모델인가"를 추적하는 용도.
    """
    git = get_git_info()
    return {
        "package": {"name": "tabularops", "version": _safe_pkg_version("tabularops")},
        "git": {"commit": git.commit, "branch": git.branch, "dirty": git.dirty},
        "python": {"version": sys.version.split()[0]},
        "platform": {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
    }
