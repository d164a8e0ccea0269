"""
Fix Actions
===========
Named Dockerfile mutations referenced by the error-pattern table.

Every action has the shape:

    action(captures, artifact, **params) -> Mutation

Rules:
    - Exactly one mutation per call.
    - Pure: the input artifact is never modified; a new version is returned.
    - Idempotent: if the mutation is already present the input artifact is
      returned unchanged with a description saying so.
    - Structural impossibility raises FixApplicationError; the applicator
      converts it into a failed FixResult.
"""
import os
import posixpath
import re
from typing import Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from buildfix.core.constants import PLACEHOLDER_VALUE
from buildfix.core.errors import FixApplicationError
from buildfix.fixer.dockerfile_editor import (
    Instruction,
    base_image,
    find_instructions,
    first_stage,
    insert_after,
    insert_before,
    is_alpine,
    replace_instruction,
)
from buildfix.models.build_artifact import BuildArtifact


class Mutation(NamedTuple):
    artifact: BuildArtifact
    description: str


FixAction = Callable[..., Mutation]

# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PACKAGE_RE = re.compile(r"^[a-z0-9][a-z0-9+._-]*$")
_SAFE_PATH_RE = re.compile(r"^[\w./@+-]+$")
_HEAP_FLAG_RE = re.compile(r"--max-old-space-size=(\d+)")
_ENV_PAIR_RE = re.compile(
    r"""\s*([A-Za-z_][A-Za-z0-9_]*)=(?:"(?:\\.|[^"\\])*"|'[^']*'|(?:\\.|[^\s\\])*)"""
)
_INSTALL_VERBS = ("apk add", "apt-get install", "apt install", "yum install", "dnf install")
_UNBUILDABLE_BASES = ("scratch", "distroless")


def _require_capture(captures: Mapping[str, str], group: str) -> str:
    value = (captures.get(group) or "").strip()
    if not value:
        raise FixApplicationError(f"matcher did not capture '{group}'")
    return value


def _safe_path(path: str) -> str:
    path = path.strip().strip("'\"")
    if not path or not _SAFE_PATH_RE.match(path):
        raise FixApplicationError(f"refusing to use path {path!r} in a Dockerfile")
    return path


def _first_stage(artifact: BuildArtifact) -> List[Instruction]:
    stage = first_stage(artifact.dockerfile)
    if not stage:
        raise FixApplicationError("Dockerfile has no FROM instruction")
    return stage


def _env_keys(instruction: Instruction) -> List[str]:
    """
    Variable names declared by an ENV instruction.

    ``ENV A=1 B="two words"`` declares A and B; the legacy ``ENV A some value``
    declares only A. Quoted values are skipped, never searched.
    """
    parts = instruction.text.replace("\\\n", " ").split(None, 1)
    body = parts[1].strip() if len(parts) > 1 else ""
    if not body:
        return []
    first = body.split(None, 1)[0]
    if "=" not in first:
        return [first]

    keys: List[str] = []
    pos = 0
    while pos < len(body):
        match = _ENV_PAIR_RE.match(body, pos)
        if match is None or match.end() == pos:
            break
        keys.append(match.group(1))
        pos = match.end()
    return keys


def _stage_envs(stage: Iterable[Instruction]) -> List[Instruction]:
    return [ins for ins in stage if ins.keyword == "ENV"]


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
def set_env(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    name: Optional[str] = None,
    name_group: str = "name",
    value: str = PLACEHOLDER_VALUE,
) -> Mutation:
    """Declare an environment variable in the first build stage, right after its FROM."""
    var = name or _require_capture(captures, name_group)
    if not _ENV_NAME_RE.match(var):
        raise FixApplicationError(f"{var!r} is not a valid environment variable name")

    stage = _first_stage(artifact)
    for ins in _stage_envs(stage):
        if var in _env_keys(ins):
            return Mutation(artifact, f"{var} already declared; no change")

    anchor = stage[0]
    line = f"ENV {var}={value}"
    return Mutation(
        artifact.with_dockerfile(insert_after(artifact.dockerfile, anchor, [line])),
        f"Added '{line}' after line {anchor.start + 1}",
    )


def raise_memory_limit(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    size_mb: int = 4096,
    variable: str = "NODE_OPTIONS",
) -> Mutation:
    """Make sure the Node heap limit of the first build stage is at least `size_mb`."""
    flag = f"--max-old-space-size={size_mb}"
    stage = _first_stage(artifact)
    envs = _stage_envs(stage)

    for ins in envs:
        current = [int(n) for n in _HEAP_FLAG_RE.findall(ins.text)]
        if current:
            if min(current) >= size_mb:
                return Mutation(artifact, f"Heap limit already {min(current)}MB; no change")
            new_text = _HEAP_FLAG_RE.sub(flag, ins.text)
            return Mutation(
                artifact.with_dockerfile(
                    replace_instruction(artifact.dockerfile, ins, new_text.split("\n"))
                ),
                f"Raised heap limit from {max(current)}MB to {size_mb}MB",
            )

    for ins in envs:
        if variable in _env_keys(ins):
            match = re.match(
                rf"^(\s*ENV\s+{re.escape(variable)}=)([\"']?)(.*?)\2\s*$", ins.text,
            )
            if not match:
                raise FixApplicationError(
                    f"{variable} is declared in a form that cannot be extended safely"
                )
            value = f"{match.group(3).strip()} {flag}".strip()
            new_line = f'{match.group(1)}"{value}"'
            return Mutation(
                artifact.with_dockerfile(
                    replace_instruction(artifact.dockerfile, ins, [new_line])
                ),
                f"Appended {flag} to {variable}",
            )

    anchor = stage[0]
    line = f"ENV {variable}={flag}"
    return Mutation(
        artifact.with_dockerfile(insert_after(artifact.dockerfile, anchor, [line])),
        f"Added '{line}' after line {anchor.start + 1}",
    )


# ---------------------------------------------------------------------------
# Dependency installers
# ---------------------------------------------------------------------------
def _token_re(token: str) -> re.Pattern:
    return re.compile(r"(?<![\w-])" + re.escape(token) + r"(?![\w-])")


def swap_install_flag(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    replacements: Sequence[Sequence[str]] = (),
) -> Mutation:
    """Rewrite the first installer invocation listed in `replacements`."""
    for source, target in replacements:
        pattern = _token_re(source)
        if pattern.search(artifact.dockerfile):
            return Mutation(
                artifact.with_dockerfile(pattern.sub(target, artifact.dockerfile)),
                f"Replaced '{source}' with '{target}'",
            )

    for _, target in replacements:
        if _token_re(target).search(artifact.dockerfile):
            return Mutation(artifact, f"Installer already uses '{target}'; no change")

    raise FixApplicationError("no matching installer invocation found in Dockerfile")


def _installed_packages(stage: Iterable[Instruction]) -> set:
    installed = set()
    for ins in stage:
        if ins.keyword != "RUN":
            continue
        flat = ins.text.replace("\\\n", " ")
        if any(verb in flat for verb in _INSTALL_VERBS):
            installed.update(flat.split())
    return installed


def install_system_packages(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    packages: Sequence[str] = (),
    package_group: Optional[str] = None,
) -> Mutation:
    """Install OS packages in the first stage using the base image's package manager."""
    wanted: List[str] = list(packages)
    if package_group:
        wanted.append(_require_capture(captures, package_group))
    if not wanted:
        raise FixApplicationError("no packages to install")
    for pkg in wanted:
        if not _PACKAGE_RE.match(pkg):
            raise FixApplicationError(f"{pkg!r} is not a valid package name")

    stage = _first_stage(artifact)
    image = base_image(stage[0]) or ""
    if any(marker in image.lower() for marker in _UNBUILDABLE_BASES):
        raise FixApplicationError(f"base image {image} has no package manager")

    installed = _installed_packages(stage)
    missing = [pkg for pkg in wanted if pkg not in installed]
    if not missing:
        return Mutation(artifact, f"Packages already installed: {' '.join(wanted)}; no change")

    names = " ".join(missing)
    if is_alpine(image):
        line = f"RUN apk add --no-cache {names}"
    else:
        line = (
            "RUN apt-get update && apt-get install -y --no-install-recommends "
            f"{names} && rm -rf /var/lib/apt/lists/*"
        )
    return Mutation(
        artifact.with_dockerfile(insert_after(artifact.dockerfile, stage[0], [line])),
        f"Installed system packages: {names}",
    )


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------
def create_directory(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    path_group: str = "path",
) -> Mutation:
    """Create the directory a build step expected to exist."""
    path = _safe_path(_require_capture(captures, path_group))
    if "." in posixpath.basename(path.rstrip("/")):
        path = posixpath.dirname(path.rstrip("/"))
    path = path.rstrip("/")
    if not path or path == ".":
        raise FixApplicationError("missing path resolves to the working directory itself")

    stage = _first_stage(artifact)
    for ins in stage:
        if ins.keyword == "RUN" and "mkdir" in ins.text and path in ins.text.split():
            return Mutation(artifact, f"Directory {path} already created; no change")

    workdirs = [ins for ins in stage if ins.keyword == "WORKDIR"]
    anchor = workdirs[-1] if workdirs else stage[0]
    line = f"RUN mkdir -p {path}"
    return Mutation(
        artifact.with_dockerfile(insert_after(artifact.dockerfile, anchor, [line])),
        f"Added '{line}' after line {anchor.start + 1}",
    )


def add_context_path(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    path_group: str = "path",
) -> Mutation:
    """Add a placeholder sidecar for a COPY source missing from the build context."""
    path = _safe_path(_require_capture(captures, path_group)).lstrip("/").rstrip("/")
    if not path or path.startswith("..") or "/../" in f"/{path}/":
        raise FixApplicationError(f"COPY source {path!r} is outside the build context")

    if artifact.context_dir and os.path.exists(os.path.join(artifact.context_dir, path)):
        raise FixApplicationError(
            f"{path} exists in the build context; it is probably excluded by .dockerignore"
        )

    basename = posixpath.basename(path)
    sidecar = path if "." in basename else f"{path}/.gitkeep"
    if sidecar in artifact.files:
        return Mutation(artifact, f"Context path {sidecar} already provided; no change")

    return Mutation(artifact.with_file(sidecar, ""), f"Added placeholder {sidecar} to build context")


def fix_permissions(
    captures: Mapping[str, str],
    artifact: BuildArtifact,
    path_group: str = "path",
    default_path: str = ".",
) -> Mutation:
    """Hand ownership of a path to the runtime user before the last USER switch."""
    users = find_instructions(artifact.dockerfile, "USER")
    if not users:
        raise FixApplicationError("no USER instruction; the build already runs as root")
    anchor = users[-1]
    parts = anchor.text.split()
    user = parts[1] if len(parts) > 1 else ""
    if not user or user.split(":")[0] in ("root", "0"):
        raise FixApplicationError("runtime user is root; ownership is not the problem")

    path = _safe_path(captures.get(path_group) or default_path)
    line = f"RUN chown -R {user} {path}"
    if any(existing.strip() == line for existing in artifact.dockerfile.split("\n")):
        return Mutation(artifact, f"Ownership of {path} already granted; no change")

    return Mutation(
        artifact.with_dockerfile(insert_before(artifact.dockerfile, anchor, [line])),
        f"Added '{line}' before line {anchor.start + 1}",
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
FIX_ACTIONS: Dict[str, FixAction] = {
    "set_env": set_env,
    "raise_memory_limit": raise_memory_limit,
    "swap_install_flag": swap_install_flag,
    "install_system_packages": install_system_packages,
    "create_directory": create_directory,
    "add_context_path": add_context_path,
    "fix_permissions": fix_permissions,
}
