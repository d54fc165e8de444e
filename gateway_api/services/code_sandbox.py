"""Bounded execution of user-submitted source code.

Each run gets a fresh scratch directory holding the script, one interpreter
process pinned to that directory, and a hard wall-clock timeout after which the
process group is killed outright. The scratch directory is removed on every
exit path.

This is timeout and filesystem scoping only. The child runs as the service's
own OS user with full network access and no memory limit; it is not an
isolated jail.
"""

import asyncio
import logging
import os
import shutil
import signal
import stat
import sys
import tempfile
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass

from langsmith import traceable

from gateway_api.constants import SANDBOX_SCRATCH_PREFIX, SANDBOX_TIMEOUT_SECONDS
from gateway_api.errors import BadRequestError, SandboxEnvironmentError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LanguageRuntime:
    name: str
    filename: str
    command: tuple[str, ...]


@dataclass(frozen=True)
class SandboxResult:
    stdout: str
    stderr: str
    exit_code: int | None
    timed_out: bool
    duration_seconds: float


DEFAULT_RUNTIMES: dict[str, LanguageRuntime] = {
    "python": LanguageRuntime(name="python", filename="script.py", command=(sys.executable,)),
    "javascript": LanguageRuntime(name="javascript", filename="script.js", command=("node",)),
    "typescript": LanguageRuntime(
        name="typescript", filename="script.ts", command=("npx", "--yes", "tsx")
    ),
    "bash": LanguageRuntime(name="bash", filename="script.sh", command=("bash",)),
}
LANGUAGE_ALIASES = {
    "py": "python",
    "js": "javascript",
    "node": "javascript",
    "ts": "typescript",
    "sh": "bash",
}


class CodeSandbox:
    def __init__(
        self,
        timeout_seconds: float = SANDBOX_TIMEOUT_SECONDS,
        runtimes: Mapping[str, LanguageRuntime] = DEFAULT_RUNTIMES,
        scratch_root: str | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._runtimes = runtimes
        self._scratch_root = scratch_root

    @property
    def languages(self) -> list[str]:
        return sorted(self._runtimes)

    def resolve_runtime(self, language: str) -> LanguageRuntime:
        key = language.strip().lower()
        runtime = self._runtimes.get(LANGUAGE_ALIASES.get(key, key))
        if runtime is None:
            raise BadRequestError(
                f"Unsupported language: {language}. Supported languages: {', '.join(self.languages)}"
            )
        return runtime

    @traceable(run_type="tool", name="code_sandbox.run")
    async def run(self, language: str, source: str) -> SandboxResult:
        """Run ``source`` and report its output; a non-zero exit is a normal result."""
        runtime = self.resolve_runtime(language)
        try:
            scratch_dir = tempfile.mkdtemp(prefix=SANDBOX_SCRATCH_PREFIX, dir=self._scratch_root)
        except OSError as exc:
            raise SandboxEnvironmentError("Could not allocate scratch space") from exc

        try:
            script_path = os.path.join(scratch_dir, runtime.filename)
            try:
                with open(script_path, "w", encoding="utf-8") as script:
                    script.write(source)
            except OSError as exc:
                raise SandboxEnvironmentError("Could not write source to scratch space") from exc

            result = await self._execute(runtime, scratch_dir, script_path)
        finally:
            _remove_scratch(scratch_dir)

        logger.info(
            "Sandbox run finished",
            extra={
                "language": runtime.name,
                "exit_code": result.exit_code,
                "timed_out": result.timed_out,
                "duration_ms": int(result.duration_seconds * 1000),
            },
        )
        return result

    async def _execute(
        self, runtime: LanguageRuntime, scratch_dir: str, script_path: str
    ) -> SandboxResult:
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *runtime.command,
                script_path,
                cwd=scratch_dir,
                env=_child_environment(scratch_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise SandboxEnvironmentError(
                f"Interpreter for {runtime.name} is unavailable"
            ) from exc

        timed_out = False
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._timeout_seconds
            )
        except TimeoutError:
            timed_out = True
        finally:
            # Reaches anything the program left running in its session too.
            _kill_process_group(process)

        if timed_out:
            await process.wait()
            return SandboxResult(
                stdout="",
                stderr=f"Execution timed out after {self._timeout_seconds:g} seconds",
                exit_code=None,
                timed_out=True,
                duration_seconds=round(time.monotonic() - start, 3),
            )

        return SandboxResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode,
            timed_out=False,
            duration_seconds=round(time.monotonic() - start, 3),
        )


def _child_environment(scratch_dir: str) -> dict[str, str]:
    return {
        "PATH": os.environ.get("PATH", os.defpath),
        "LANG": os.environ.get("LANG", "C.UTF-8"),
        "HOME": scratch_dir,
        "TMPDIR": scratch_dir,
        "PYTHONUNBUFFERED": "1",
        "PYTHONDONTWRITEBYTECODE": "1",
    }


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    with suppress(ProcessLookupError):
        if hasattr(os, "killpg"):
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()


def _remove_scratch(scratch_dir: str) -> None:
    try:
        shutil.rmtree(scratch_dir)
        return
    except OSError:
        logger.warning(
            "Scratch cleanup failed; restoring permissions and retrying",
            extra={"scratch_dir": scratch_dir},
        )

    try:
        _make_tree_writable(scratch_dir)
        shutil.rmtree(scratch_dir)
    except OSError as exc:
        raise SandboxEnvironmentError("Could not remove scratch space") from exc


def _make_tree_writable(root: str) -> None:
    """Give the owner full access to every directory below ``root`` so it can be removed."""
    os.chmod(root, stat.S_IRWXU)
    for dirpath, dirnames, _ in os.walk(root):
        for name in dirnames:
            path = os.path.join(dirpath, name)
            if not os.path.islink(path):
                os.chmod(path, stat.S_IRWXU)
