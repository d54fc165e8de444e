import asyncio
import os
import shutil
import tempfile
import time
import unittest
from unittest.mock import patch

from gateway_api.errors import BadRequestError, SandboxEnvironmentError
from gateway_api.services import code_sandbox
from gateway_api.services.code_sandbox import DEFAULT_RUNTIMES, CodeSandbox, LanguageRuntime


def process_is_running(pid: int) -> bool:
    """A process counts as gone once it has exited, even if not yet reaped."""
    try:
        with open(f"/proc/{pid}/stat", encoding="utf-8") as stat_file:
            state = stat_file.read().rsplit(")", 1)[1].split()[0]
    except (FileNotFoundError, ProcessLookupError):
        return False
    return state not in {"Z", "X"}


async def wait_until_dead(pid: int, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not process_is_running(pid):
            return True
        await asyncio.sleep(0.05)
    return not process_is_running(pid)


class CodeSandboxTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._scratch = tempfile.TemporaryDirectory()
        self.addCleanup(self._scratch.cleanup)
        self.scratch_root = self._scratch.name
        self.sandbox = CodeSandbox(timeout_seconds=5, scratch_root=self.scratch_root)

    def assertScratchEmpty(self) -> None:
        self.assertEqual(os.listdir(self.scratch_root), [])

    async def test_successful_run_captures_stdout(self) -> None:
        result = await self.sandbox.run("python", "print('hello from sandbox')")

        self.assertEqual(result.stdout, "hello from sandbox\n")
        self.assertEqual(result.stderr, "")
        self.assertEqual(result.exit_code, 0)
        self.assertFalse(result.timed_out)
        self.assertScratchEmpty()

    async def test_runtime_error_is_a_normal_result(self) -> None:
        result = await self.sandbox.run("python", "print(1/0)")

        self.assertNotEqual(result.exit_code, 0)
        self.assertEqual(result.stdout, "")
        self.assertIn("ZeroDivisionError", result.stderr)
        self.assertFalse(result.timed_out)
        self.assertScratchEmpty()

    async def test_runaway_loop_is_killed_at_timeout(self) -> None:
        sandbox = CodeSandbox(timeout_seconds=0.5, scratch_root=self.scratch_root)

        result = await sandbox.run("python", "while True:\n    pass\n")

        self.assertTrue(result.timed_out)
        self.assertIsNone(result.exit_code)
        self.assertEqual(result.stdout, "")
        self.assertLess(result.duration_seconds, 5)
        self.assertScratchEmpty()

    async def test_child_runs_inside_scratch_directory_without_parent_secrets(self) -> None:
        os.environ["SANDBOX_TEST_SECRET"] = "do-not-leak"
        self.addCleanup(os.environ.pop, "SANDBOX_TEST_SECRET", None)

        result = await self.sandbox.run(
            "py",
            "import os\n"
            "print(os.path.basename(os.getcwd()).startswith('code-runner-'))\n"
            "print(os.environ.get('SANDBOX_TEST_SECRET'))\n",
        )

        self.assertEqual(result.stdout.splitlines(), ["True", "None"])

    @unittest.skipUnless(hasattr(os, "killpg") and os.path.isdir("/proc"), "needs process groups and /proc")
    async def test_background_children_do_not_outlive_the_run(self) -> None:
        result = await self.sandbox.run(
            "python",
            "import subprocess, sys\n"
            "child = subprocess.Popen(\n"
            "    [sys.executable, '-c', 'import time; time.sleep(60)'],\n"
            "    stdout=subprocess.DEVNULL,\n"
            "    stderr=subprocess.DEVNULL,\n"
            ")\n"
            "print(child.pid)\n",
        )

        self.assertEqual(result.exit_code, 0)
        self.assertFalse(result.timed_out)
        pid = int(result.stdout.strip())
        self.assertTrue(await wait_until_dead(pid), f"background process {pid} is still running")
        self.assertScratchEmpty()

    async def test_scratch_is_removed_even_when_program_locks_it(self) -> None:
        result = await self.sandbox.run(
            "python",
            "import os\n"
            "os.makedirs('locked/deeper')\n"
            "open('locked/deeper/data.txt', 'w').close()\n"
            "os.chmod('locked/deeper', 0o500)\n"
            "os.chmod('locked', 0o500)\n"
            "print('locked')\n",
        )

        self.assertEqual(result.stdout, "locked\n")
        self.assertEqual(result.exit_code, 0)
        self.assertScratchEmpty()

    async def test_failed_cleanup_is_retried_after_restoring_permissions(self) -> None:
        real_rmtree = shutil.rmtree
        attempts: list[str] = []

        def fail_once(path: str) -> None:
            attempts.append(path)
            if len(attempts) == 1:
                raise PermissionError("denied")
            real_rmtree(path)

        with patch.object(code_sandbox.shutil, "rmtree", side_effect=fail_once) as rmtree_mock:
            result = await self.sandbox.run("python", "print('ok')")

        self.assertEqual(result.stdout, "ok\n")
        self.assertEqual(rmtree_mock.call_count, 2)
        self.assertScratchEmpty()

    async def test_unremovable_scratch_is_an_environment_error(self) -> None:
        with patch.object(code_sandbox.shutil, "rmtree", side_effect=PermissionError("denied")):
            with self.assertRaisesRegex(SandboxEnvironmentError, "Could not remove scratch space"):
                await self.sandbox.run("python", "print('ok')")

    async def test_unsupported_language_is_rejected_before_scratch_allocation(self) -> None:
        with self.assertRaisesRegex(BadRequestError, "Unsupported language: cobol"):
            await self.sandbox.run("cobol", "DISPLAY 'HI'.")

        self.assertScratchEmpty()

    async def test_missing_interpreter_is_an_environment_error(self) -> None:
        runtimes = {
            **DEFAULT_RUNTIMES,
            "python": LanguageRuntime(
                name="python", filename="script.py", command=("/nonexistent/bin/python-missing",)
            ),
        }
        sandbox = CodeSandbox(timeout_seconds=5, runtimes=runtimes, scratch_root=self.scratch_root)

        with self.assertRaisesRegex(SandboxEnvironmentError, "Interpreter for python is unavailable"):
            await sandbox.run("python", "print('hi')")

        self.assertScratchEmpty()

    def test_language_aliases_resolve_to_runtimes(self) -> None:
        self.assertEqual(self.sandbox.resolve_runtime("JS").name, "javascript")
        self.assertEqual(self.sandbox.resolve_runtime("sh").name, "bash")
        self.assertEqual(self.sandbox.resolve_runtime("ts").name, "typescript")
        self.assertEqual(self.sandbox.languages, ["bash", "javascript", "python", "typescript"])


if __name__ == "__main__":
    unittest.main()
