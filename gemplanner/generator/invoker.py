"""Runs the Gemini CLI as a subprocess and returns its text output.

The CLI is invoked as ``<cli> --model <model> --prompt <prompt>``. Arguments
are passed as an argv list, never through a shell, so quotes inside the
prompt cannot terminate the argument early. The API key travels in the
child's environment only, keeping it out of process listings.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass
from typing import Mapping

from gemplanner.config import Config
from gemplanner.errors import GeneratorInvocationFailed, GeneratorTimeout
from gemplanner.planning.parsing import unwrap_json_fence

logger = logging.getLogger(__name__)

CANARY_PROMPT = "Say 'connection test successful' in JSON format."
CANARY_MARKER = "connection test successful"

# Node runtime chatter the CLI prints on stderr on every run
NOISE_PATTERNS = (
    "DEP0040",
    "punycode",
    "DeprecationWarning",
    "ExperimentalWarning",
    "--trace-deprecation",
    "--trace-warnings",
)

READ_CHUNK = 64 * 1024


def filter_noise(stderr: str) -> str:
    """Drop known-benign diagnostic lines from captured stderr."""
    kept = [
        line for line in stderr.splitlines()
        if not any(pattern in line for pattern in NOISE_PATTERNS)
    ]
    return "\n".join(kept).strip()


class _OutputOverflow(Exception):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Generator output exceeded {limit} bytes")
        self.limit = limit


async def _read_capped(stream: asyncio.StreamReader | None, limit: int) -> bytes:
    if stream is None:
        return b""
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _OutputOverflow(limit)
        chunks.append(chunk)
    return b"".join(chunks)


@dataclass
class GeminiInvoker:
    """Invokes the configured generator CLI, one process per call."""

    cli_path: str = "gemini"
    model: str = ""
    api_key: str = ""
    timeout: float = 60.0
    max_output_bytes: int = 10 * 1024 * 1024

    @classmethod
    def from_config(cls, config: Config) -> GeminiInvoker:
        return cls(
            cli_path=config.gemini_cli_path,
            model=config.gemini_model,
            api_key=config.gemini_api_key,
            timeout=config.gemini_timeout,
            max_output_bytes=config.gemini_max_output_bytes,
        )

    def build_command(self, prompt: str) -> list[str]:
        parts = [self.cli_path or "gemini"]
        if self.model:
            parts.extend(["--model", self.model])
        parts.extend(["--prompt", prompt])
        return parts

    def build_env(self, overrides: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ)
        if self.api_key:
            env["GEMINI_API_KEY"] = self.api_key
        if overrides:
            env.update(overrides)
        return env

    async def invoke(self, prompt: str, env_overrides: Mapping[str, str] | None = None) -> str:
        """Run the CLI with ``prompt`` and return stdout, unwrapping a ```json fence if present.

        Raises GeneratorInvocationFailed (GeneratorTimeout on timeout) for every
        failure: spawn error, non-zero exit, output over the cap.
        """
        command = self.build_command(prompt)
        logger.debug(
            f"Executing generator: {shlex.join(command[:-1])} <prompt: {len(prompt)} chars>"
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(env_overrides),
            )
        except (OSError, ValueError) as e:
            raise GeneratorInvocationFailed(f"Gemini CLI failed to start: {e}", cause=e) from e

        try:
            stdout_b, stderr_b = await asyncio.wait_for(self._collect(proc), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self._kill(proc)
            raise GeneratorTimeout(self.timeout, cause=e) from e
        except _OutputOverflow as e:
            await self._kill(proc)
            raise GeneratorInvocationFailed(f"Gemini CLI failed: {e}", cause=e) from e

        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = filter_noise(stderr_b.decode("utf-8", errors="replace"))

        if proc.returncode != 0:
            message = f"Gemini CLI failed: exited with status {proc.returncode}"
            if stderr:
                message += f": {stderr}"
            raise GeneratorInvocationFailed(message, exit_code=proc.returncode, stderr=stderr)

        if stderr:
            logger.warning(f"Gemini CLI stderr: {stderr}")

        return unwrap_json_fence(stdout)

    async def _collect(self, proc: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
        stdout_b, stderr_b = await asyncio.gather(
            _read_capped(proc.stdout, self.max_output_bytes),
            _read_capped(proc.stderr, self.max_output_bytes),
        )
        await proc.wait()
        return stdout_b, stderr_b

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()

    async def test_connection(self) -> bool:
        """Send a canary prompt and look for the marker phrase. Never raises."""
        try:
            result = await self.invoke(CANARY_PROMPT)
        except Exception as e:
            logger.error(f"Gemini CLI connection test failed: {e}")
            return False
        return CANARY_MARKER in result.lower()
