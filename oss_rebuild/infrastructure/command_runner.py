from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


@dataclass
class CommandResult:
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def output(self) -> str:
        """Combined stdout and stderr, decoded."""
        parts = [self.stdout.decode("utf-8", errors="replace"), self.stderr.decode("utf-8", errors="replace")]
        return "".join(part for part in parts if part)


class CommandRunner:
    """Infrastructure adapter for subprocess execution."""

    async def run(
        self,
        *cmd: str,
        cwd: Optional[Path] = None,
        env: Optional[Mapping[str, str]] = None,
        input_data: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdin=asyncio.subprocess.PIPE if input_data is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(input_data), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise
        return CommandResult(returncode=process.returncode or 0, stdout=stdout or b"", stderr=stderr or b"")
