import asyncio
import logging
from typing import List, NamedTuple, Set


class CommandResult(NamedTuple):
    stdout: str
    stderr: str
    returncode: int


class ProcessManager:
    """
    Tracks child processes spawned by probes so every exit path releases them.
    """
    def __init__(self, max_concurrent: int = 16) -> None:
        self._active_processes: Set[asyncio.subprocess.Process] = set()
        self._lock = asyncio.Lock()
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @property
    def active_count(self) -> int:
        return len(self._active_processes)

    async def create_process(self, *args, **kwargs) -> asyncio.subprocess.Process:
        """
        Create a subprocess and register it for cleanup.
        Blocks if the concurrency limit is reached.
        """
        await self._semaphore.acquire()

        try:
            process = await asyncio.create_subprocess_exec(*args, **kwargs)
        except BaseException:
            self._semaphore.release()
            raise

        async with self._lock:
            self._active_processes.add(process)
        return process

    async def unregister(self, process: asyncio.subprocess.Process) -> None:
        """Unregister a finished process and release its slot (idempotent)."""
        async with self._lock:
            if process in self._active_processes:
                self._active_processes.discard(process)
                self._semaphore.release()

    async def run_command(
        self,
        cmd: List[str],
        timeout: float,
        encoding: str = "utf-8",
        **kwargs
    ) -> CommandResult:
        """
        Run a command and return its decoded output.

        Raises:
            asyncio.TimeoutError: If timeout is exceeded (the process is killed and reaped)
            OSError: If the executable cannot be started
        """
        kwargs.setdefault("stdout", asyncio.subprocess.PIPE)
        kwargs.setdefault("stderr", asyncio.subprocess.PIPE)

        process = await self.create_process(*cmd, **kwargs)

        try:
            stdout_data, stderr_data = await asyncio.wait_for(process.communicate(), timeout=timeout)
            returncode = process.returncode if process.returncode is not None else -1
            return CommandResult(
                stdout=stdout_data.decode(encoding, errors="replace") if stdout_data else "",
                stderr=stderr_data.decode(encoding, errors="replace") if stderr_data else "",
                returncode=returncode,
            )
        except asyncio.TimeoutError:
            logging.debug(f"Command timed out: {' '.join(cmd)}")
            await self._kill(process)
            raise
        except asyncio.CancelledError:
            await self._kill(process)
            raise
        finally:
            await self.unregister(process)

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        # Reap to avoid zombies
        try:
            await asyncio.wait_for(process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            logging.error(f"Failed to reap timed-out process: {process.pid}")

    async def cleanup(self) -> None:
        """Terminate all tracked processes."""
        async with self._lock:
            if not self._active_processes:
                return
            processes = list(self._active_processes)
            self._active_processes.clear()
            for _ in processes:
                self._semaphore.release()

        logging.info(f"Cleaning up {len(processes)} active subprocesses...")
        for proc in processes:
            if proc.returncode is None:
                try:
                    proc.terminate()
                except ProcessLookupError:
                    pass

        # Give them a chance to terminate gracefully
        await asyncio.sleep(0.1)

        for proc in processes:
            if proc.returncode is None:
                logging.warning(f"Process {proc.pid} did not terminate, killing...")
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
